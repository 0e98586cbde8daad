"""Workspace version policy checks.

Collects every top-level dependency declaration in the workspace, finds
dependencies declared with more than one specifier, and filters them
through the workspace VersionPolicy.

The policy has two modes that read the exception list in opposite ways:

- lockstep: every mismatch is reported, exceptions exempt names (or, for
  ``{name, versions}`` entries, just the listed specifiers).
- non-lockstep: nothing is reported, exceptions opt names in (or, for
  ``{name, versions}`` entries, everything but the listed specifiers).
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from .models import DependencyReport, MismatchReport, ProjectRecord, VersionPolicy

# Sections whose specifiers must agree across the workspace. Peer
# dependencies are ranges by nature and are left out.
POLICY_DEPENDENCY_TYPES = ("dependencies", "devDependencies", "optionalDependencies")


def collect_versions(
    records: Sequence[ProjectRecord], include_all: bool = False
) -> DependencyReport:
    """Group dependency declarations by name and specifier.

    Args:
        records: Workspace records.
        include_all: If True, keep dependencies declared with a single specifier too.

    Returns:
        Map of dependency name → specifier → sorted consumer names. Unless
        ``include_all`` is set, only dependencies with two or more specifiers.
    """
    versions: DependencyReport = {}
    for record in records:
        for dep_type in POLICY_DEPENDENCY_TYPES:
            for name, specifier in record.section(dep_type).items():
                consumers = versions.setdefault(name, {}).setdefault(specifier, [])
                if record.name not in consumers:
                    consumers.append(record.name)
                    consumers.sort()

    if not include_all:
        versions = {name: v for name, v in versions.items() if len(v) > 1}
    return versions


def report_mismatched_top_level_deps(
    records: Sequence[ProjectRecord], policy: VersionPolicy | None
) -> MismatchReport:
    """Check the workspace against its version policy.

    Without a policy the workspace is always valid; the raw mismatches are
    still returned for information.

    Example:
        With lockstep and ``{name: "x", versions: ["^1.0.0"]}`` as exception,
        x declared as ``{"^1.0.0": ["a"], "^2.0.0": ["b"]}`` reports only
        ``{"x": {"^2.0.0": ["b"]}}``.
    """
    reported = collect_versions(records)
    if policy is None:
        return MismatchReport(valid=True, policy=VersionPolicy(), reported=reported)

    names = policy.exception_names()
    filtered: DependencyReport = {}
    for dep, group in reported.items():
        if policy.lockstep:
            # Bare names exempt a dependency entirely
            if dep in policy.exceptions:
                continue
        elif dep not in names:
            continue

        meta = policy.versioned_exception(dep)
        if meta is None:
            filtered[dep] = group
            continue
        # Keep only specifiers the exception does not cover
        remaining = {v: c for v, c in group.items() if v not in meta.versions}
        if remaining:
            filtered[dep] = remaining

    return MismatchReport(valid=not filtered, policy=policy, reported=filtered)


def should_sync(policy: VersionPolicy, name: str) -> bool:
    """Whether a dependency's version is kept aligned across the workspace."""
    if policy.lockstep:
        return name not in policy.exceptions
    return name in policy.exception_names()


def get_error_message(report: MismatchReport, as_json: bool = False) -> str:
    """Render a policy report for humans or as JSON.

    For a dependency declared with exactly two specifiers, the one used by
    more projects is suggested as the fix for the other. Ties and
    dependencies with more variants only appear in the raw violation list.
    """
    if report.valid:
        return "{}" if as_json else ""

    raw = json.dumps(report.reported, indent=2)
    if as_json:
        return raw

    lines = [
        "Version policy violation. Use `monobuild upgrade` to ensure all "
        "projects use the same dependency version",
        "",
        "Violations:",
        raw,
    ]
    for dep, group in report.reported.items():
        if len(group) != 2:
            continue
        (first, first_users), (second, second_users) = group.items()
        if len(first_users) == len(second_users):
            continue
        if len(first_users) > len(second_users):
            correct, incorrect = first, second
        else:
            correct, incorrect = second, first
        lines.append("")
        lines.append(
            f"Workspaces: {', '.join(group[incorrect])} have incorrect version of {dep}"
        )
        lines.append(f"Should be using {correct} instead of {incorrect}")
    return "\n".join(lines)
