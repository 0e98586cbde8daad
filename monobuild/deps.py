"""Dependency declaration utilities.

Provides functions for parsing ``name@version`` arguments and editing the
dependency maps of a ProjectRecord in memory. Writing the result back is
left to metadata.write_project_metadata.
"""

from __future__ import annotations

from collections.abc import Sequence

import semver

from .models import DEPENDENCY_TYPES, LOCAL_DEPENDENCY_TYPES, ProjectRecord
from .versions import is_workspace_link, min_version

# Sections an upgrade rewrites. Peer dependencies are left alone so that
# downstreams are not pushed into holding several copies of a package.
PINNED_DEPENDENCY_TYPES = ("dependencies", "devDependencies", "optionalDependencies")


def parse_package_arg(arg: str) -> tuple[str, str]:
    """Split a ``name@version`` argument into name and version.

    Scoped names keep their leading ``@``; the version is empty when not
    given.

    Examples:
        "react@18.2.0" → ("react", "18.2.0")
        "@scope/pkg@^1.0" → ("@scope/pkg", "^1.0")
        "lodash" → ("lodash", "")
    """
    scope = "@" if arg.startswith("@") else ""
    name, _, version = arg[len(scope) :].partition("@")
    return scope + name, version


def set_dependency(
    record: ProjectRecord, name: str, specifier: str, dep_type: str
) -> None:
    """Declare name with specifier in dep_type.

    Every other section that already lists name (resolutions included) is
    pointed at the same specifier so the declarations cannot disagree.
    """
    for t in DEPENDENCY_TYPES:
        deps = record.section(t)
        if name in deps:
            deps[name] = specifier
    if name in record.resolutions:
        record.resolutions[name] = specifier
    record.section(dep_type)[name] = specifier


def remove_dependency(record: ProjectRecord, name: str) -> bool:
    """Remove name from every dependency section.

    Returns:
        True if any section listed name.
    """
    removed = False
    for t in DEPENDENCY_TYPES:
        if record.section(t).pop(name, None) is not None:
            removed = True
    return removed


def pin_dependency(record: ProjectRecord, name: str, version: str) -> bool:
    """Pin an existing declaration of name to an exact version.

    Wildcards and workspace links already follow the local project and are
    kept as they are.

    Returns:
        True if any specifier changed.

    Examples:
        {"a": "^1.0.0"} → {"a": "1.2.0"}
        {"a": "*"} → unchanged
        {"a": "workspace:packages/a"} → unchanged
    """
    changed = False
    for t in PINNED_DEPENDENCY_TYPES:
        deps = record.section(t)
        current = deps.get(name)
        if current is None or "*" in current or is_workspace_link(current):
            continue
        if current != version:
            deps[name] = version
            changed = True
    return changed


def get_workspace_version(
    records: Sequence[ProjectRecord], name: str
) -> str | None:
    """Preferred specifier for name among the workspace's declarations.

    Every distinct specifier in ``dependencies`` and ``devDependencies`` is
    ranked by the lowest version it accepts and the highest one wins.
    Specifiers that are not valid ranges rank below all others; ties keep
    declaration order.

    Examples:
        ["^17.0.0", "^18.2.0", "18.0.0"] → "^18.2.0"
        ["workspace:a", "1.0.0"] → "1.0.0"
    """
    specifiers: list[str] = []
    for record in records:
        for t in LOCAL_DEPENDENCY_TYPES:
            specifier = record.section(t).get(name)
            if specifier is not None and specifier not in specifiers:
                specifiers.append(specifier)
    if not specifiers:
        return None

    def rank(specifier: str) -> tuple[bool, semver.Version]:
        lowest = min_version(specifier)
        return lowest is not None, lowest or semver.Version(0, 0, 0)

    return max(specifiers, key=rank)
