"""Version parsing, range matching and bumping utilities.

Handles conversion between version strings and semver objects, with
special handling for incomplete version strings (e.g., "1.0" → "1.0.0"),
plus the subset of npm range syntax that package.json files use:
``^``, ``~``, x-ranges, comparators, hyphen ranges and ``||`` unions.
"""

from __future__ import annotations

import re
from collections.abc import Callable

import semver

WORKSPACE_PREFIX = "workspace:"

BUMP_TYPES = (
    "major",
    "premajor",
    "minor",
    "preminor",
    "patch",
    "prepatch",
    "prerelease",
    "none",
)

_PARTIAL = re.compile(
    r"^(?P<op>\^|~>?|[<>]=?|=)?\s*v?"
    r"(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*]))?"
    r"(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+[0-9A-Za-z.-]+)?$"
)
_HYPHEN = re.compile(r"^(\S+)\s+-\s+(\S+)$")

Comparator = tuple[str, semver.Version]


def is_workspace_link(specifier: str) -> bool:
    """Whether a specifier points at another workspace project."""
    return specifier.startswith(WORKSPACE_PREFIX)


def workspace_link(path: str) -> str:
    """Build the workspace-link specifier for a project path."""
    return f"{WORKSPACE_PREFIX}{path}"


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-beta.1" → "1.2.3-beta.1"

    A leading "v" or "=" is ignored.

    Raises:
        ValueError: If the string is not a version.
    """
    text = version_str.strip().lstrip("=v")
    try:
        return semver.Version.parse(text)
    except ValueError:
        parts = text.split(".")
        if not all(p.isdigit() for p in parts) or len(parts) > 3:
            raise
        # Pad with zeros to ensure we have 3 parts
        while len(parts) < 3:
            parts.append("0")
        return semver.Version.parse(".".join(parts))


def coerce_version(version_str: str | None) -> semver.Version | None:
    """Like parse_version, but returns None for missing or invalid input."""
    if not version_str:
        return None
    try:
        return parse_version(version_str)
    except ValueError:
        return None


def satisfies(version_str: str | None, range_str: str) -> bool:
    """Check whether a version satisfies an npm-style range.

    Invalid versions and invalid ranges never satisfy.

    Examples:
        satisfies("1.4.0", "^1.2.0") → True
        satisfies("2.0.0", "^1.2.0") → False
        satisfies("1.2.9", "1.2.x") → True
    """
    version = coerce_version(version_str)
    if version is None:
        return False
    for alternative in range_str.split("||"):
        comparators = _parse_comparator_set(alternative.strip())
        if comparators is None:
            continue
        if _test_set(version, comparators):
            return True
    return False


def min_version(range_str: str) -> semver.Version | None:
    """Lowest version that satisfies an npm-style range.

    Returns None if the range is invalid (any ``||`` alternative fails to
    parse) or if no version satisfies it.

    Examples:
        min_version("^1.2.0") → 1.2.0
        min_version(">1.2.3") → 1.2.4
        min_version("2.x || 1.4") → 1.4.0
        min_version("*") → 0.0.0
    """
    sets: list[list[Comparator]] = []
    for alternative in range_str.split("||"):
        comparators = _parse_comparator_set(alternative.strip())
        if comparators is None:
            return None
        sets.append(comparators)

    def accepts(version: semver.Version) -> bool:
        return any(_test_set(version, s) for s in sets)

    for floor in (semver.Version(0, 0, 0), semver.Version(0, 0, 0, "0")):
        if accepts(floor):
            return floor

    lowest: semver.Version | None = None
    for comparators in sets:
        set_min: semver.Version | None = None
        for op, bound in comparators:
            if op == ">":
                if bound.prerelease is None:
                    bound = bound.bump_patch()
                else:
                    bound = bound.replace(prerelease=f"{bound.prerelease}.0")
            elif op not in ("=", ">="):
                continue
            if set_min is None or bound > set_min:
                set_min = bound
        if set_min is not None and (lowest is None or set_min < lowest):
            lowest = set_min

    if lowest is not None and accepts(lowest):
        return lowest
    return None


def bump_version(version_str: str | None, kind: str) -> str:
    """Increment a version the way ``npm version <kind>`` does.

    Missing or invalid versions are treated as "0.0.0".

    Examples:
        bump_version("1.2.3", "minor") → "1.3.0"
        bump_version("1.2.3", "prepatch") → "1.2.4-0"
        bump_version("1.2.4-0", "prerelease") → "1.2.4-1"
        bump_version("1.2.3-beta", "patch") → "1.2.3"

    Raises:
        ValueError: If kind is not one of BUMP_TYPES.
    """
    if kind not in BUMP_TYPES:
        raise ValueError(f"Invalid bump type: {kind}. Must be one of {', '.join(BUMP_TYPES)}")
    v = coerce_version(version_str) or semver.Version(0, 0, 0)
    pre = v.prerelease is not None

    if kind == "none":
        result = v
    elif kind == "major":
        result = v.finalize_version() if pre and v.minor == 0 and v.patch == 0 else v.bump_major()
    elif kind == "minor":
        result = v.finalize_version() if pre and v.patch == 0 else v.bump_minor()
    elif kind == "patch":
        result = v.finalize_version() if pre else v.bump_patch()
    elif kind == "premajor":
        result = semver.Version(v.major + 1, 0, 0, "0")
    elif kind == "preminor":
        result = semver.Version(v.major, v.minor + 1, 0, "0")
    elif kind == "prepatch":
        result = semver.Version(v.major, v.minor, v.patch + 1, "0")
    else:
        result = v.bump_prerelease() if pre else semver.Version(v.major, v.minor, v.patch + 1, "0")
    return str(result)


def _parse_comparator_set(text: str) -> list[Comparator] | None:
    """Parse one space-separated comparator set; None if invalid."""
    if text in ("", "*", "x", "X"):
        return []

    hyphen = _HYPHEN.match(text)
    if hyphen:
        low = _expand(hyphen.group(1), ">=")
        high = _expand(hyphen.group(2), "<=")
        if low is None or high is None:
            return None
        return low + high

    # "> = 1.2" and ">= 1.2" are both written in the wild
    text = re.sub(r"([<>]=?|=|\^|~>?)\s+", r"\1", text)
    comparators: list[Comparator] = []
    for token in text.split():
        expanded = _expand(token)
        if expanded is None:
            return None
        comparators.extend(expanded)
    return comparators


def _expand(token: str, default_op: str = "=") -> list[Comparator] | None:
    """Expand a single range token into primitive comparators."""
    m = _PARTIAL.match(token)
    if not m:
        return None
    op = m.group("op") or default_op
    if op == "~>":
        op = "~"

    def num(group: str) -> int | None:
        value = m.group(group)
        return None if value is None or value in "xX*" else int(value)

    major, minor, patch = num("major"), num("minor"), num("patch")
    pre = m.group("pre")
    # Anything after a wildcard is a wildcard too
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None

    if major is None:
        return [] if op not in ("<", ">") else [("<", semver.Version(0, 0, 0))]

    V = semver.Version
    if minor is None:
        low, high = V(major, 0, 0), V(major + 1, 0, 0)
    elif patch is None:
        low, high = V(major, minor, 0), V(major, minor + 1, 0)
    else:
        low, high = V(major, minor, patch, pre), None

    if op == "=":
        return [("=", low)] if high is None else [(">=", low), ("<", high)]
    if op == "~":
        if minor is None:
            return [(">=", low), ("<", V(major + 1, 0, 0))]
        return [(">=", low), ("<", V(major, minor + 1, 0))]
    if op == "^":
        if major > 0 or minor is None:
            return [(">=", low), ("<", V(major + 1, 0, 0))]
        if minor > 0 or patch is None:
            return [(">=", low), ("<", V(0, minor + 1, 0))]
        return [(">=", low), ("<", V(0, 0, patch + 1))]
    if op == ">":
        return [(">=", high)] if high is not None else [(">", low)]
    if op == ">=":
        return [(">=", low)]
    if op == "<":
        return [("<", low)]
    # "<="
    return [("<", high)] if high is not None else [("<=", low)]


_OPS: dict[str, Callable[[semver.Version, semver.Version], bool]] = {
    "=": lambda a, b: a == b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
}


def _test_set(version: semver.Version, comparators: list[Comparator]) -> bool:
    if not all(_OPS[op](version, bound) for op, bound in comparators):
        return False
    if version.prerelease is None:
        return True
    # Prereleases only match when a comparator opts into the same tuple
    return any(
        bound.prerelease is not None
        and (bound.major, bound.minor, bound.patch)
        == (version.major, version.minor, version.patch)
        for _, bound in comparators
    )
