"""Tests for monobuild.versions."""

from __future__ import annotations

import pytest

from monobuild.versions import (
    bump_version,
    coerce_version,
    is_workspace_link,
    min_version,
    parse_version,
    satisfies,
    workspace_link,
)


class TestParseVersion:
    def test_full_semver(self) -> None:
        v = parse_version("1.2.3")
        assert (v.major, v.minor, v.patch) == (1, 2, 3)

    def test_two_part_version(self) -> None:
        v = parse_version("1.2")
        assert (v.major, v.minor, v.patch) == (1, 2, 0)

    def test_single_part_version(self) -> None:
        v = parse_version("5")
        assert (v.major, v.minor, v.patch) == (5, 0, 0)

    def test_leading_v(self) -> None:
        assert str(parse_version("v1.0.0")) == "1.0.0"

    def test_prerelease(self) -> None:
        assert parse_version("1.2.3-beta.1").prerelease == "beta.1"

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_version("not-a-version")


class TestCoerceVersion:
    def test_none(self) -> None:
        assert coerce_version(None) is None

    def test_invalid(self) -> None:
        assert coerce_version("workspace:a") is None


class TestWorkspaceLink:
    def test_round_trip(self) -> None:
        assert workspace_link("packages/a") == "workspace:packages/a"
        assert is_workspace_link("workspace:packages/a")
        assert not is_workspace_link("^1.0.0")


class TestSatisfies:
    @pytest.mark.parametrize(
        ("version", "range_", "expected"),
        [
            ("1.4.0", "^1.2.0", True),
            ("2.0.0", "^1.2.0", False),
            ("0.2.5", "^0.2.3", True),
            ("0.3.0", "^0.2.3", False),
            ("0.0.4", "^0.0.3", False),
            ("1.2.9", "~1.2.3", True),
            ("1.3.0", "~1.2.3", False),
            ("1.2.9", "1.2.x", True),
            ("1.3.0", "1.x", True),
            ("2.0.0", "1.x", False),
            ("1.0.0", "*", True),
            ("1.0.0", "", True),
            ("1.5.0", ">=1.0.0 <2.0.0", True),
            ("2.0.0", ">=1.0.0 <2.0.0", False),
            ("1.5.0", "1.0.0 - 1.9", True),
            ("2.0.0", "1.0.0 - 1.9", False),
            ("3.1.0", "^1.0.0 || ^3.0.0", True),
            ("1.0.0", "1.0.0", True),
            ("1.0.1", "1.0.0", False),
        ],
    )
    def test_ranges(self, version: str, range_: str, expected: bool) -> None:
        assert satisfies(version, range_) is expected

    def test_prerelease_needs_matching_comparator(self) -> None:
        assert not satisfies("1.3.0-beta", "^1.2.0")
        assert satisfies("1.2.4-beta", "^1.2.4-alpha")

    def test_invalid_version_never_satisfies(self) -> None:
        assert not satisfies(None, "*")
        assert not satisfies("garbage", "^1.0.0")

    def test_invalid_range_never_satisfies(self) -> None:
        assert not satisfies("1.0.0", "npm:function-bind")
        assert not satisfies("1.0.0", "workspace:a")


class TestMinVersion:
    @pytest.mark.parametrize(
        ("range_", "expected"),
        [
            ("^1.2.0", "1.2.0"),
            (">1.2.3", "1.2.4"),
            ("2.x || 1.4", "1.4.0"),
            (">=1.0.0 <2.0.0", "1.0.0"),
            ("1.2.3 - 2.0.0", "1.2.3"),
            ("~1.2.3-beta", "1.2.3-beta"),
            ("*", "0.0.0"),
        ],
    )
    def test_lowest_accepted(self, range_: str, expected: str) -> None:
        assert str(min_version(range_)) == expected

    @pytest.mark.parametrize(
        "range_", ["workspace:a", "^1.0.0 || github:x/y", ">2.0.0 <1.0.0"]
    )
    def test_invalid_or_empty(self, range_: str) -> None:
        assert min_version(range_) is None


class TestBumpVersion:
    @pytest.mark.parametrize(
        ("version", "kind", "expected"),
        [
            ("1.2.3", "major", "2.0.0"),
            ("1.2.3", "minor", "1.3.0"),
            ("1.2.3", "patch", "1.2.4"),
            ("1.2.3", "premajor", "2.0.0-0"),
            ("1.2.3", "preminor", "1.3.0-0"),
            ("1.2.3", "prepatch", "1.2.4-0"),
            ("1.2.3", "prerelease", "1.2.4-0"),
            ("1.2.4-0", "prerelease", "1.2.4-1"),
            ("1.2.3-beta", "patch", "1.2.3"),
            ("2.0.0-0", "major", "2.0.0"),
            ("1.2.3", "none", "1.2.3"),
            ("1.2", "patch", "1.2.1"),
        ],
    )
    def test_kinds(self, version: str, kind: str, expected: str) -> None:
        assert bump_version(version, kind) == expected

    def test_missing_version_starts_at_zero(self) -> None:
        assert bump_version(None, "patch") == "0.0.1"

    def test_invalid_kind(self) -> None:
        with pytest.raises(ValueError, match="Invalid bump type"):
            bump_version("1.0.0", "huge")
