"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from .helpers import write_manifest, write_package


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Three projects: c depends on b, b depends on a, all through links.

    a also depends on an external package, so the policy checker has
    something to look at.
    """
    write_manifest(tmp_path, ["a", "b", "c"], 'workspace = "sandbox"\n')
    write_package(tmp_path, "a", "a", dependencies={"left-pad": "^1.0.0"})
    write_package(tmp_path, "b", "b", dependencies={"a": "workspace:a"})
    write_package(tmp_path, "c", "c", dependencies={"b": "workspace:b"})
    return tmp_path
