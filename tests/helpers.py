"""Workspace builders shared by the tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from monobuild.models import ProjectRecord


def write_package(root: Path, path: str, name: str, **fields: Any) -> Path:
    """Write a package.json for a project under root."""
    directory = root / path
    directory.mkdir(parents=True, exist_ok=True)
    data = {"name": name, "version": "1.0.0", **fields}
    (directory / "package.json").write_text(json.dumps(data, indent=2) + "\n")
    return directory


def read_package(directory: Path) -> dict[str, Any]:
    return json.loads((directory / "package.json").read_text())


def write_manifest(root: Path, projects: list[str], extra: str = "") -> None:
    lines = ", ".join(f'"{p}"' for p in projects)
    (root / "manifest.toml").write_text(f"projects = [{lines}]\n{extra}")


def record(name: str, root: str = "/ws", **fields: Any) -> ProjectRecord:
    """In-memory record living in <root>/<name>."""
    return ProjectRecord(directory=f"{root}/{name}", name=name, **fields)
