"""Workspace and project metadata reading and writing.

The workspace manifest (manifest.toml) is read with tomlkit. Project
metadata lives in each project's package.json; records are loaded fresh
for every command and written back only when a command changed them.
"""

from __future__ import annotations

import glob
import json
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import tomlkit

from .errors import ProjectNotFoundError, StructuralError
from .models import DEPENDENCY_TYPES, ProjectRecord, WorkspaceManifest

MANIFEST_FILE = "manifest.toml"
PACKAGE_FILE = "package.json"


def project_dir(root: str | Path, path: str) -> str:
    """Absolute, normalized directory of a project path under root."""
    return os.path.abspath(os.path.join(root, path))


def relative_path(root: str | Path, directory: str) -> str:
    """Project path relative to root, always with forward slashes."""
    return Path(os.path.relpath(directory, root)).as_posix()


def write_text_atomic(path: Path, content: str) -> None:
    """Replace a file's contents in a single step.

    The new text goes to a sibling temp file first so readers never see a
    partially written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp-{os.getpid()}")
    tmp.write_text(content)
    os.replace(tmp, path)


def find_root(start: str | Path) -> Path:
    """Walk up from start to the directory containing manifest.toml.

    Falls back to start itself when no manifest is found.
    """
    start = Path(start).absolute()
    for candidate in (start, *start.parents):
        if (candidate / MANIFEST_FILE).exists():
            return candidate
    return start


def read_workspace_manifest(root: str | Path) -> WorkspaceManifest:
    """Load manifest.toml from the workspace root.

    When the manifest is missing or lists no projects, the project list is
    taken from the ``workspaces`` field of the root package.json. Glob
    patterns in the project list are expanded against the filesystem.
    """
    root = Path(root)
    manifest_path = root / MANIFEST_FILE
    data: dict[str, Any] = {}
    if manifest_path.exists():
        data = tomlkit.parse(manifest_path.read_text()).unwrap()

    if not data.get("projects"):
        data["projects"] = _package_json_workspaces(root)

    manifest = WorkspaceManifest.model_validate(data)
    manifest.projects = expand_projects(root, manifest.projects)
    return manifest


def _package_json_workspaces(root: Path) -> list[str]:
    top = root / PACKAGE_FILE
    if not top.exists():
        return []
    workspaces = json.loads(top.read_text()).get("workspaces", [])
    # Yarn also accepts {"packages": [...]}
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages", [])
    return list(workspaces)


def expand_projects(root: Path, patterns: list[str]) -> list[str]:
    """Expand glob patterns into project paths relative to root.

    Literal paths are kept even when the directory does not exist, since a
    sparse checkout may not contain every project.
    """
    projects: list[str] = []
    for pattern in patterns:
        if not glob.has_magic(pattern):
            projects.append(pattern.rstrip("/"))
            continue
        for match in sorted(glob.glob(str(root / pattern))):
            p = Path(match)
            if (p / PACKAGE_FILE).exists():
                projects.append(relative_path(root, str(p)))
    return projects


def read_project_metadata(directory: str | Path) -> ProjectRecord | None:
    """Read a project's package.json into a ProjectRecord.

    Returns None if the project has no package.json (not checked out).
    Malformed JSON raises.

    Raises:
        StructuralError: If package.json has no name.
    """
    path = Path(directory) / PACKAGE_FILE
    if not path.exists():
        return None
    data = json.loads(path.read_text())
    if not data.get("name"):
        raise StructuralError(f"{path} is missing a name field")
    return ProjectRecord.model_validate({**data, "directory": str(directory)})


def write_project_metadata(record: ProjectRecord) -> None:
    """Write a record's name, version and dependency maps to package.json.

    Keys the record does not model are kept as they are on disk, in their
    original order. Dependency maps are written sorted; empty maps are
    dropped.
    """
    path = Path(record.directory) / PACKAGE_FILE
    data: dict[str, Any] = json.loads(path.read_text()) if path.exists() else {}
    data["name"] = record.name
    if record.version is not None:
        data["version"] = record.version

    sections = {t: record.section(t) for t in DEPENDENCY_TYPES}
    sections["resolutions"] = record.resolutions
    for key, deps in sections.items():
        if deps:
            data[key] = dict(sorted(deps.items()))
        else:
            data.pop(key, None)

    write_text_atomic(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def load_all_records(root: str | Path, projects: list[str]) -> list[ProjectRecord]:
    """Load a record for every project that has a package.json."""
    records: list[ProjectRecord] = []
    for path in projects:
        record = read_project_metadata(project_dir(root, path))
        if record is not None:
            records.append(record)
    return records


def find_local_dependency(
    records: Sequence[ProjectRecord], name: str
) -> ProjectRecord | None:
    """Find the workspace project published under a package name."""
    for record in records:
        if record.name == name:
            return record
    return None


def assert_project_dir(directory: str | Path) -> None:
    """Raise unless directory contains a package.json."""
    if not (Path(directory) / PACKAGE_FILE).exists():
        raise ProjectNotFoundError(
            f"{directory} is not a project directory (no {PACKAGE_FILE} found)"
        )
