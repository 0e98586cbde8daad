"""Workspace commands: install, add, remove, upgrade, align, bump, check, build.

Every command follows the same shape:
1. Load the workspace manifest and all project records from disk
2. Compute the local dependency graph of the affected project
3. Validate names, cycles and the version policy (read-only, may raise)
4. Write changed package.json and BUILD.bazel files
5. Hand off to the package manager or build tool

Records are re-read from disk after any step that rewrote them, so graph
computations never run on stale data.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path

from .buildfiles import (
    ensure_build_files_synced,
    load_template,
    project_label,
    sync_build_files,
)
from .deps import (
    get_workspace_version,
    parse_package_arg,
    pin_dependency,
    remove_dependency,
    set_dependency,
)
from .errors import CommandError, CycleError, PolicyViolation, ProjectNotFoundError
from .graph import (
    detect_cycles,
    get_downstreams,
    resolve_local_dependencies,
    validate_records,
)
from .metadata import (
    assert_project_dir,
    find_local_dependency,
    load_all_records,
    project_dir,
    read_project_metadata,
    read_workspace_manifest,
    relative_path,
    write_project_metadata,
)
from .models import (
    LOCAL_DEPENDENCY_TYPES,
    ProjectRecord,
    Toolchain,
    VersionBump,
    WorkspaceManifest,
)
from .policy import get_error_message, report_mismatched_top_level_deps, should_sync
from .shell import run_build_tool, run_package_manager, step
from .versions import BUMP_TYPES, bump_version, workspace_link


def load_workspace(root: Path) -> tuple[WorkspaceManifest, list[ProjectRecord]]:
    """Read manifest.toml and every project's package.json."""
    manifest = read_workspace_manifest(root)
    return manifest, load_all_records(root, manifest.projects)


def validate_graph(
    deps: Sequence[ProjectRecord],
    records: Sequence[ProjectRecord],
    manifest: WorkspaceManifest,
) -> None:
    """Run every read-only check that must pass before files are written.

    Args:
        deps: Records whose names and cycles are checked.
        records: All workspace records, checked against the version policy.
        manifest: Workspace manifest holding the version policy.

    Raises:
        StructuralError: On missing or duplicate names.
        CycleError: If deps contain a dependency cycle.
        PolicyViolation: If the workspace breaks its version policy.
    """
    validate_records(deps)
    cycles = detect_cycles(deps)
    if cycles:
        raise CycleError(cycles)
    report = report_mismatched_top_level_deps(records, manifest.version_policy)
    if not report.valid:
        raise PolicyViolation(report)


def _validate_registration(root: Path, cwd: str, projects: Sequence[str]) -> None:
    if not any(project_dir(root, p) == cwd for p in projects):
        raise ProjectNotFoundError(
            f"Your cwd {cwd} is not listed in manifest.toml. If you are in the "
            "wrong directory, cd into the project or use --cwd. Otherwise, add "
            "the project to the projects field of manifest.toml."
        )


def _find_record(records: Sequence[ProjectRecord], directory: str) -> ProjectRecord:
    for record in records:
        if record.directory == directory:
            return record
    raise ProjectNotFoundError(f"{directory} is not a workspace project")


def _with_record(
    records: Sequence[ProjectRecord], record: ProjectRecord
) -> list[ProjectRecord]:
    """records with the entry for record's directory swapped for record."""
    others = [r for r in records if r.directory != record.directory]
    return [*others, record]


def _sync_local_build_files(
    root: Path, manifest: WorkspaceManifest, cwd: str
) -> list[str]:
    """Re-read the workspace and sync BUILD files of cwd and its local deps."""
    records = load_all_records(root, manifest.projects)
    deps = resolve_local_dependencies(str(root), records, cwd)
    changed = sync_build_files(
        root,
        records,
        manifest.projects,
        manifest.dependency_sync_rule,
        load_template(root, manifest),
        targets=deps,
    )
    for path in changed:
        print(f"  {path}")
    return changed


def install(
    root: Path,
    cwd: str | None = None,
    *,
    frozen_lockfile: bool = False,
    toolchain: Toolchain | None = None,
) -> None:
    """Validate the workspace, sync BUILD files and install dependencies.

    Args:
        root: Workspace root.
        cwd: Project directory; the root itself installs the whole workspace.
        frozen_lockfile: Fail instead of changing the lockfile, .bazelignore
            or any BUILD file.
        toolchain: External tool configuration.
    """
    toolchain = toolchain or Toolchain()
    cwd = os.path.abspath(cwd or root)
    is_root_install = cwd == os.path.abspath(root)
    if not is_root_install:
        assert_project_dir(cwd)

    step("Loading workspace")
    manifest, records = load_workspace(root)
    if not is_root_install:
        _validate_registration(root, cwd, manifest.projects)

    if is_root_install:
        deps = records
    else:
        deps = resolve_local_dependencies(str(root), records, cwd)
    for record in deps:
        path = relative_path(root, record.directory)
        print(f"  {record.name} {record.version or '<none>'} ({path})")

    step("Validating dependency graph")
    validate_graph(deps, records, manifest)
    print("  No cycles or version policy violations")

    if manifest.workspace == "sandbox":
        step("Syncing build files")
        changed = ensure_build_files_synced(
            root,
            records,
            manifest.projects,
            manifest.dependency_sync_rule,
            load_template(root, manifest),
            immutable=frozen_lockfile,
            targets=deps,
        )
        for path in changed:
            print(f"  {path}")
        if not changed:
            print("  Up to date")

    step("Installing dependencies")
    args = ["install", "--immutable"] if frozen_lockfile else ["install"]
    run_package_manager(toolchain, *args, cwd=root)


def add(
    root: Path,
    cwd: str,
    args: Sequence[str],
    *,
    dev: bool = False,
    toolchain: Toolchain | None = None,
) -> None:
    """Add dependencies to a project.

    Workspace projects (given without a version, or with their exact local
    version) are linked with a ``workspace:<path>`` specifier and the BUILD
    files of the project and its local deps are synced. The new links are
    validated before package.json is written. Anything else is added
    through the package manager.
    """
    toolchain = toolchain or Toolchain()
    cwd = os.path.abspath(cwd)
    assert_project_dir(cwd)
    dep_type = "devDependencies" if dev else "dependencies"

    manifest, records = load_workspace(root)

    locals_: list[ProjectRecord] = []
    externals: list[tuple[str, str]] = []
    for arg in args:
        name, version = parse_package_arg(arg)
        local = find_local_dependency(records, name)
        if local and (not version or local.version == version):
            locals_.append(local)
        else:
            externals.append((name, version))

    record = read_project_metadata(cwd)
    if record is None:
        raise ProjectNotFoundError(f"{cwd} has no package.json")

    if locals_:
        step(f"Linking {len(locals_)} workspace dependencies")
        for local in locals_:
            link = workspace_link(relative_path(root, local.directory))
            set_dependency(record, local.name, link, dep_type)
            print(f"  {local.name}: {link}")

        step("Validating dependency graph")
        candidates = _with_record(records, record)
        deps = resolve_local_dependencies(str(root), candidates, cwd)
        validate_graph(deps, candidates, manifest)
        write_project_metadata(record)

        step("Syncing build files")
        _sync_local_build_files(root, manifest, cwd)

    if externals:
        policy = manifest.version_policy
        specs: list[str] = []
        for name, version in externals:
            # Keep aligned dependencies on the range the workspace already uses
            if not version and policy and should_sync(policy, name):
                version = get_workspace_version(records, name) or ""
            specs.append(f"{name}@{version}" if version else name)

        step(f"Adding {', '.join(specs)}")
        flags = ["--dev"] if dev else []
        run_package_manager(
            toolchain, "workspace", record.name, "add", *specs, *flags, cwd=root
        )


def remove(
    root: Path,
    cwd: str,
    args: Sequence[str],
    *,
    toolchain: Toolchain | None = None,
) -> None:
    """Remove dependencies from a project.

    Workspace projects are removed from every dependency section and the
    BUILD files are re-synced; other packages go through the package
    manager.
    """
    toolchain = toolchain or Toolchain()
    cwd = os.path.abspath(cwd)
    assert_project_dir(cwd)

    manifest, records = load_workspace(root)
    locals_ = [name for name in args if find_local_dependency(records, name)]
    externals = [name for name in args if name not in locals_]

    record = read_project_metadata(cwd)
    if record is None:
        raise ProjectNotFoundError(f"{cwd} has no package.json")

    if locals_:
        step(f"Unlinking {len(locals_)} workspace dependencies")
        for name in locals_:
            if remove_dependency(record, name):
                print(f"  {name}")

        step("Validating dependency graph")
        candidates = _with_record(records, record)
        deps = resolve_local_dependencies(str(root), candidates, cwd)
        validate_graph(deps, candidates, manifest)
        write_project_metadata(record)

        step("Syncing build files")
        _sync_local_build_files(root, manifest, cwd)

    if externals:
        step(f"Removing {', '.join(externals)}")
        run_package_manager(
            toolchain, "workspace", record.name, "remove", *externals, cwd=root
        )


def upgrade(
    root: Path,
    args: Sequence[str],
    *,
    toolchain: Toolchain | None = None,
) -> None:
    """Upgrade dependencies across the whole workspace.

    For workspace projects, every project that declares one is pinned to
    its exact local version. Asking for any other version of a workspace
    project is an error. The pinned workspace is validated before anything
    is written. External packages are upgraded through the package manager.

    Raises:
        CommandError: If a requested version differs from the local one.
    """
    toolchain = toolchain or Toolchain()
    manifest, records = load_workspace(root)

    locals_: list[ProjectRecord] = []
    externals: list[str] = []
    for arg in args:
        name, version = parse_package_arg(arg)
        local = find_local_dependency(records, name)
        if local is None:
            externals.append(arg)
            continue
        if version and version != local.version:
            raise CommandError(f"You must use version {name}@{local.version}")
        locals_.append(local)

    if locals_:
        step("Pinning workspace dependencies")
        pinned: list[ProjectRecord] = []
        for record in records:
            changed = False
            for local in locals_:
                if local.version is not None:
                    changed |= pin_dependency(record, local.name, local.version)
            if changed:
                pinned.append(record)

        validate_graph(records, records, manifest)
        for record in pinned:
            write_project_metadata(record)
            print(f"  {record.name}")

    if externals:
        step(f"Upgrading {', '.join(externals)}")
        run_package_manager(toolchain, "up", "-C", *externals, cwd=root)


def align(
    root: Path,
    cwd: str,
    *,
    toolchain: Toolchain | None = None,
) -> list[str]:
    """Align a project's dependencies with the rest of the workspace.

    Every dependency (and resolution) the version policy keeps in sync is
    set to the workspace's preferred specifier for it, as chosen by
    get_workspace_version() over the other projects. The project is then
    installed.

    Returns:
        Names of the dependencies whose specifier changed.
    """
    cwd = os.path.abspath(cwd)
    assert_project_dir(cwd)

    manifest, records = load_workspace(root)
    record = read_project_metadata(cwd)
    if record is None:
        raise ProjectNotFoundError(f"{cwd} has no package.json")

    aligned: list[str] = []
    policy = manifest.version_policy
    if policy:
        step("Aligning dependency versions")
        others = [r for r in records if r.name != record.name]
        sections = [record.section(t) for t in LOCAL_DEPENDENCY_TYPES]
        for deps in [*sections, record.resolutions]:
            for name, current in deps.items():
                if not should_sync(policy, name):
                    continue
                version = get_workspace_version(others, name)
                if version and version != current:
                    deps[name] = version
                    if name not in aligned:
                        aligned.append(name)
                    print(f"  {name}: {current} → {version}")
        if aligned:
            write_project_metadata(record)
        else:
            print("  Already aligned")

    install(root, cwd, toolchain=toolchain)
    return aligned


def bump(
    root: Path,
    cwd: str,
    kind: str,
    *,
    frozen_package_json: bool = False,
    toolchain: Toolchain | None = None,
) -> dict[str, VersionBump]:
    """Bump the version of a project and of the projects that depend on it.

    Dependents that only reach the project through workspace links always
    see its local version and are not bumped. Private projects are never
    bumped. New versions are then pinned across the workspace with
    upgrade().

    Args:
        root: Workspace root.
        cwd: Project directory.
        kind: One of major, premajor, minor, preminor, patch, prepatch,
            prerelease or none.
        frozen_package_json: Fail instead of changing any version.
        toolchain: External tool configuration.

    Returns:
        Map of project name → VersionBump for every project changed.

    Raises:
        CommandError: If kind is invalid, or a version would change while
            frozen_package_json is set.
    """
    if kind not in BUMP_TYPES:
        raise CommandError(
            f"Invalid bump type: {kind}. Must be {', '.join(BUMP_TYPES[:-1])} or none"
        )
    cwd = os.path.abspath(cwd)
    assert_project_dir(cwd)

    manifest, records = load_workspace(root)
    target = _find_record(records, cwd)
    validate_graph(records, records, manifest)
    downstreams = get_downstreams(records, target, exclude_workspace_links=True)

    step(f"Bumping {kind} versions")
    bumped: dict[str, VersionBump] = {}
    for record in [*downstreams, target]:
        old = record.version
        new = bump_version(old, kind)
        if new == old:
            continue
        if frozen_package_json:
            raise CommandError(
                "Cannot bump version when frozen_package_json is set. You most "
                "likely forgot to bump a dependency's version locally"
            )
        if record.private:
            print(f"  {record.name} is private, thus cannot be published; skipping")
            continue
        record.version = new
        write_project_metadata(record)
        bumped[record.name] = VersionBump(old=old, new=new)
        print(f"  {record.name}: {old or '<none>'} → {new}")

    for name, change in bumped.items():
        upgrade(root, [f"{name}@{change.new}"], toolchain=toolchain)
    return bumped


def check(root: Path, *, as_json: bool = False) -> tuple[bool, str]:
    """Check the workspace against its version policy.

    Returns:
        (valid, message) where message is human-readable or JSON.
    """
    manifest, records = load_workspace(root)
    validate_records(records)
    report = report_mismatched_top_level_deps(records, manifest.version_policy)
    return report.valid, get_error_message(report, as_json=as_json)


def build(
    root: Path,
    cwd: str,
    *,
    toolchain: Toolchain | None = None,
) -> None:
    """Validate a project's dependency graph and build it with bazel."""
    toolchain = toolchain or Toolchain()
    cwd = os.path.abspath(cwd)
    assert_project_dir(cwd)

    _, records = load_workspace(root)
    target = _find_record(records, cwd)
    deps = resolve_local_dependencies(str(root), records, cwd)
    validate_records(deps)
    cycles = detect_cycles(deps)
    if cycles:
        raise CycleError(cycles)

    label = project_label(root, target)
    step(f"Building {label}")
    run_build_tool(toolchain, "build", label, cwd=root)
