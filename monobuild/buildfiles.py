"""BUILD.bazel generation and dependency-list synchronization.

Each workspace project has a BUILD.bazel file containing one call to the
workspace's dependency sync rule (``web_library`` by default). The ``deps``
list of that call mirrors the project's local dependencies from
package.json:

- missing BUILD files are generated from a template
- labels of new local dependencies are added
- labels of workspace projects that are no longer dependencies are removed,
  unless their target is ``force-include``
- labels that are not workspace projects are never touched

Only the deps list body is rewritten; comments and any other content in the
file are kept as they are. The workspace .bazelignore is kept listing
``node_modules`` so bazel never descends into installed packages.
"""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Callable, Sequence
from functools import partial
from pathlib import Path

from .errors import ImmutableModeViolation
from .metadata import relative_path, write_text_atomic
from .models import ProjectRecord, TemplateArgs, WorkspaceManifest
from .starlark import (
    add_call_arg_item,
    get_call_arg_items,
    remove_call_arg_item,
    sort_call_arg_items,
)
from .versions import is_workspace_link, satisfies

logger = logging.getLogger(__name__)

BUILD_FILE = "BUILD.bazel"
BAZELIGNORE = ".bazelignore"
# Always listed in .bazelignore
IGNORED_PATHS = ("node_modules",)
DEPS_ARG = "deps"
# Items with this target are kept even if package.json does not list them
FORCE_INCLUDE = "force-include"
TEMPLATES_DIR = Path(__file__).parent / "templates"

Template = Callable[[TemplateArgs], str]

_LABEL = re.compile(r'//(.+?):([^"\']+)')


def render_template(text: str, args: TemplateArgs) -> str:
    """Fill the ``__PLACEHOLDER__`` markers of a build file template."""
    deps = "".join(f'\n        "{d}",' for d in args.dependencies)
    return (
        text.replace("__NAME__", args.name)
        .replace("__PATH__", args.path)
        .replace("__LABEL__", args.label)
        .replace("__TARGET__", args.label.rsplit(":", 1)[-1])
        .replace("__RULE__", args.rule)
        .replace("__DEPENDENCIES__", deps)
    )


def default_template(args: TemplateArgs) -> str:
    """Render the bundled BUILD.bazel template."""
    return render_template((TEMPLATES_DIR / "BUILD.bazel.tmpl").read_text(), args)


def load_template(root: str | Path, manifest: WorkspaceManifest) -> Template:
    """Return the workspace's build file template renderer.

    Uses the file named by ``build_file_template`` in manifest.toml when set,
    otherwise the bundled template.
    """
    if not manifest.build_file_template:
        return default_template
    text = (Path(root) / manifest.build_file_template).read_text()
    return partial(render_template, text)


def project_label(root: str | Path, record: ProjectRecord) -> str:
    """Bazel label other projects use to depend on record.

    The target is ``library`` unless the project has a build script, in
    which case it is named after the project directory.
    """
    path = relative_path(root, record.directory)
    target = posixpath.basename(path) if record.has_build_script else "library"
    return f"//{path}:{target}"


def get_dep_labels(
    root: str | Path,
    dep_map: dict[str, ProjectRecord],
    dependencies: dict[str, str],
) -> list[str]:
    """Labels for the workspace projects among a dependency map.

    A dependency only counts if its specifier still accepts the local
    project: a workspace link, a wildcard, or a range satisfied by the
    project's version. Anything else is pinned to a published version and
    gets no label.
    """
    labels: list[str] = []
    for name, specifier in dependencies.items():
        dep = dep_map.get(name)
        if dep is None:
            continue
        if (
            "*" in specifier
            or is_workspace_link(specifier)
            or satisfies(dep.version, specifier)
        ):
            labels.append(project_label(root, dep))
        else:
            logger.debug(
                "Skipping %s@%s: local version is %s", name, specifier, dep.version
            )
    return labels


def sync_dependency_list(
    code: str,
    rule: str,
    dependencies: Sequence[str],
    projects: Sequence[str],
) -> str:
    """Bring the deps list of a BUILD file in line with dependencies.

    Args:
        code: BUILD file contents.
        rule: Name of the call whose ``deps`` list is synced.
        dependencies: Desired labels (unquoted).
        projects: Workspace project paths relative to the root. Only items
            pointing at these paths are ever removed.

    Returns:
        The updated contents, with the deps list sorted.
    """
    items = get_call_arg_items(code, rule, DEPS_ARG)
    wanted = [f'"{d}"' for d in dependencies]
    wanted_paths = {w.split(":")[0] for w in wanted}
    existing_paths = {item.split(":")[0] for item in items}

    for label in wanted:
        # Any target of the same project already satisfies the dependency
        if label.split(":")[0] not in existing_paths:
            logger.debug("Adding %s", label)
            code = add_call_arg_item(code, rule, DEPS_ARG, label)

    projects_set = set(projects)
    for item in items:
        if item.split(":")[0] in wanted_paths:
            continue
        m = _LABEL.search(item)
        if m and m.group(1) in projects_set and m.group(2) != FORCE_INCLUDE:
            logger.debug("Removing %s", item)
            code = remove_call_arg_item(code, rule, DEPS_ARG, item)

    return sort_call_arg_items(code, rule, DEPS_ARG)


def sync_build_files(
    root: str | Path,
    records: Sequence[ProjectRecord],
    projects: Sequence[str],
    rule: str,
    template: Template | None = None,
    immutable: bool = False,
    targets: Sequence[ProjectRecord] | None = None,
) -> list[str]:
    """Generate or update BUILD files.

    Dependency labels are always computed against every record, so a
    project's BUILD file comes out the same whichever subset is synced.

    Args:
        root: Workspace root.
        records: All workspace records.
        projects: All workspace project paths relative to root.
        rule: Name of the dependency sync rule.
        template: Renderer for missing BUILD files; defaults to the bundled
            template.
        immutable: If True, compute changes without writing anything.
        targets: Projects whose BUILD files are synced; defaults to records.

    Returns:
        BUILD file paths, relative to root, that changed (or would change).
    """
    template = template or default_template
    dep_map = {r.name: r for r in records}
    changed: list[str] = []

    for record in records if targets is None else targets:
        build_file = Path(record.directory) / BUILD_FILE
        rel = relative_path(root, str(build_file))
        dependencies = sorted(
            set(
                get_dep_labels(root, dep_map, record.dependencies)
                + get_dep_labels(root, dep_map, record.dev_dependencies)
            )
        )

        if not build_file.exists():
            changed.append(rel)
            if immutable:
                continue
            path = relative_path(root, record.directory)
            rules = template(
                TemplateArgs(
                    name=posixpath.basename(path),
                    path=path,
                    label=project_label(root, record),
                    dependencies=dependencies,
                    rule=rule,
                )
            )
            write_text_atomic(build_file, rules.strip() + "\n")
            logger.debug("Generated %s", rel)
            continue

        src = build_file.read_text()
        code = sync_dependency_list(src, rule, dependencies, projects)
        if src.strip() != code.strip():
            changed.append(rel)
            if not immutable:
                write_text_atomic(build_file, code)
                logger.debug("Updated %s", rel)

    return changed


def sync_bazelignore(root: str | Path, immutable: bool = False) -> list[str]:
    """Make sure bazel skips the paths it must never read as packages.

    Existing entries are kept; the file is rewritten sorted and without
    duplicates or blank lines.

    Returns:
        ``[".bazelignore"]`` if the file changed (or would change), else
        an empty list.
    """
    path = Path(root) / BAZELIGNORE
    current = path.read_text() if path.exists() else ""
    entries = {line.strip() for line in current.splitlines()} | set(IGNORED_PATHS)
    updated = "\n".join(sorted(e for e in entries if e))
    if current.strip() == updated:
        return []
    if not immutable:
        write_text_atomic(path, updated + "\n")
        logger.debug("Updated %s", BAZELIGNORE)
    return [BAZELIGNORE]


def ensure_build_files_synced(
    root: str | Path,
    records: Sequence[ProjectRecord],
    projects: Sequence[str],
    rule: str,
    template: Template | None = None,
    immutable: bool = False,
    targets: Sequence[ProjectRecord] | None = None,
) -> list[str]:
    """Sync .bazelignore and BUILD files; immutable mode fails on changes.

    Raises:
        ImmutableModeViolation: If immutable and any file is stale.
    """
    changed = sync_bazelignore(root, immutable)
    changed += sync_build_files(
        root, records, projects, rule, template, immutable, targets
    )
    if immutable and changed:
        raise ImmutableModeViolation(changed)
    return changed
