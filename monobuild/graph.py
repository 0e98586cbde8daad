"""Dependency graph utilities.

Computes the local (in-repo) dependency graph of a monorepo: the ordered
closure of a project's workspace-link dependencies, cycles among projects,
and the projects upstream or downstream of a given one.

All functions are pure over the records they are given. None of them read
or write files.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator, Sequence

from .errors import ProjectNotFoundError, StructuralError
from .metadata import relative_path
from .models import LOCAL_DEPENDENCY_TYPES, Cycle, ProjectRecord
from .versions import is_workspace_link, workspace_link

logger = logging.getLogger(__name__)


def resolve_local_dependencies(
    root: str, records: Sequence[ProjectRecord], target: str
) -> list[ProjectRecord]:
    """Resolve the workspace-link dependencies of a project, leaves first.

    Walks ``dependencies`` then ``devDependencies`` depth-first from the
    project whose directory is ``target``. A dependency is local when its
    specifier is exactly ``workspace:<path>`` for the path of some record
    relative to ``root``; matching is by path, not by name, so it is safe to
    run before names are validated.

    Each returned record carries ``depth``: 1 for the target, one more per
    level of recursion. Dependencies always come before the projects that
    need them. Cycles do not raise; an already visited project is skipped.

    Args:
        root: Workspace root directory.
        records: All workspace records. They are not modified; the returned
            records are copies with depth assigned.
        target: Absolute directory of the project to resolve.

    Returns:
        Deduplicated records in build order, ending with the target. Empty
        if target is not among records.

    Example:
        If A depends on B, and B depends on C:
        resolve_local_dependencies(root, [A, B, C], A.dir) → [C, B, A]
    """
    data = [r.model_copy() for r in records]
    by_dir = {r.directory: r for r in data}
    links = {workspace_link(relative_path(root, r.directory)): r for r in reversed(data)}

    visited: set[str] = set()
    output: list[ProjectRecord] = []
    # Explicit stack of (record, depth, pending dependency iterator)
    stack: list[tuple[ProjectRecord, int, Iterator[ProjectRecord]]] = []

    def enter(directory: str, depth: int) -> None:
        item = by_dir.get(directory)
        if item is None or directory in visited:
            return
        visited.add(directory)
        stack.append((item, depth, _linked_deps(item, links)))

    enter(target, 1)
    while stack:
        item, depth, pending = stack[-1]
        for found in pending:
            if found.directory not in visited:
                enter(found.directory, depth + 1)
                break
        else:
            stack.pop()
            item.depth = depth
            output.append(item)
            if stack:
                # The parent lists each dependency right after its subtree
                output.append(item)

    unique: dict[str, ProjectRecord] = {}
    for item in reversed(output):
        unique.setdefault(item.directory, item)
    resolved = list(reversed(unique.values()))
    logger.debug(
        "Resolved %s: %s",
        target,
        ", ".join(f"{r.name}@{r.depth}" for r in resolved),
    )
    return resolved


def _linked_deps(
    item: ProjectRecord, links: dict[str, ProjectRecord]
) -> Iterator[ProjectRecord]:
    for dep_type in LOCAL_DEPENDENCY_TYPES:
        for specifier in item.section(dep_type).values():
            found = links.get(specifier)
            if found is not None:
                yield found


def validate_records(records: Sequence[ProjectRecord]) -> None:
    """Ensure every record has a name and no two records share one.

    Raises:
        StructuralError: On the first missing or duplicated name.
    """
    seen: dict[str, str] = {}
    for record in records:
        if not record.name:
            raise StructuralError(
                f"{record.directory}/package.json is missing a name field"
            )
        if record.name in seen:
            raise StructuralError(
                f"Duplicate project name in {record.directory} and {seen[record.name]}"
            )
        seen[record.name] = record.directory


def detect_cycles(records: Sequence[ProjectRecord]) -> list[Cycle]:
    """Find circular dependency chains among the given records.

    Follows ``dependencies`` and ``devDependencies`` to other records by
    package name, so names must be validated first. Any edge that points
    back to a project still on the DFS stack closes a cycle; a project that
    depends on itself is a cycle of one. Each distinct cycle is reported
    once, regardless of which member the search started from.

    Returns:
        List of cycles; empty if the graph is acyclic.
    """
    by_name = {r.name: r for r in records}
    done: set[str] = set()
    on_stack: dict[str, int] = {}
    path: list[str] = []
    seen_cycles: set[tuple[str, ...]] = set()
    cycles: list[Cycle] = []

    def edges(name: str) -> Iterator[str]:
        for dep in by_name[name].local_graph_deps():
            if dep in by_name:
                yield dep

    for start in by_name:
        if start in done:
            continue
        stack: list[tuple[str, Iterator[str]]] = [(start, edges(start))]
        on_stack[start] = 0
        path.append(start)
        while stack:
            node, pending = stack[-1]
            for dep in pending:
                if dep in on_stack:
                    members = path[on_stack[dep] :]
                    key = _canonical(members)
                    if key not in seen_cycles:
                        seen_cycles.add(key)
                        cycles.append(Cycle(names=list(key)))
                elif dep not in done:
                    on_stack[dep] = len(path)
                    path.append(dep)
                    stack.append((dep, edges(dep)))
                    break
            else:
                stack.pop()
                path.pop()
                del on_stack[node]
                done.add(node)

    if cycles:
        logger.debug("Found %d cycle(s): %s", len(cycles), "; ".join(map(str, cycles)))
    return cycles


def _canonical(members: list[str]) -> tuple[str, ...]:
    """Rotate a cycle so it starts at its smallest name."""
    i = members.index(min(members))
    return tuple(members[i:] + members[:i])


def get_downstreams(
    records: Sequence[ProjectRecord],
    target: ProjectRecord,
    exclude_workspace_links: bool = False,
) -> list[ProjectRecord]:
    """Find every project that transitively depends on target.

    Dependents are listed in depth-first discovery order, each once, and
    never include target itself. With ``exclude_workspace_links``, a
    declaration through a workspace link does not count; this is used when
    propagating a version bump, since linked projects always see the local
    version anyway.

    Raises:
        ProjectNotFoundError: If target is not among records.
    """
    if not any(r.directory == target.directory for r in records):
        raise ProjectNotFoundError(f"{target.directory} is not a workspace project")

    def dependents(dep: ProjectRecord) -> Iterator[ProjectRecord]:
        for item in records:
            specifier = item.local_graph_deps().get(dep.name)
            if specifier is None:
                continue
            if exclude_workspace_links and is_workspace_link(specifier):
                continue
            yield item

    visited = {target.directory}
    downstreams: list[ProjectRecord] = []
    stack = [dependents(target)]
    while stack:
        for item in stack[-1]:
            if item.directory not in visited:
                visited.add(item.directory)
                downstreams.append(item)
                stack.append(dependents(item))
                break
        else:
            stack.pop()
    return downstreams


def get_upstreams(
    records: Sequence[ProjectRecord], target: ProjectRecord
) -> list[ProjectRecord]:
    """Find every project that target transitively depends on.

    Breadth-first over package names starting from target's own name, so
    the result starts with target itself.

    Raises:
        ProjectNotFoundError: If target is not among records.
    """
    if not any(r.directory == target.directory for r in records):
        raise ProjectNotFoundError(f"{target.directory} is not a workspace project")

    by_name: dict[str, ProjectRecord] = {}
    for r in records:
        by_name.setdefault(r.name, r)

    upstreams: dict[str, ProjectRecord] = {}
    queue = deque([target.name])
    while queue:
        name = queue.popleft()
        if name in upstreams:
            continue
        record = target if name == target.name else by_name[name]
        upstreams[name] = record
        for dep in record.local_graph_deps():
            if dep in by_name and dep not in upstreams:
                queue.append(dep)
    return list(upstreams.values())
