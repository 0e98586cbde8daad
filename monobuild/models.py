"""Data models for monobuild.

These Pydantic models represent the core data structures shared by the
dependency graph engine, the version policy validator and the build-file
synchronizer.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# Dependency sections of a package.json, in the order they are written.
DEPENDENCY_TYPES = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

# Sections that participate in the local (build) graph.
LOCAL_DEPENDENCY_TYPES = ("dependencies", "devDependencies")


class ProjectRecord(BaseModel):
    """Metadata for a single project in the monorepo workspace.

    Field aliases match package.json keys so a parsed manifest can be
    validated directly into a record.

    Attributes:
        directory: Absolute path of the project directory. This is the
            identity key; names are only trusted after validation.
        name: Package name from package.json.
        version: Version string, if any. Missing or invalid versions sort
            lowest wherever versions are compared.
        dependencies: Runtime dependencies (name → specifier).
        dev_dependencies: Development dependencies.
        peer_dependencies: Peer dependencies. Not part of the local graph.
        optional_dependencies: Optional dependencies. Not part of the local
            graph.
        resolutions: Workspace-wide override patterns → forced versions.
        scripts: npm scripts. A ``build`` script changes the build target.
        private: Private projects are never version-bumped.
        depth: Transient traversal annotation set by the resolver.
    """

    model_config = ConfigDict(populate_by_name=True)

    directory: str
    name: str
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(
        default_factory=dict, alias="devDependencies"
    )
    peer_dependencies: dict[str, str] = Field(
        default_factory=dict, alias="peerDependencies"
    )
    optional_dependencies: dict[str, str] = Field(
        default_factory=dict, alias="optionalDependencies"
    )
    resolutions: dict[str, str] = Field(default_factory=dict)
    scripts: dict[str, str] = Field(default_factory=dict)
    private: bool = False
    depth: int = 1

    def section(self, dep_type: str) -> dict[str, str]:
        """Return the dependency map for a package.json section name."""
        return {
            "dependencies": self.dependencies,
            "devDependencies": self.dev_dependencies,
            "peerDependencies": self.peer_dependencies,
            "optionalDependencies": self.optional_dependencies,
        }[dep_type]

    def local_graph_deps(self) -> dict[str, str]:
        """Runtime and dev dependencies merged, dev entries winning."""
        return {**self.dependencies, **self.dev_dependencies}

    @property
    def has_build_script(self) -> bool:
        return bool(self.scripts.get("build"))


class VersionException(BaseModel):
    """A version policy exception scoped to specific specifiers."""

    name: str
    versions: list[str] = Field(default_factory=list)


PolicyException = Union[str, VersionException]


class VersionPolicy(BaseModel):
    """Workspace version policy.

    Attributes:
        lockstep: If True, every shared dependency must be declared with the
            same specifier everywhere, except for listed exceptions. If False,
            only listed exceptions are checked.
        exceptions: Bare package names, or name + versions records that
            exempt (lockstep) or select (non-lockstep) specific specifiers.
    """

    lockstep: bool = False
    exceptions: list[PolicyException] = Field(default_factory=list)

    def exception_names(self) -> list[str]:
        return [e if isinstance(e, str) else e.name for e in self.exceptions]

    def versioned_exception(self, name: str) -> VersionException | None:
        for e in self.exceptions:
            if isinstance(e, VersionException) and e.name == name:
                return e
        return None


class WorkspaceManifest(BaseModel):
    """Workspace configuration read from manifest.toml."""

    projects: list[str] = Field(default_factory=list)
    version_policy: VersionPolicy | None = None
    dependency_sync_rule: str = "web_library"
    workspace: Literal["host", "sandbox"] = "host"
    build_file_template: str | None = None


# dependency name → specifier → sorted consumer names
DependencyReport = dict[str, dict[str, list[str]]]


class MismatchReport(BaseModel):
    """Result of a version policy check."""

    valid: bool
    policy: VersionPolicy
    reported: DependencyReport = Field(default_factory=dict)


class Cycle(BaseModel):
    """A circular chain of project names, in dependency-edge order."""

    names: list[str]

    def __str__(self) -> str:
        return " -> ".join([*self.names, self.names[0]])


class TemplateArgs(BaseModel):
    """Arguments passed to a build file template.

    Attributes:
        name: Basename of the project path.
        path: Project path relative to the workspace root.
        label: Bazel label of the project's own target.
        dependencies: Sorted labels of the project's local dependencies.
        rule: Name of the rule whose deps list is kept in sync.
    """

    name: str
    path: str
    label: str
    dependencies: list[str] = Field(default_factory=list)
    rule: str = "web_library"


class Toolchain(BaseModel):
    """Paths and environment for the external tools a command may spawn.

    Built once per command invocation and passed down explicitly.
    """

    yarn: str = "yarn"
    bazel: str = "bazel"
    env: dict[str, str] = Field(default_factory=dict)


class VersionBump(BaseModel):
    """Records a version change for a project.

    Used to report what versions a bump changed and to propagate the new
    versions to dependent projects.

    Attributes:
        old: The version before bumping.
        new: The version after bumping.
    """

    old: str | None
    new: str
