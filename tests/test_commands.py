"""Tests for monobuild.commands."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import ANY, MagicMock, patch

import pytest

from monobuild import commands
from monobuild.errors import (
    CommandError,
    CycleError,
    ImmutableModeViolation,
    PolicyViolation,
    ProjectNotFoundError,
)
from monobuild.models import Toolchain, VersionBump
from monobuild.starlark import get_call_arg_items

from .helpers import read_package, write_manifest, write_package

LOCKSTEP = 'workspace = "sandbox"\n\n[version_policy]\nlockstep = true\n'


def _deps(directory: Path) -> list[str]:
    return get_call_arg_items(
        (directory / "BUILD.bazel").read_text(), "web_library", "deps"
    )


@pytest.fixture
def released(tmp_path: Path) -> Path:
    """b pins a by version, c links b."""
    write_manifest(tmp_path, ["a", "b", "c"])
    write_package(tmp_path, "a", "a")
    write_package(tmp_path, "b", "b", dependencies={"a": "^1.0.0"})
    write_package(tmp_path, "c", "c", devDependencies={"b": "workspace:b"})
    return tmp_path


@patch("monobuild.commands.run_package_manager")
class TestInstall:
    def test_root_install_syncs_and_installs(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        commands.install(workspace)

        assert _deps(workspace / "b") == ['"//a:library"']
        assert _deps(workspace / "c") == ['"//b:library"']
        mock_pm.assert_called_once_with(ANY, "install", cwd=workspace)

    def test_project_install_syncs_its_closure(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        write_manifest(workspace, ["a", "b", "c", "d"], 'workspace = "sandbox"\n')
        write_package(workspace, "d", "d")

        commands.install(workspace, str(workspace / "b"))

        assert (workspace / "a" / "BUILD.bazel").exists()
        assert (workspace / "b" / "BUILD.bazel").exists()
        assert not (workspace / "c" / "BUILD.bazel").exists()
        assert not (workspace / "d" / "BUILD.bazel").exists()
        mock_pm.assert_called_once()

    def test_root_then_project_install_agree(
        self, mock_pm: MagicMock, tmp_path: Path
    ) -> None:
        write_manifest(tmp_path, ["a", "b"], 'workspace = "sandbox"\n')
        write_package(tmp_path, "a", "a")
        write_package(tmp_path, "b", "b", dependencies={"a": "^1.0.0"})

        commands.install(tmp_path)
        after_root = (tmp_path / "b" / "BUILD.bazel").read_text()
        commands.install(tmp_path, str(tmp_path / "b"))

        assert (tmp_path / "b" / "BUILD.bazel").read_text() == after_root
        assert _deps(tmp_path / "b") == ['"//a:library"']
        commands.install(tmp_path, frozen_lockfile=True)

    def test_writes_bazelignore(self, mock_pm: MagicMock, workspace: Path) -> None:
        commands.install(workspace)
        assert (workspace / ".bazelignore").read_text() == "node_modules\n"

    def test_frozen_lockfile_rejects_stale_bazelignore(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        commands.install(workspace)
        (workspace / ".bazelignore").write_text("dist\n")

        with pytest.raises(ImmutableModeViolation) as exc:
            commands.install(workspace, frozen_lockfile=True)

        assert exc.value.changed_files == [".bazelignore"]
        assert (workspace / ".bazelignore").read_text() == "dist\n"

    def test_frozen_lockfile_rejects_stale_build_files(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        with pytest.raises(ImmutableModeViolation):
            commands.install(workspace, frozen_lockfile=True)

        assert not (workspace / "a" / "BUILD.bazel").exists()
        mock_pm.assert_not_called()

    def test_frozen_lockfile_when_synced(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        commands.install(workspace)
        commands.install(workspace, frozen_lockfile=True)

        mock_pm.assert_called_with(ANY, "install", "--immutable", cwd=workspace)

    def test_host_workspace_skips_build_files(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        write_manifest(workspace, ["a", "b", "c"])
        commands.install(workspace)

        assert not (workspace / "b" / "BUILD.bazel").exists()
        mock_pm.assert_called_once()
        assert not (workspace / ".bazelignore").exists()

    def test_cycle_aborts_before_writing(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        write_package(workspace, "a", "a", dependencies={"c": "workspace:c"})

        with pytest.raises(CycleError, match="a -> c -> b -> a"):
            commands.install(workspace)

        assert not (workspace / "a" / "BUILD.bazel").exists()
        mock_pm.assert_not_called()

    def test_policy_violation(self, mock_pm: MagicMock, workspace: Path) -> None:
        write_manifest(workspace, ["a", "b", "c"], LOCKSTEP)
        write_package(
            workspace,
            "b",
            "b",
            dependencies={"a": "workspace:a", "left-pad": "^2.0.0"},
        )

        with pytest.raises(PolicyViolation) as exc:
            commands.install(workspace)

        assert exc.value.report.reported == {
            "left-pad": {"^1.0.0": ["a"], "^2.0.0": ["b"]}
        }
        mock_pm.assert_not_called()

    def test_unregistered_project(self, mock_pm: MagicMock, workspace: Path) -> None:
        write_package(workspace, "stray", "stray")
        with pytest.raises(ProjectNotFoundError, match="not listed in manifest.toml"):
            commands.install(workspace, str(workspace / "stray"))

    def test_uses_toolchain(self, mock_pm: MagicMock, workspace: Path) -> None:
        toolchain = Toolchain(yarn="/opt/yarn")
        commands.install(workspace, toolchain=toolchain)
        mock_pm.assert_called_once_with(toolchain, "install", cwd=workspace)


@patch("monobuild.commands.run_package_manager")
class TestAdd:
    def test_links_local_project(self, mock_pm: MagicMock, workspace: Path) -> None:
        commands.add(workspace, str(workspace / "c"), ["a"])

        assert read_package(workspace / "c")["dependencies"] == {
            "a": "workspace:a",
            "b": "workspace:b",
        }
        assert _deps(workspace / "c") == ['"//a:library"', '"//b:library"']
        mock_pm.assert_not_called()

    def test_links_as_dev_dependency(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        commands.add(workspace, str(workspace / "c"), ["a@1.0.0"], dev=True)

        assert read_package(workspace / "c")["devDependencies"] == {
            "a": "workspace:a"
        }

    def test_cycle_aborts_before_writing(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        before = read_package(workspace / "a")

        with pytest.raises(CycleError, match="a -> b -> a"):
            commands.add(workspace, str(workspace / "a"), ["b"])

        assert read_package(workspace / "a") == before
        assert not (workspace / "a" / "BUILD.bazel").exists()
        mock_pm.assert_not_called()

    def test_external_package(self, mock_pm: MagicMock, workspace: Path) -> None:
        commands.add(workspace, str(workspace / "c"), ["react@^18.0.0"], dev=True)

        mock_pm.assert_called_once_with(
            ANY, "workspace", "c", "add", "react@^18.0.0", "--dev", cwd=workspace
        )

    def test_other_version_of_local_is_external(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        commands.add(workspace, str(workspace / "c"), ["a@2.0.0"])

        assert "a" not in read_package(workspace / "c")["dependencies"]
        mock_pm.assert_called_once_with(
            ANY, "workspace", "c", "add", "a@2.0.0", cwd=workspace
        )

    def test_reuses_workspace_version_in_lockstep(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        write_manifest(workspace, ["a", "b", "c"], LOCKSTEP)
        commands.add(workspace, str(workspace / "c"), ["left-pad"])

        mock_pm.assert_called_once_with(
            ANY, "workspace", "c", "add", "left-pad@^1.0.0", cwd=workspace
        )

    def test_reuses_highest_workspace_version(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        write_manifest(workspace, ["a", "b", "c"], LOCKSTEP)
        write_package(
            workspace,
            "b",
            "b",
            dependencies={"a": "workspace:a", "left-pad": "^1.3.0"},
        )

        commands.add(workspace, str(workspace / "c"), ["left-pad"])

        mock_pm.assert_called_once_with(
            ANY, "workspace", "c", "add", "left-pad@^1.3.0", cwd=workspace
        )


@patch("monobuild.commands.run_package_manager")
class TestRemove:
    def test_unlinks_local_project(self, mock_pm: MagicMock, workspace: Path) -> None:
        commands.install(workspace)
        mock_pm.reset_mock()

        commands.remove(workspace, str(workspace / "c"), ["b"])

        assert "dependencies" not in read_package(workspace / "c")
        assert _deps(workspace / "c") == []
        mock_pm.assert_not_called()

    def test_validates_before_writing(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        write_package(workspace, "a", "a", dependencies={"c": "workspace:c"})
        write_package(
            workspace, "c", "c", dependencies={"a": "workspace:a", "b": "workspace:b"}
        )

        # c -> b -> a -> c survives removing the direct link
        with pytest.raises(CycleError):
            commands.remove(workspace, str(workspace / "c"), ["a"])

        assert read_package(workspace / "c")["dependencies"] == {
            "a": "workspace:a",
            "b": "workspace:b",
        }
        mock_pm.assert_not_called()

    def test_external_package(self, mock_pm: MagicMock, workspace: Path) -> None:
        commands.remove(workspace, str(workspace / "a"), ["left-pad"])
        mock_pm.assert_called_once_with(
            ANY, "workspace", "a", "remove", "left-pad", cwd=workspace
        )


@patch("monobuild.commands.run_package_manager")
class TestUpgrade:
    def test_pins_local_project_everywhere(
        self, mock_pm: MagicMock, released: Path
    ) -> None:
        write_package(released, "a", "a", version="1.2.0")
        write_package(released, "c", "c", devDependencies={"a": "1.0.0", "b": "workspace:b"})

        commands.upgrade(released, ["a"])

        assert read_package(released / "b")["dependencies"] == {"a": "1.2.0"}
        assert read_package(released / "c")["devDependencies"] == {
            "a": "1.2.0",
            "b": "workspace:b",
        }
        mock_pm.assert_not_called()

    def test_policy_violation_aborts_before_writing(
        self, mock_pm: MagicMock, released: Path
    ) -> None:
        write_manifest(released, ["a", "b", "c"], "[version_policy]\nlockstep = true\n")
        write_package(released, "a", "a", version="1.2.0", dependencies={"x": "^1.0.0"})
        write_package(
            released, "c", "c", devDependencies={"b": "workspace:b", "x": "^2.0.0"}
        )

        with pytest.raises(PolicyViolation):
            commands.upgrade(released, ["a"])

        assert read_package(released / "b")["dependencies"] == {"a": "^1.0.0"}
        mock_pm.assert_not_called()

    def test_wrong_local_version(self, mock_pm: MagicMock, released: Path) -> None:
        with pytest.raises(CommandError, match="You must use version a@1.0.0"):
            commands.upgrade(released, ["a@2.0.0"])

    def test_external_package(self, mock_pm: MagicMock, released: Path) -> None:
        commands.upgrade(released, ["react@^18.0.0"])
        mock_pm.assert_called_once_with(ANY, "up", "-C", "react@^18.0.0", cwd=released)


@patch("monobuild.commands.run_package_manager")
class TestBump:
    def test_bumps_target_and_version_dependents(
        self, mock_pm: MagicMock, released: Path
    ) -> None:
        bumped = commands.bump(released, str(released / "a"), "minor")

        assert bumped == {
            "b": VersionBump(old="1.0.0", new="1.1.0"),
            "a": VersionBump(old="1.0.0", new="1.1.0"),
        }
        assert read_package(released / "a")["version"] == "1.1.0"
        assert read_package(released / "b")["version"] == "1.1.0"
        assert read_package(released / "b")["dependencies"] == {"a": "1.1.0"}
        # c only links b
        assert read_package(released / "c")["version"] == "1.0.0"
        assert read_package(released / "c")["devDependencies"] == {
            "b": "workspace:b"
        }

    def test_private_projects_are_skipped(
        self, mock_pm: MagicMock, released: Path
    ) -> None:
        write_package(released, "b", "b", dependencies={"a": "^1.0.0"}, private=True)

        bumped = commands.bump(released, str(released / "a"), "patch")

        assert list(bumped) == ["a"]
        assert read_package(released / "b")["version"] == "1.0.0"

    def test_none_changes_nothing(self, mock_pm: MagicMock, released: Path) -> None:
        assert commands.bump(released, str(released / "a"), "none") == {}

    def test_frozen_package_json(self, mock_pm: MagicMock, released: Path) -> None:
        with pytest.raises(CommandError, match="frozen_package_json"):
            commands.bump(
                released, str(released / "a"), "patch", frozen_package_json=True
            )
        assert read_package(released / "a")["version"] == "1.0.0"

    def test_cycle_aborts_before_writing(
        self, mock_pm: MagicMock, released: Path
    ) -> None:
        write_package(released, "a", "a", dependencies={"c": "workspace:c"})

        with pytest.raises(CycleError):
            commands.bump(released, str(released / "a"), "patch")

        assert read_package(released / "a")["version"] == "1.0.0"
        assert read_package(released / "b")["version"] == "1.0.0"

    def test_invalid_kind(self, mock_pm: MagicMock, released: Path) -> None:
        with pytest.raises(CommandError, match="Invalid bump type"):
            commands.bump(released, str(released / "a"), "huge")


@patch("monobuild.commands.run_package_manager")
class TestAlign:
    def test_aligns_to_workspace_version(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        write_manifest(workspace, ["a", "b", "c"], LOCKSTEP)
        write_package(
            workspace,
            "c",
            "c",
            dependencies={"b": "workspace:b", "left-pad": "^0.9.0"},
            resolutions={"left-pad": "^0.9.0"},
        )

        aligned = commands.align(workspace, str(workspace / "c"))

        assert aligned == ["left-pad"]
        c = read_package(workspace / "c")
        assert c["dependencies"] == {"b": "workspace:b", "left-pad": "^1.0.0"}
        assert c["resolutions"] == {"left-pad": "^1.0.0"}
        mock_pm.assert_called_once_with(ANY, "install", cwd=workspace)

    def test_exceptions_are_left_alone(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        write_manifest(
            workspace,
            ["a", "b", "c"],
            'workspace = "sandbox"\n\n[version_policy]\nlockstep = true\n'
            'exceptions = ["left-pad"]\n',
        )
        write_package(
            workspace,
            "c",
            "c",
            dependencies={"b": "workspace:b", "left-pad": "^0.9.0"},
        )

        assert commands.align(workspace, str(workspace / "c")) == []
        assert read_package(workspace / "c")["dependencies"]["left-pad"] == "^0.9.0"

    def test_without_policy_only_installs(
        self, mock_pm: MagicMock, workspace: Path
    ) -> None:
        before = read_package(workspace / "c")

        assert commands.align(workspace, str(workspace / "c")) == []

        assert read_package(workspace / "c") == before
        mock_pm.assert_called_once()


class TestCheck:
    def test_valid_workspace(self, workspace: Path) -> None:
        write_manifest(workspace, ["a", "b", "c"], LOCKSTEP)
        assert commands.check(workspace) == (True, "")

    def test_reports_violations(self, workspace: Path) -> None:
        write_manifest(workspace, ["a", "b", "c"], LOCKSTEP)
        write_package(workspace, "c", "c", dependencies={"left-pad": "^2.0.0"})

        valid, message = commands.check(workspace)

        assert not valid
        assert "left-pad" in message
        valid, message = commands.check(workspace, as_json=True)
        assert message.startswith("{")


@patch("monobuild.commands.run_build_tool")
class TestBuild:
    def test_builds_project_label(self, mock_build: MagicMock, workspace: Path) -> None:
        commands.build(workspace, str(workspace / "c"))
        mock_build.assert_called_once_with(ANY, "build", "//c:library", cwd=workspace)

    def test_cycle(self, mock_build: MagicMock, workspace: Path) -> None:
        write_package(workspace, "a", "a", dependencies={"c": "workspace:c"})
        with pytest.raises(CycleError):
            commands.build(workspace, str(workspace / "c"))
        mock_build.assert_not_called()
