"""CLI entry point for monobuild."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from monobuild import commands
from monobuild.errors import MonobuildError
from monobuild.metadata import find_root
from monobuild.shell import load_toolchain


class Settings:
    """Per-invocation settings shared by every command."""

    def __init__(self, root: Path, cwd: str) -> None:
        self.root = root
        self.cwd = cwd
        self.toolchain = load_toolchain()


pass_settings = click.make_pass_decorator(Settings)

T = TypeVar("T")


def _run(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    try:
        return fn(*args, **kwargs)
    except MonobuildError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(package_name="monobuild")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="MONOBUILD_ROOT",
    help="Workspace root. Defaults to the nearest directory with a manifest.toml.",
)
@click.option(
    "--cwd",
    type=click.Path(file_okay=False),
    default=None,
    help="Project directory to operate on. Defaults to the current directory.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, root: Path | None, cwd: str | None, verbose: bool) -> None:
    """Monorepo dependency graph and BUILD file manager."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    cwd = os.path.abspath(cwd or os.getcwd())
    ctx.obj = Settings(root=(root or find_root(cwd)).absolute(), cwd=cwd)


@cli.command()
@click.option(
    "--frozen-lockfile",
    is_flag=True,
    help="Fail instead of updating the lockfile or any BUILD file.",
)
@pass_settings
def install(settings: Settings, frozen_lockfile: bool) -> None:
    """Validate the workspace, sync BUILD files and install dependencies."""
    _run(
        commands.install,
        settings.root,
        settings.cwd,
        frozen_lockfile=frozen_lockfile,
        toolchain=settings.toolchain,
    )


@cli.command()
@click.argument("packages", nargs=-1, required=True)
@click.option("-D", "--dev", is_flag=True, help="Add as devDependencies.")
@pass_settings
def add(settings: Settings, packages: tuple[str, ...], dev: bool) -> None:
    """Add dependencies to the current project."""
    _run(
        commands.add,
        settings.root,
        settings.cwd,
        packages,
        dev=dev,
        toolchain=settings.toolchain,
    )


@cli.command()
@click.argument("packages", nargs=-1, required=True)
@pass_settings
def remove(settings: Settings, packages: tuple[str, ...]) -> None:
    """Remove dependencies from the current project."""
    _run(
        commands.remove,
        settings.root,
        settings.cwd,
        packages,
        toolchain=settings.toolchain,
    )


@cli.command()
@click.argument("packages", nargs=-1, required=True)
@pass_settings
def upgrade(settings: Settings, packages: tuple[str, ...]) -> None:
    """Upgrade dependencies across the whole workspace."""
    _run(commands.upgrade, settings.root, packages, toolchain=settings.toolchain)


@cli.command()
@pass_settings
def align(settings: Settings) -> None:
    """Align the current project's dependency versions with the workspace."""
    _run(commands.align, settings.root, settings.cwd, toolchain=settings.toolchain)


@cli.command()
@click.argument("kind", default="patch")
@click.option(
    "--frozen-package-json",
    is_flag=True,
    help="Fail if any version would change.",
)
@pass_settings
def bump(settings: Settings, kind: str, frozen_package_json: bool) -> None:
    """Bump the current project and everything that depends on it."""
    bumped = _run(
        commands.bump,
        settings.root,
        settings.cwd,
        kind,
        frozen_package_json=frozen_package_json,
        toolchain=settings.toolchain,
    )
    if not bumped:
        click.echo("Nothing to bump")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print violations as JSON.")
@pass_settings
def check(settings: Settings, as_json: bool) -> None:
    """Check the workspace against its version policy."""
    valid, message = _run(commands.check, settings.root, as_json=as_json)
    if message:
        click.echo(message)
    if not valid:
        sys.exit(1)
    if not as_json:
        click.echo("✓ No version policy violations")


@cli.command()
@pass_settings
def build(settings: Settings) -> None:
    """Build the current project with bazel."""
    _run(commands.build, settings.root, settings.cwd, toolchain=settings.toolchain)
