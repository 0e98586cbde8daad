"""Process and output utilities.

Provides simple wrappers around subprocess calls for the external package
manager and build tool, plus output formatting helpers.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from pathlib import Path

from .errors import CommandError
from .models import Toolchain


def load_toolchain(environ: Mapping[str, str] | None = None) -> Toolchain:
    """Build the Toolchain for one command invocation.

    Binary paths come from MONOBUILD_YARN and MONOBUILD_BAZEL, falling
    back to whatever is on PATH.
    """
    environ = os.environ if environ is None else environ
    defaults = Toolchain()
    return Toolchain(
        yarn=environ.get("MONOBUILD_YARN", defaults.yarn),
        bazel=environ.get("MONOBUILD_BAZEL", defaults.bazel),
    )


def run(
    *args: str,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[bytes]:
    """Run an external command.

    Output is not captured - it streams directly to the terminal so users
    can see install progress, etc.

    Args:
        *args: Command and arguments (e.g., "yarn", "install").
        cwd: Working directory.
        env: Extra environment variables, layered over os.environ.
        check: If True (default), raise on non-zero exit.

    Raises:
        CommandError: If check is set and the command fails.
    """
    full_env = {**os.environ, **env} if env else None
    result = subprocess.run(args, cwd=cwd, env=full_env)
    if check and result.returncode != 0:
        raise CommandError(
            f"Command failed with exit code {result.returncode}: {' '.join(args)}"
        )
    return result


def run_package_manager(
    toolchain: Toolchain, *args: str, cwd: str | Path
) -> subprocess.CompletedProcess[bytes]:
    """Invoke the workspace package manager (yarn) with args."""
    return run(toolchain.yarn, *args, cwd=cwd, env=toolchain.env)


def run_build_tool(
    toolchain: Toolchain, *args: str, cwd: str | Path
) -> subprocess.CompletedProcess[bytes]:
    """Invoke the build tool (bazel) with args."""
    return run(toolchain.bazel, *args, cwd=cwd, env=toolchain.env)


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of a command in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")
