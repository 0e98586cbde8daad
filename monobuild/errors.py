"""Exceptions raised by monobuild.

Everything derives from MonobuildError so the CLI can turn any of them into
a clean error message. The core never catches these itself.
"""

from __future__ import annotations

from collections.abc import Sequence

from .models import Cycle, MismatchReport


class MonobuildError(Exception):
    """Base class for all monobuild errors."""


class StructuralError(MonobuildError):
    """The workspace graph is malformed (missing or duplicate names)."""


class CycleError(StructuralError):
    """One or more dependency cycles exist among workspace projects."""

    def __init__(self, cycles: Sequence[Cycle]) -> None:
        self.cycles = list(cycles)
        lines = "\n".join(f"  - {c}" for c in self.cycles)
        super().__init__(f"Cyclic dependencies detected:\n{lines}")


class PolicyViolation(MonobuildError):
    """The workspace violates its version policy."""

    def __init__(self, report: MismatchReport) -> None:
        from .policy import get_error_message

        self.report = report
        super().__init__(get_error_message(report))


class ImmutableModeViolation(MonobuildError):
    """Build files would change while running in immutable mode."""

    def __init__(self, changed_files: Sequence[str]) -> None:
        self.changed_files = list(changed_files)
        files = "\n".join(f"  - {f}" for f in self.changed_files)
        super().__init__(
            "The following build files are out of date:\n"
            f"{files}\n\nRun install without --frozen-lockfile to regenerate them."
        )


class ProjectNotFoundError(MonobuildError):
    """A project directory or name is not part of the loaded workspace."""


class CommandError(MonobuildError):
    """A command cannot proceed (bad arguments or a failed external tool)."""
