"""Shared helpers for CLI commands."""

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from enum import IntEnum
from pathlib import Path
from types import FrameType

import click
from botocore.exceptions import BotoCoreError

from ecs_rollout.cli.errors import report_remote_error
from ecs_rollout.cli.ui import console, err_console
from ecs_rollout.core.deployments.aws_ecs import (
    DeploymentSpec,
    DeploymentStatus,
    EcsPlatform,
    RemoteAPIError,
    ValidationError,
    create_session,
    get_identity,
    load_descriptor,
)


class ExitCode(IntEnum):
    """Process exit codes, one per failure kind."""

    OK = 0
    VALIDATION_FAILED = 3
    REMOTE_API_FAILED = 4
    CONVERGENCE_FAILED = 5
    ROLLBACK_FAILED = 6
    LOCKED = 7
    ABORTED = 130


STATUS_EXIT_CODES = {
    DeploymentStatus.SUCCEEDED: ExitCode.OK,
    DeploymentStatus.UNCHANGED: ExitCode.OK,
    DeploymentStatus.PLANNED: ExitCode.OK,
    DeploymentStatus.VALIDATION_FAILED: ExitCode.VALIDATION_FAILED,
    DeploymentStatus.REMOTE_API_FAILED: ExitCode.REMOTE_API_FAILED,
    DeploymentStatus.CONVERGENCE_FAILED: ExitCode.CONVERGENCE_FAILED,
    DeploymentStatus.ROLLBACK_FAILED: ExitCode.ROLLBACK_FAILED,
    DeploymentStatus.ABORTED: ExitCode.ABORTED,
}


def report_step(message: str) -> None:
    """Report deployment progress to the user.

    Args:
        message: Progress message to display.
    """
    console.print(f"[bold cyan]•[/bold cyan] {message}")


def load_spec_or_exit(ctx: click.Context, path: Path) -> DeploymentSpec:
    """Load the descriptor, exiting with the validation code on failure."""
    try:
        return load_descriptor(path)
    except ValidationError as exc:
        err_console.print(f"[red]{exc}[/red]")
        ctx.exit(ExitCode.VALIDATION_FAILED)


def platform_or_exit(
    ctx: click.Context,
    region: str,
    profile: str | None,
    check_identity: bool = True,
) -> EcsPlatform:
    """Create the ECS platform, exiting with the remote code on failure."""
    try:
        session = create_session(region, profile)
        if check_identity:
            identity = get_identity(session)
            report_step(f"Using AWS account {identity['Account']} ({identity['Arn']})")
        return EcsPlatform(session)
    except (RemoteAPIError, BotoCoreError) as exc:
        report_remote_error(exc)
        ctx.exit(ExitCode.REMOTE_API_FAILED)


@contextmanager
def abort_on_signals(abort: threading.Event) -> Iterator[threading.Event]:
    """Set ``abort`` on SIGINT or SIGTERM while the block runs.

    A second SIGINT interrupts the process immediately.
    """

    def _handler(signum: int, frame: FrameType | None) -> None:
        if abort.is_set() and signum == signal.SIGINT:
            signal.signal(signal.SIGINT, previous[signal.SIGINT] or signal.SIG_DFL)
            raise KeyboardInterrupt
        err_console.print(
            "[yellow]Abort requested. No further changes will be made; "
            "waiting for the final service state.[/yellow]"
        )
        abort.set()

    previous = {
        signal.SIGINT: signal.getsignal(signal.SIGINT),
        signal.SIGTERM: signal.getsignal(signal.SIGTERM),
    }
    installed = threading.current_thread() is threading.main_thread()
    if installed:
        for signum in previous:
            signal.signal(signum, _handler)
    try:
        yield abort
    finally:
        if installed:
            for signum, handler in previous.items():
                signal.signal(signum, handler or signal.SIG_DFL)
