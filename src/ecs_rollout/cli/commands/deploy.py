"""Deploy command."""

import threading
from pathlib import Path

import click

from ecs_rollout.cli.commands.options import aws_options
from ecs_rollout.cli.errors import report_remote_error
from ecs_rollout.cli.render import print_plan, print_result
from ecs_rollout.cli.steps import (
    STATUS_EXIT_CODES,
    ExitCode,
    abort_on_signals,
    load_spec_or_exit,
    platform_or_exit,
    report_step,
)
from ecs_rollout.cli.ui import err_console
from ecs_rollout.core.deployments.aws_ecs import (
    ConvergencePolicy,
    DeploymentLockedError,
    DeploymentStatus,
    deploy_service,
)
from ecs_rollout.core.settings import RolloutSettings


@click.command()
@aws_options
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds to wait for the service to converge.",
)
@click.option(
    "--poll-interval",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds between service status polls.",
)
@click.option("--dry-run", is_flag=True, help="Print the plan without changing anything.")
@click.pass_context
def deploy(
    ctx: click.Context,
    config_path: Path,
    region: str | None,
    profile: str | None,
    timeout: float | None,
    poll_interval: float | None,
    dry_run: bool,
) -> None:
    """Roll out the service described by a deployment descriptor.

    Creates the cluster, task definition revision, service and ingress rules
    that are missing or out of date, then waits for the service to reach
    steady state. A rollout that does not converge is rolled back to the
    previous task definition revision.
    """
    settings: RolloutSettings = ctx.obj
    spec = load_spec_or_exit(ctx, config_path)
    platform = platform_or_exit(
        ctx,
        region or settings.aws_region,
        profile or settings.aws_profile,
        check_identity=not dry_run,
    )
    policy = ConvergencePolicy(
        timeout_seconds=timeout or settings.timeout_seconds,
        poll_interval_seconds=poll_interval or settings.poll_interval_seconds,
    )

    abort = threading.Event()
    with abort_on_signals(abort):
        try:
            result = deploy_service(
                spec,
                platform,
                policy,
                lock_dir=settings.lock_dir,
                dry_run=dry_run,
                abort=abort,
                reporter=report_step,
            )
        except DeploymentLockedError as exc:
            err_console.print(f"[red]{exc}[/red]")
            ctx.exit(ExitCode.LOCKED)

    if result.status == DeploymentStatus.PLANNED:
        print_plan(result.planned)
    if result.status == DeploymentStatus.REMOTE_API_FAILED and result.exception is not None:
        report_remote_error(result.exception)
    print_result(result)
    ctx.exit(STATUS_EXIT_CODES[result.status])
