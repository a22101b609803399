"""Plan command."""

from pathlib import Path

import click

from ecs_rollout.cli.commands.options import aws_options
from ecs_rollout.cli.errors import report_remote_error
from ecs_rollout.cli.render import print_plan
from ecs_rollout.cli.steps import ExitCode, load_spec_or_exit, platform_or_exit
from ecs_rollout.cli.ui import err_console
from ecs_rollout.core.deployments.aws_ecs import (
    RemoteAPIError,
    ValidationError,
    build_plan,
    fetch_remote_state,
)
from ecs_rollout.core.settings import RolloutSettings


@click.command()
@aws_options
@click.pass_context
def plan(ctx: click.Context, config_path: Path, region: str | None, profile: str | None) -> None:
    """Show the operations a deploy would apply, without applying them."""
    settings: RolloutSettings = ctx.obj
    spec = load_spec_or_exit(ctx, config_path)
    platform = platform_or_exit(
        ctx,
        region or settings.aws_region,
        profile or settings.aws_profile,
        check_identity=False,
    )

    try:
        operations = build_plan(spec, fetch_remote_state(platform, spec))
    except RemoteAPIError as exc:
        report_remote_error(exc)
        ctx.exit(ExitCode.REMOTE_API_FAILED)
    except ValidationError as exc:
        err_console.print(f"[red]{exc}[/red]")
        ctx.exit(ExitCode.VALIDATION_FAILED)

    print_plan(operations)
