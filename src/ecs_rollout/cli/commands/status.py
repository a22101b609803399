"""Status command."""

from pathlib import Path

import click

from ecs_rollout.cli.commands.options import aws_options
from ecs_rollout.cli.errors import report_remote_error
from ecs_rollout.cli.render import print_remote_state
from ecs_rollout.cli.steps import ExitCode, load_spec_or_exit, platform_or_exit
from ecs_rollout.core.deployments.aws_ecs import RemoteAPIError, fetch_remote_state
from ecs_rollout.core.settings import RolloutSettings


@click.command()
@aws_options
@click.pass_context
def status(ctx: click.Context, config_path: Path, region: str | None, profile: str | None) -> None:
    """Show what currently exists for the described service."""
    settings: RolloutSettings = ctx.obj
    spec = load_spec_or_exit(ctx, config_path)
    platform = platform_or_exit(
        ctx,
        region or settings.aws_region,
        profile or settings.aws_profile,
        check_identity=False,
    )

    try:
        remote = fetch_remote_state(platform, spec)
    except RemoteAPIError as exc:
        report_remote_error(exc)
        ctx.exit(ExitCode.REMOTE_API_FAILED)

    print_remote_state(spec, remote)
