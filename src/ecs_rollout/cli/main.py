"""CLI entrypoint for ecs-rollout."""

import logging

import click
from pydantic import ValidationError

from ecs_rollout.cli.commands.deploy import deploy
from ecs_rollout.cli.commands.plan import plan
from ecs_rollout.cli.commands.status import status
from ecs_rollout.cli.steps import ExitCode
from ecs_rollout.cli.ui import err_console
from ecs_rollout.core.settings import get_settings


def configure_logging(verbose: bool) -> None:
    """Configure root logging for a CLI run."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # botocore is very chatty at DEBUG.
    logging.getLogger("botocore").setLevel(logging.INFO if verbose else logging.WARNING)


@click.group()
@click.version_option(package_name="ecs-rollout")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Provision and roll out a single service on AWS ECS/Fargate.

    Args:
        ctx: Click context for the command invocation.
        verbose: Whether to log at debug level.
    """
    configure_logging(verbose)
    try:
        ctx.obj = get_settings()
    except ValidationError as exc:
        err_console.print(f"[red]Invalid ECS_ROLLOUT_* settings: {exc}[/red]")
        ctx.exit(ExitCode.VALIDATION_FAILED)


cli.add_command(deploy)
cli.add_command(plan)
cli.add_command(status)


def main() -> None:
    """Run the CLI."""
    cli()
