"""Options shared by the rollout commands."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

config_option = click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to the deployment descriptor (YAML or JSON).",
)
region_option = click.option("--region", default=None, help="AWS region (overrides settings).")
profile_option = click.option(
    "--profile", default=None, help="AWS named profile (overrides settings)."
)


def aws_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the descriptor and AWS target options to a command."""
    return config_option(region_option(profile_option(func)))
