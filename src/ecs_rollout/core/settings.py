"""Runtime settings for ecs-rollout."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ecs_rollout.config.paths import env_path, lock_dir

ENV_FILE_PATH = str(env_path())


class RolloutSettings(BaseSettings):
    """Defaults applied to every deployment run.

    Values come from ``ECS_ROLLOUT_*`` environment variables or the user env
    file. CLI options take precedence over both.
    """

    model_config = SettingsConfigDict(
        env_prefix="ECS_ROLLOUT_",
        env_file=ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    aws_region: str = Field(default="eu-west-2", description="AWS region")
    aws_profile: str | None = Field(default=None, description="AWS named profile")
    timeout_seconds: int = Field(
        default=600, gt=0, description="Convergence timeout for a rollout"
    )
    poll_interval_seconds: float = Field(
        default=10.0, gt=0, description="Delay between service status polls"
    )
    lock_dir: Path = Field(
        default_factory=lock_dir, description="Directory for per-service lock files"
    )


def get_settings() -> RolloutSettings:
    """Load and return the rollout settings."""
    return RolloutSettings()
