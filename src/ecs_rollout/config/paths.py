"""Shared filesystem paths for user configuration and runtime state."""

from pathlib import Path

from platformdirs import user_config_dir, user_state_dir

APP_NAME = "ecs-rollout"
ENV_FILENAME = ".env"
LOCKS_DIRNAME = "locks"


def config_dir() -> Path:
    """Return the user configuration directory.

    Returns:
        The user configuration directory path.
    """
    return Path(user_config_dir(APP_NAME))


def env_path() -> Path:
    """Return the user env file path.

    Returns:
        The user env file path.
    """
    return config_dir() / ENV_FILENAME


def lock_dir() -> Path:
    """Return the directory holding per-service deployment locks.

    Returns:
        The lock directory path.
    """
    return Path(user_state_dir(APP_NAME)) / LOCKS_DIRNAME
