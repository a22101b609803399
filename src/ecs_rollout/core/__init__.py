"""ecs-rollout core modules."""

from ecs_rollout.core.settings import RolloutSettings, get_settings

__all__ = [
    "RolloutSettings",
    "get_settings",
]
