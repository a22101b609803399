"""ecs-rollout - safe, idempotent rollouts of a single Fargate service."""

from ecs_rollout.core.deployments.aws_ecs import (
    DeploymentResult,
    DeploymentSpec,
    DeploymentStatus,
    deploy_service,
    load_descriptor,
)

__all__ = [
    "DeploymentResult",
    "DeploymentSpec",
    "DeploymentStatus",
    "deploy_service",
    "load_descriptor",
]
