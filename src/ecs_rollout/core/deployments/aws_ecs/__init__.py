"""AWS ECS rollout helpers."""

from ecs_rollout.core.deployments.aws_ecs.deploy import deploy_service, run_deployment
from ecs_rollout.core.deployments.aws_ecs.descriptor import (
    load_descriptor,
    parse_descriptor,
    validate_spec,
)
from ecs_rollout.core.deployments.aws_ecs.errors import (
    ConvergenceError,
    ConvergenceTimeoutError,
    DeploymentError,
    DeploymentLockedError,
    HealthCheckFailedError,
    RemoteAPIError,
    RollbackFailureError,
    ValidationError,
)
from ecs_rollout.core.deployments.aws_ecs.executor import (
    ConvergencePolicy,
    Executor,
    wait_for_steady_state,
)
from ecs_rollout.core.deployments.aws_ecs.lock import DeploymentLock
from ecs_rollout.core.deployments.aws_ecs.models import (
    DeploymentResult,
    DeploymentSpec,
    DeploymentStatus,
    IngressRule,
    RemoteState,
    ServiceState,
)
from ecs_rollout.core.deployments.aws_ecs.operations import (
    ChangeOperation,
    CreateCluster,
    RegisterTaskDefinition,
    UpdateNetworking,
    UpdateService,
)
from ecs_rollout.core.deployments.aws_ecs.plan import build_plan, resolve_placement
from ecs_rollout.core.deployments.aws_ecs.platform import DeploymentPlatform, EcsPlatform
from ecs_rollout.core.deployments.aws_ecs.rollback import roll_back
from ecs_rollout.core.deployments.aws_ecs.session import create_session, get_identity
from ecs_rollout.core.deployments.aws_ecs.state import fetch_remote_state

__all__ = [
    "ChangeOperation",
    "ConvergenceError",
    "ConvergencePolicy",
    "ConvergenceTimeoutError",
    "CreateCluster",
    "DeploymentError",
    "DeploymentLock",
    "DeploymentLockedError",
    "DeploymentPlatform",
    "DeploymentResult",
    "DeploymentSpec",
    "DeploymentStatus",
    "EcsPlatform",
    "Executor",
    "HealthCheckFailedError",
    "IngressRule",
    "RegisterTaskDefinition",
    "RemoteAPIError",
    "RemoteState",
    "RollbackFailureError",
    "ServiceState",
    "UpdateNetworking",
    "UpdateService",
    "ValidationError",
    "build_plan",
    "create_session",
    "deploy_service",
    "fetch_remote_state",
    "get_identity",
    "load_descriptor",
    "parse_descriptor",
    "resolve_placement",
    "roll_back",
    "run_deployment",
    "validate_spec",
    "wait_for_steady_state",
]
