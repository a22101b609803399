"""Error kinds raised while planning and applying a rollout."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_rollout.core.deployments.aws_ecs.models import ServiceState
    from ecs_rollout.core.deployments.aws_ecs.operations import ChangeOperation


class DeploymentError(RuntimeError):
    """Base class for rollout failures."""


class ValidationError(DeploymentError):
    """The descriptor or its network placement is unusable.

    Raised before any remote mutation is issued.
    """


class DeploymentLockedError(DeploymentError):
    """Another rollout for the same service holds the deployment lock."""


class RemoteAPIError(DeploymentError):
    """A platform call failed.

    ``index`` and ``operation`` are set when the failure happened while
    applying a change operation, and left unset for read-only calls.
    """

    def __init__(
        self,
        cause: Exception,
        index: int | None = None,
        operation: "ChangeOperation | None" = None,
    ) -> None:
        self.cause = cause
        self.index = index
        self.operation = operation
        if operation is None:
            message = f"Reading remote state failed: {cause}"
        else:
            message = f"Operation {index} ({operation.describe()}) failed: {cause}"
        super().__init__(message)


class ConvergenceError(DeploymentError):
    """The service did not reach steady state after an update."""

    def __init__(self, message: str, last_state: "ServiceState | None" = None) -> None:
        self.last_state = last_state
        super().__init__(message)


class ConvergenceTimeoutError(ConvergenceError):
    """Steady state was not reached before the timeout."""


class HealthCheckFailedError(ConvergenceError):
    """The platform marked the new deployment as failed."""


class RollbackFailureError(DeploymentError):
    """Rolling back to the previous revision did not converge.

    The service is in an unknown state and needs operator attention.
    """
