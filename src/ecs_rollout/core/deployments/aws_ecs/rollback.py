"""Rollback to the task definition a service ran before an update."""

import logging
import threading
import time
from collections.abc import Callable

from ecs_rollout.core.deployments.aws_ecs.errors import ConvergenceError, RollbackFailureError
from ecs_rollout.core.deployments.aws_ecs.executor import (
    REMOTE_ERRORS,
    ConvergencePolicy,
    apply_service_update,
    wait_for_steady_state,
)
from ecs_rollout.core.deployments.aws_ecs.models import ServiceState
from ecs_rollout.core.deployments.aws_ecs.operations import UpdateService
from ecs_rollout.core.deployments.aws_ecs.platform import DeploymentPlatform

logger = logging.getLogger(__name__)


def _ignore(_: str) -> None:
    return None


def rollback_operation(update: UpdateService) -> UpdateService | None:
    """Return the UpdateService that undoes an update, if there is anything to restore.

    A service created by the failed run has no earlier revision.
    """
    if update.previous_task_definition_arn is None:
        return None
    return UpdateService(
        cluster_name=update.cluster_name,
        service_name=update.service_name,
        desired_count=(
            update.previous_desired_count
            if update.previous_desired_count is not None
            else update.desired_count
        ),
        task_definition_arn=update.previous_task_definition_arn,
    )


def roll_back(
    platform: DeploymentPlatform,
    update: UpdateService,
    policy: ConvergencePolicy,
    abort: threading.Event,
    reporter: Callable[[str], None] = _ignore,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> ServiceState | None:
    """Point the service back at its previous revision and wait for it.

    Args:
        platform: Platform the service runs on.
        update: The UpdateService operation that failed to converge.
        policy: Polling policy, the same one used for the rollout.
        abort: Operator abort signal.
        reporter: Progress callback.
        clock: Monotonic clock, replaceable in tests.
        sleep: Pause used once the abort event is set.

    Returns:
        The converged service state, or None when there was no previous
        revision to restore.

    Raises:
        RollbackFailureError: If the rollback cannot be issued or does not
            converge. Manual intervention is needed.
    """
    operation = rollback_operation(update)
    if operation is None:
        reporter(f"Service {update.service_name} has no previous revision to roll back to")
        return None

    reporter(f"Rolling back {update.service_name} to {operation.task_definition_arn}")
    logger.warning(
        "Rolling back %s to %s", update.service_name, operation.task_definition_arn
    )
    try:
        apply_service_update(platform, operation, operation.task_definition_arn)
    except REMOTE_ERRORS as exc:
        raise RollbackFailureError(
            f"Rollback of {update.service_name} could not be issued: {exc}"
        ) from exc

    try:
        return wait_for_steady_state(
            platform,
            operation.cluster_name,
            operation.service_name,
            policy,
            abort,
            clock=clock,
            sleep=sleep,
        )
    except ConvergenceError as exc:
        raise RollbackFailureError(
            f"Rollback of {update.service_name} to {operation.task_definition_arn} "
            f"did not converge: {exc}"
        ) from exc
