"""Apply change operations and wait for the service to converge."""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from botocore.exceptions import BotoCoreError, ClientError

from ecs_rollout.core.deployments.aws_ecs.errors import (
    ConvergenceTimeoutError,
    HealthCheckFailedError,
    RemoteAPIError,
)
from ecs_rollout.core.deployments.aws_ecs.models import ServiceState
from ecs_rollout.core.deployments.aws_ecs.operations import (
    ChangeOperation,
    CreateCluster,
    RegisterTaskDefinition,
    UpdateNetworking,
    UpdateService,
)
from ecs_rollout.core.deployments.aws_ecs.platform import DeploymentPlatform

logger = logging.getLogger(__name__)

REMOTE_ERRORS = (ClientError, BotoCoreError)


def _ignore(_: str) -> None:
    return None


@dataclass(frozen=True)
class ConvergencePolicy:
    """How long and how often to poll a service for steady state."""

    timeout_seconds: float = 600.0
    poll_interval_seconds: float = 10.0


class Executor:
    """Apply a plan strictly in order, then poll for convergence.

    Each operation is issued at most once. The first remote error stops the
    run, so no operation after the failing one is ever issued.
    """

    def __init__(
        self,
        platform: DeploymentPlatform,
        policy: ConvergencePolicy,
        abort: threading.Event,
        reporter: Callable[[str], None] = _ignore,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.platform = platform
        self.policy = policy
        self.abort = abort
        self.reporter = reporter
        self.clock = clock
        self.sleep = sleep
        self.applied: list[ChangeOperation] = []
        self.registered_task_definition_arn: str | None = None
        self.service_update: UpdateService | None = None
        self.aborted = False

    def run(self, plan: Sequence[ChangeOperation]) -> ServiceState | None:
        """Apply every operation and wait for steady state.

        Returns:
            The last observed service state, or None when the plan did not
            touch the service.

        Raises:
            RemoteAPIError: If an operation fails.
            ConvergenceTimeoutError: If the service does not settle in time.
            HealthCheckFailedError: If ECS marks the new deployment as failed.
        """
        for index, operation in enumerate(plan):
            if self.abort.is_set():
                self.aborted = True
                self.reporter("Abort requested, skipping remaining operations")
                break
            self.reporter(f"[{index + 1}/{len(plan)}] {operation.describe()}")
            try:
                self._apply(operation)
            except REMOTE_ERRORS as exc:
                logger.error("Operation %d failed: %s", index, exc)
                raise RemoteAPIError(exc, index=index, operation=operation) from exc
            self.applied.append(operation)

        update = self.service_update
        if update is None:
            return None

        self.reporter(f"Waiting for service {update.service_name} to reach steady state")
        state = wait_for_steady_state(
            self.platform,
            update.cluster_name,
            update.service_name,
            self.policy,
            self.abort,
            require_healthy=update.require_healthy,
            clock=self.clock,
            sleep=self.sleep,
        )
        self.aborted = self.aborted or self.abort.is_set()
        return state

    def _apply(self, operation: ChangeOperation) -> None:
        if isinstance(operation, CreateCluster):
            self.platform.create_cluster(operation.cluster_name)
        elif isinstance(operation, RegisterTaskDefinition):
            self.registered_task_definition_arn = self.platform.register_task_definition(operation)
            logger.info("Registered %s", self.registered_task_definition_arn)
        elif isinstance(operation, UpdateService):
            task_definition_arn = (
                operation.task_definition_arn or self.registered_task_definition_arn
            )
            apply_service_update(self.platform, operation, task_definition_arn)
            self.service_update = operation
        elif isinstance(operation, UpdateNetworking):
            self.platform.authorize_ingress(operation.security_group_id, operation.rules)
        else:
            raise TypeError(f"Unknown operation {operation!r}")


def apply_service_update(
    platform: DeploymentPlatform,
    operation: UpdateService,
    task_definition_arn: str | None,
) -> ServiceState:
    """Create or update the service named by an UpdateService operation."""
    if task_definition_arn is None:
        raise ValueError(f"No task definition available for {operation.describe()}")
    if operation.create:
        return platform.create_service(operation, task_definition_arn)
    return platform.update_service(operation, task_definition_arn)


def wait_for_steady_state(
    platform: DeploymentPlatform,
    cluster_name: str,
    service_name: str,
    policy: ConvergencePolicy,
    abort: threading.Event,
    require_healthy: bool = False,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> ServiceState:
    """Poll a service until it converges.

    The service has converged when its single deployment completed, the
    running count equals the desired count and no task reports unhealthy.
    With ``require_healthy`` every task must report healthy. Setting the
    abort event does not end the wait: polling goes on at the same interval
    until the service settles or the deadline passes, so the caller can
    report the state the service actually ended in.

    Raises:
        HealthCheckFailedError: If ECS marks the primary deployment as failed.
        ConvergenceTimeoutError: If the timeout elapses first.
    """
    deadline = clock() + policy.timeout_seconds
    state: ServiceState | None = None
    while True:
        try:
            state = platform.describe_service(cluster_name, service_name)
        except REMOTE_ERRORS as exc:
            # Reads are safe to repeat; keep polling until the deadline.
            logger.warning("Could not read service %s: %s", service_name, exc)
            if clock() >= deadline:
                raise ConvergenceTimeoutError(
                    f"Service {service_name} did not reach steady state within "
                    f"{policy.timeout_seconds:g} seconds: {exc}",
                    last_state=state,
                ) from exc
            _pause(abort, sleep, min(policy.poll_interval_seconds, max(deadline - clock(), 0)))
            continue
        if state is None:
            raise ConvergenceTimeoutError(f"Service {service_name} disappeared while waiting.")

        primary = state.primary_deployment
        if primary is not None and primary.rollout_state == "FAILED":
            reason = primary.rollout_state_reason or "deployment failed"
            raise HealthCheckFailedError(
                f"Service {service_name} deployment failed: {reason}", last_state=state
            )

        if state.is_steady and _tasks_healthy(
            platform, cluster_name, service_name, require_healthy
        ):
            logger.info("Service %s is stable with %d tasks", service_name, state.running_count)
            return state

        remaining = deadline - clock()
        if remaining <= 0:
            raise ConvergenceTimeoutError(
                f"Service {service_name} did not reach steady state within "
                f"{policy.timeout_seconds:g} seconds "
                f"({state.running_count}/{state.desired_count} running).",
                last_state=state,
            )
        logger.debug(
            "Service %s: %d/%d running, %d deployments",
            service_name,
            state.running_count,
            state.desired_count,
            len(state.deployments),
        )
        _pause(abort, sleep, min(policy.poll_interval_seconds, remaining))


def _pause(abort: threading.Event, sleep: Callable[[float], None], seconds: float) -> None:
    # wait() returns at once on a set event, so sleep out the interval instead.
    if abort.is_set():
        sleep(seconds)
    else:
        abort.wait(seconds)


def _tasks_healthy(
    platform: DeploymentPlatform,
    cluster_name: str,
    service_name: str,
    require_healthy: bool,
) -> bool:
    try:
        statuses = platform.task_health(cluster_name, service_name)
    except REMOTE_ERRORS as exc:
        logger.warning("Could not read task health for %s: %s", service_name, exc)
        return False
    if require_healthy:
        return all(status == "HEALTHY" for status in statuses)
    return all(status != "UNHEALTHY" for status in statuses)
