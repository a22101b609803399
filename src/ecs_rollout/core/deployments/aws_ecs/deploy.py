"""Deployment entrypoint for ECS."""

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from ecs_rollout.core.deployments.aws_ecs.descriptor import validate_spec
from ecs_rollout.core.deployments.aws_ecs.errors import (
    ConvergenceError,
    RemoteAPIError,
    RollbackFailureError,
    ValidationError,
)
from ecs_rollout.core.deployments.aws_ecs.executor import ConvergencePolicy, Executor
from ecs_rollout.core.deployments.aws_ecs.lock import DeploymentLock
from ecs_rollout.core.deployments.aws_ecs.models import (
    DeploymentResult,
    DeploymentSpec,
    DeploymentStatus,
    ServiceState,
)
from ecs_rollout.core.deployments.aws_ecs.operations import ChangeOperation
from ecs_rollout.core.deployments.aws_ecs.plan import build_plan
from ecs_rollout.core.deployments.aws_ecs.platform import DeploymentPlatform
from ecs_rollout.core.deployments.aws_ecs.rollback import roll_back
from ecs_rollout.core.deployments.aws_ecs.state import fetch_remote_state

logger = logging.getLogger(__name__)


def _ignore(_: str) -> None:
    return None


def deploy_service(
    spec: DeploymentSpec,
    platform: DeploymentPlatform,
    policy: ConvergencePolicy,
    *,
    lock_dir: Path,
    dry_run: bool = False,
    abort: threading.Event | None = None,
    reporter: Callable[[str], None] = _ignore,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> DeploymentResult:
    """Roll out a service, holding the per-service deployment lock.

    Raises:
        DeploymentLockedError: If another rollout of the service is running.
    """
    with DeploymentLock(spec.service_name, lock_dir):
        return run_deployment(
            spec,
            platform,
            policy,
            dry_run=dry_run,
            abort=abort or threading.Event(),
            reporter=reporter,
            clock=clock,
            sleep=sleep,
        )


def run_deployment(
    spec: DeploymentSpec,
    platform: DeploymentPlatform,
    policy: ConvergencePolicy,
    *,
    dry_run: bool = False,
    abort: threading.Event,
    reporter: Callable[[str], None] = _ignore,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> DeploymentResult:
    """Read remote state, plan, apply and roll back on failure.

    Every outcome is returned as a DeploymentResult. An invalid spec is
    rejected before any remote call.
    """
    try:
        validate_spec(spec)
    except ValidationError as exc:
        return _result(spec, DeploymentStatus.VALIDATION_FAILED, error=str(exc), exception=exc)

    reporter(f"Reading remote state for {spec.service_name}")
    try:
        remote = fetch_remote_state(platform, spec)
    except RemoteAPIError as exc:
        return _result(spec, DeploymentStatus.REMOTE_API_FAILED, error=str(exc), exception=exc)

    try:
        plan = build_plan(spec, remote)
    except ValidationError as exc:
        return _result(spec, DeploymentStatus.VALIDATION_FAILED, error=str(exc), exception=exc)

    if not plan:
        reporter("Remote state already matches the descriptor")
        return _result(spec, DeploymentStatus.UNCHANGED, service=remote.service)

    if dry_run:
        reporter(f"Dry run: {len(plan)} operation(s) planned")
        return _result(spec, DeploymentStatus.PLANNED, planned=plan, service=remote.service)

    executor = Executor(platform, policy, abort, reporter=reporter, clock=clock, sleep=sleep)
    try:
        service = executor.run(plan)
    except RemoteAPIError as exc:
        return _result(
            spec,
            DeploymentStatus.REMOTE_API_FAILED,
            planned=plan,
            applied=executor.applied,
            failed_operation_index=exc.index,
            error=str(exc.cause),
            exception=exc,
        )
    except ConvergenceError as exc:
        update = executor.service_update
        if abort.is_set() or update is None:
            status = DeploymentStatus.CONVERGENCE_FAILED
            if abort.is_set():
                status = DeploymentStatus.ABORTED
            return _result(
                spec,
                status,
                planned=plan,
                applied=executor.applied,
                service=exc.last_state,
                error=str(exc),
            )

        reporter(f"Rollout did not converge: {exc}")
        try:
            restored = roll_back(
                platform, update, policy, abort, reporter=reporter, clock=clock, sleep=sleep
            )
        except RollbackFailureError as rollback_exc:
            logger.error("Rollback failed: %s", rollback_exc)
            return _result(
                spec,
                DeploymentStatus.ROLLBACK_FAILED,
                planned=plan,
                applied=executor.applied,
                service=exc.last_state,
                error=str(rollback_exc),
                rolled_back_to=update.previous_task_definition_arn,
                exception=rollback_exc,
            )

        status = DeploymentStatus.CONVERGENCE_FAILED
        if abort.is_set():
            status = DeploymentStatus.ABORTED
        return _result(
            spec,
            status,
            planned=plan,
            applied=executor.applied,
            service=restored if restored is not None else exc.last_state,
            error=str(exc),
            rolled_back_to=update.previous_task_definition_arn if restored is not None else None,
        )

    if executor.aborted:
        return _result(
            spec,
            DeploymentStatus.ABORTED,
            planned=plan,
            applied=executor.applied,
            service=service,
            error="Deployment aborted by operator",
        )

    reporter(f"Deployment of {spec.service_name} complete")
    return _result(
        spec,
        DeploymentStatus.SUCCEEDED,
        planned=plan,
        applied=executor.applied,
        service=service if service is not None else remote.service,
    )


def _result(
    spec: DeploymentSpec,
    status: DeploymentStatus,
    *,
    planned: list[ChangeOperation] | None = None,
    applied: list[ChangeOperation] | None = None,
    service: ServiceState | None = None,
    failed_operation_index: int | None = None,
    error: str | None = None,
    rolled_back_to: str | None = None,
    exception: BaseException | None = None,
) -> DeploymentResult:
    logger.info("Deployment of %s finished: %s", spec.service_name, status)
    return DeploymentResult(
        status=status,
        service_name=spec.service_name,
        planned=tuple(planned or ()),
        applied=tuple(applied or ()),
        service=service,
        failed_operation_index=failed_operation_index,
        error=error,
        rolled_back_to=rolled_back_to,
        exception=exception,
    )
