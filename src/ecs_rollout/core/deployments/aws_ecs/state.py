"""Remote state snapshot for a rollout."""

import logging

from botocore.exceptions import BotoCoreError, ClientError

from ecs_rollout.core.deployments.aws_ecs.errors import RemoteAPIError
from ecs_rollout.core.deployments.aws_ecs.models import DeploymentSpec, RemoteState
from ecs_rollout.core.deployments.aws_ecs.platform import DeploymentPlatform

logger = logging.getLogger(__name__)


def fetch_remote_state(platform: DeploymentPlatform, spec: DeploymentSpec) -> RemoteState:
    """Read everything the plan builder compares against.

    Only read calls are issued. The task definition is the one the service
    currently runs or, without a service, the latest active revision of the
    family.

    Raises:
        RemoteAPIError: If any read call fails.
    """
    try:
        cluster = platform.describe_cluster(spec.cluster_name)
        service = None
        if cluster is not None and cluster.is_active:
            service = platform.describe_service(spec.cluster_name, spec.service_name)

        if service is not None and service.is_active:
            task_definition = platform.describe_task_definition(service.task_definition_arn)
        else:
            task_definition = platform.describe_task_definition(spec.task_family)

        network = platform.describe_network(spec.subnets, spec.security_group_id)
    except (ClientError, BotoCoreError) as exc:
        raise RemoteAPIError(exc) from exc

    logger.debug(
        "Remote state for %s: cluster=%s service=%s task_definition=%s",
        spec.service_name,
        cluster.status if cluster else None,
        service.status if service else None,
        task_definition.arn if task_definition else None,
    )
    return RemoteState(
        cluster=cluster,
        service=service,
        task_definition=task_definition,
        network=network,
    )
