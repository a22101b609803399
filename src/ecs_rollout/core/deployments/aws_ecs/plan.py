"""Plan builder: diff desired against observed state."""

from ecs_rollout.core.deployments.aws_ecs.errors import ValidationError
from ecs_rollout.core.deployments.aws_ecs.models import (
    ClusterState,
    DeploymentSpec,
    NetworkPlacement,
    NetworkState,
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
from ecs_rollout.core.deployments.aws_ecs.task_definitions import task_definition_request


def build_plan(spec: DeploymentSpec, remote: RemoteState) -> list[ChangeOperation]:
    """Return the operations that bring the remote state in line with the deployment spec.

    Operations always come in dependency order: cluster, task definition,
    service, networking. Steps that are already satisfied are left out, so a
    remote state matching the deployment produces an empty plan.

    This holds on a first run too. A plan is not the full sequence of four
    operations whenever something already exists: a fresh service whose
    security group already allows its port ends at UpdateService, with no
    UpdateNetworking after it. Ingress rules are only ever added, never
    revoked.

    Args:
        spec: Desired deployment.
        remote: Snapshot of the platform taken for this run.

    Returns:
        Ordered change operations.

    Raises:
        ValidationError: If the network placement or cluster cannot be used.
    """
    placement = resolve_placement(spec, remote.network)
    operations: list[ChangeOperation] = []

    cluster_ready = _cluster_ready(spec, remote.cluster)
    if not cluster_ready:
        operations.append(CreateCluster(cluster_name=spec.cluster_name))

    service = remote.service
    if not cluster_ready or service is None or not service.is_active:
        service = None

    task_definition_arn: str | None = None
    current = remote.task_definition
    if current is not None and current.matches(spec):
        task_definition_arn = current.arn
    else:
        operations.append(
            RegisterTaskDefinition(
                family=spec.task_family,
                image=spec.image,
                request=task_definition_request(spec),
            )
        )

    if _service_needs_update(spec, placement, service, task_definition_arn):
        operations.append(
            UpdateService(
                cluster_name=spec.cluster_name,
                service_name=spec.service_name,
                desired_count=spec.desired_count,
                task_definition_arn=task_definition_arn,
                placement=placement,
                create=service is None,
                previous_task_definition_arn=service.task_definition_arn if service else None,
                previous_desired_count=service.desired_count if service else None,
                require_healthy=spec.health_check is not None,
            )
        )

    missing_rules = placement.security_group.missing_rules(spec.security_group_rules)
    if missing_rules:
        operations.append(
            UpdateNetworking(
                security_group_id=placement.security_group.group_id,
                rules=missing_rules,
            )
        )

    return operations


def resolve_placement(spec: DeploymentSpec, network: NetworkState) -> NetworkPlacement:
    """Check the requested network placement against existing resources.

    Explicit subnets and security groups must exist and share one VPC. When
    they are omitted, the default VPC's subnets and default security group
    are used.

    Raises:
        ValidationError: If the placement does not match the account.
    """
    if spec.subnets:
        missing = [subnet for subnet in spec.subnets if subnet not in network.subnets]
        if missing:
            raise ValidationError(f"Subnets not found: {', '.join(missing)}")
        vpc_ids = {network.subnets[subnet] for subnet in spec.subnets}
        if len(vpc_ids) > 1:
            raise ValidationError(
                f"Subnets span several VPCs ({', '.join(sorted(vpc_ids))}); use one VPC."
            )
        vpc_id = vpc_ids.pop()
        subnets = tuple(sorted(spec.subnets))
    else:
        if not network.default_vpc_id or not network.default_subnet_ids:
            raise ValidationError(
                "No subnets configured and the account has no default VPC subnets."
            )
        vpc_id = network.default_vpc_id
        subnets = tuple(sorted(network.default_subnet_ids))

    if spec.security_group_id:
        group = network.security_group
        if group is None or group.group_id != spec.security_group_id:
            raise ValidationError(f"Security group not found: {spec.security_group_id}")
    else:
        group = network.default_security_group
        if group is None:
            raise ValidationError(f"No security group configured and VPC {vpc_id} has no default.")

    if group.vpc_id != vpc_id:
        raise ValidationError(
            f"Security group {group.group_id} belongs to {group.vpc_id}, "
            f"but the subnets are in {vpc_id}."
        )

    return NetworkPlacement(
        vpc_id=vpc_id,
        subnets=subnets,
        security_group=group,
        assign_public_ip=spec.assign_public_ip,
    )


def _cluster_ready(spec: DeploymentSpec, cluster: ClusterState | None) -> bool:
    """Return true when the cluster exists and can be used as is."""
    if cluster is None:
        return False
    if cluster.status == "ACTIVE":
        return True
    if cluster.status == "INACTIVE":
        # Deleted clusters linger as INACTIVE and are recreated under the same name.
        return False
    raise ValidationError(
        f"ECS cluster {spec.cluster_name} is in unexpected status {cluster.status} "
        "and cannot be used."
    )


def _service_needs_update(
    spec: DeploymentSpec,
    placement: NetworkPlacement,
    service: ServiceState | None,
    task_definition_arn: str | None,
) -> bool:
    if service is None or task_definition_arn is None:
        return True
    if service.task_definition_arn != task_definition_arn:
        return True
    if service.desired_count != spec.desired_count:
        return True
    return (
        set(service.subnets) != set(placement.subnets)
        or set(service.security_groups) != set(placement.security_group_ids)
        or service.assign_public_ip != placement.assign_public_ip
    )
