"""Container platform access for rollouts.

``DeploymentPlatform`` is the contract the planner, executor and rollback
controller rely on. ``EcsPlatform`` implements it on top of boto3. Client
errors are not caught here; callers decide how a failure is reported.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, cast

from boto3.session import Session
from botocore.exceptions import ClientError

from ecs_rollout.core.deployments.aws_ecs.models import (
    ClusterState,
    HealthCheck,
    IngressRule,
    NetworkPlacement,
    NetworkState,
    SecurityGroupState,
    ServiceDeployment,
    ServiceState,
    TaskDefinitionState,
)
from ecs_rollout.core.deployments.aws_ecs.operations import RegisterTaskDefinition, UpdateService

logger = logging.getLogger(__name__)

# describe_tasks accepts at most 100 task ARNs per call.
DESCRIBE_TASKS_BATCH = 100


class DeploymentPlatform(ABC):
    """Interface for the remote container platform."""

    @abstractmethod
    def describe_cluster(self, cluster_name: str) -> ClusterState | None:
        """Return the named cluster, or None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    def create_cluster(self, cluster_name: str) -> ClusterState:
        """Create a cluster."""
        raise NotImplementedError

    @abstractmethod
    def describe_task_definition(self, reference: str) -> TaskDefinitionState | None:
        """Return a task definition by ARN, or the latest active revision of a family."""
        raise NotImplementedError

    @abstractmethod
    def register_task_definition(self, operation: RegisterTaskDefinition) -> str:
        """Register a task definition revision and return its ARN."""
        raise NotImplementedError

    @abstractmethod
    def describe_service(self, cluster_name: str, service_name: str) -> ServiceState | None:
        """Return the named service, or None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    def create_service(self, operation: UpdateService, task_definition_arn: str) -> ServiceState:
        """Create a service running the given task definition."""
        raise NotImplementedError

    @abstractmethod
    def update_service(self, operation: UpdateService, task_definition_arn: str) -> ServiceState:
        """Point an existing service at the given task definition."""
        raise NotImplementedError

    @abstractmethod
    def task_health(self, cluster_name: str, service_name: str) -> list[str]:
        """Return the health status of each running task of a service."""
        raise NotImplementedError

    @abstractmethod
    def describe_network(
        self,
        subnet_ids: tuple[str, ...],
        security_group_id: str | None,
    ) -> NetworkState:
        """Look up the subnets and security group a service will be placed in."""
        raise NotImplementedError

    @abstractmethod
    def authorize_ingress(self, security_group_id: str, rules: tuple[IngressRule, ...]) -> None:
        """Authorise inbound rules on a security group."""
        raise NotImplementedError


class EcsPlatform(DeploymentPlatform):
    """ECS on Fargate, accessed through a boto3 session."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._ecs = session.client("ecs")
        self._ec2 = session.client("ec2")
        self._logs: Any = None

    @property
    def region(self) -> str:
        return str(self._session.region_name)

    def describe_cluster(self, cluster_name: str) -> ClusterState | None:
        response = self._ecs.describe_clusters(clusters=[cluster_name])
        clusters = response.get("clusters", [])
        if not clusters:
            return None
        cluster = clusters[0]
        return ClusterState(
            name=str(cluster.get("clusterName", cluster_name)),
            arn=cast(str, cluster["clusterArn"]),
            status=str(cluster.get("status", "")),
        )

    def create_cluster(self, cluster_name: str) -> ClusterState:
        response = self._ecs.create_cluster(clusterName=cluster_name)
        cluster = response["cluster"]
        return ClusterState(
            name=cluster_name,
            arn=cast(str, cluster["clusterArn"]),
            status=str(cluster.get("status", "ACTIVE")),
        )

    def describe_task_definition(self, reference: str) -> TaskDefinitionState | None:
        try:
            response = self._ecs.describe_task_definition(taskDefinition=reference)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in {"ClientException", "InvalidParameterException"}:
                return None
            raise
        return task_definition_from_response(response["taskDefinition"])

    def register_task_definition(self, operation: RegisterTaskDefinition) -> str:
        request = _with_log_region(operation.request, self.region)
        log_group = _log_group_of(request)
        if log_group:
            self._ensure_log_group(log_group)
        response = self._ecs.register_task_definition(**request)
        return cast(str, response["taskDefinition"]["taskDefinitionArn"])

    def describe_service(self, cluster_name: str, service_name: str) -> ServiceState | None:
        try:
            response = self._ecs.describe_services(cluster=cluster_name, services=[service_name])
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ClusterNotFoundException":
                return None
            raise
        services = response.get("services", [])
        if not services:
            return None
        return service_from_response(services[0])

    def create_service(self, operation: UpdateService, task_definition_arn: str) -> ServiceState:
        if operation.placement is None:
            raise ValueError("A network placement is required to create a service.")
        response = self._ecs.create_service(
            cluster=operation.cluster_name,
            serviceName=operation.service_name,
            taskDefinition=task_definition_arn,
            desiredCount=operation.desired_count,
            launchType="FARGATE",
            platformVersion="LATEST",
            networkConfiguration=_network_configuration(operation.placement),
            deploymentConfiguration={
                # Failed rollouts are rolled back by ecs-rollout, not by ECS.
                "deploymentCircuitBreaker": {"enable": True, "rollback": False},
                "minimumHealthyPercent": 100,
                "maximumPercent": 200,
            },
        )
        return service_from_response(response["service"])

    def update_service(self, operation: UpdateService, task_definition_arn: str) -> ServiceState:
        request: dict[str, Any] = {
            "cluster": operation.cluster_name,
            "service": operation.service_name,
            "taskDefinition": task_definition_arn,
            "desiredCount": operation.desired_count,
        }
        if operation.placement is not None:
            request["networkConfiguration"] = _network_configuration(operation.placement)
        response = self._ecs.update_service(**request)
        return service_from_response(response["service"])

    def task_health(self, cluster_name: str, service_name: str) -> list[str]:
        task_arns: list[str] = []
        paginator = self._ecs.get_paginator("list_tasks")
        for page in paginator.paginate(
            cluster=cluster_name,
            serviceName=service_name,
            desiredStatus="RUNNING",
        ):
            task_arns.extend(page.get("taskArns", []))

        statuses: list[str] = []
        for start in range(0, len(task_arns), DESCRIBE_TASKS_BATCH):
            batch = task_arns[start : start + DESCRIBE_TASKS_BATCH]
            response = self._ecs.describe_tasks(cluster=cluster_name, tasks=batch)
            for task in response.get("tasks", []):
                statuses.append(str(task.get("healthStatus", "UNKNOWN")))
        return statuses

    def describe_network(
        self,
        subnet_ids: tuple[str, ...],
        security_group_id: str | None,
    ) -> NetworkState:
        subnets = self._existing_subnets(subnet_ids)

        default_vpc_id: str | None = None
        default_subnet_ids: tuple[str, ...] = ()
        if not subnet_ids:
            default_vpc_id = self._default_vpc_id()
            if default_vpc_id:
                default_subnet_ids = self._default_subnet_ids(default_vpc_id)

        security_group = None
        default_security_group = None
        if security_group_id:
            security_group = self._security_group(security_group_id)
        else:
            vpc_id = next(iter(subnets.values()), None) or default_vpc_id
            if vpc_id:
                default_security_group = self._default_security_group(vpc_id)

        return NetworkState(
            subnets=subnets,
            security_group=security_group,
            default_vpc_id=default_vpc_id,
            default_subnet_ids=default_subnet_ids,
            default_security_group=default_security_group,
        )

    def authorize_ingress(self, security_group_id: str, rules: tuple[IngressRule, ...]) -> None:
        for rule in rules:
            try:
                self._ec2.authorize_security_group_ingress(
                    GroupId=security_group_id,
                    IpPermissions=[_ip_permission(rule)],
                )
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") != "InvalidPermission.Duplicate":
                    raise
                logger.debug("Rule %s already present on %s", rule.describe(), security_group_id)

    def _existing_subnets(self, subnet_ids: tuple[str, ...]) -> dict[str, str]:
        found: dict[str, str] = {}
        for subnet_id in subnet_ids:
            try:
                response = self._ec2.describe_subnets(SubnetIds=[subnet_id])
            except ClientError as exc:
                code = exc.response.get("Error", {}).get("Code")
                if code == "InvalidSubnetID.NotFound":
                    continue
                raise
            for subnet in response.get("Subnets", []):
                found[str(subnet["SubnetId"])] = str(subnet["VpcId"])
        return found

    def _default_vpc_id(self) -> str | None:
        response = self._ec2.describe_vpcs(Filters=[{"Name": "isDefault", "Values": ["true"]}])
        vpcs = response.get("Vpcs", [])
        if not vpcs:
            return None
        return str(vpcs[0]["VpcId"])

    def _default_subnet_ids(self, vpc_id: str) -> tuple[str, ...]:
        response = self._ec2.describe_subnets(
            Filters=[
                {"Name": "vpc-id", "Values": [vpc_id]},
                {"Name": "default-for-az", "Values": ["true"]},
            ]
        )
        return tuple(sorted(str(subnet["SubnetId"]) for subnet in response.get("Subnets", [])))

    def _security_group(self, group_id: str) -> SecurityGroupState | None:
        try:
            response = self._ec2.describe_security_groups(GroupIds=[group_id])
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "InvalidGroup.NotFound":
                return None
            raise
        groups = response.get("SecurityGroups", [])
        if not groups:
            return None
        return security_group_from_response(groups[0])

    def _default_security_group(self, vpc_id: str) -> SecurityGroupState | None:
        response = self._ec2.describe_security_groups(
            Filters=[
                {"Name": "vpc-id", "Values": [vpc_id]},
                {"Name": "group-name", "Values": ["default"]},
            ]
        )
        groups = response.get("SecurityGroups", [])
        if not groups:
            return None
        return security_group_from_response(groups[0])

    def _ensure_log_group(self, log_group_name: str) -> None:
        if self._logs is None:
            self._logs = self._session.client("logs")
        try:
            self._logs.create_log_group(logGroupName=log_group_name)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code != "ResourceAlreadyExistsException":
                raise


def task_definition_from_response(task_definition: dict[str, Any]) -> TaskDefinitionState:
    """Convert a describe_task_definition payload into a task definition state."""
    containers = task_definition.get("containerDefinitions", [])
    container: dict[str, Any] = containers[0] if containers else {}

    port_mappings = container.get("portMappings", [])
    container_port = port_mappings[0].get("containerPort") if port_mappings else None

    environment = tuple(
        sorted((str(item["name"]), str(item["value"])) for item in container.get("environment", []))
    )

    health_check = None
    raw_health = container.get("healthCheck")
    if raw_health:
        health_check = HealthCheck(
            command=tuple(raw_health.get("command", [])),
            interval=int(raw_health.get("interval", 30)),
            timeout=int(raw_health.get("timeout", 5)),
            retries=int(raw_health.get("retries", 3)),
            start_period=int(raw_health.get("startPeriod", 0)),
        )

    log_group = None
    log_configuration = container.get("logConfiguration") or {}
    if log_configuration.get("logDriver") == "awslogs":
        log_group = log_configuration.get("options", {}).get("awslogs-group")

    runtime_platform = task_definition.get("runtimePlatform") or {}
    return TaskDefinitionState(
        arn=str(task_definition["taskDefinitionArn"]),
        family=str(task_definition.get("family", "")),
        revision=int(task_definition.get("revision", 0)),
        status=str(task_definition.get("status", "")),
        image=str(container.get("image", "")),
        cpu=int(task_definition.get("cpu") or 0),
        memory=int(task_definition.get("memory") or 0),
        container_port=container_port,
        cpu_architecture=str(runtime_platform.get("cpuArchitecture", "X86_64")),
        environment=environment,
        execution_role_arn=task_definition.get("executionRoleArn"),
        task_role_arn=task_definition.get("taskRoleArn"),
        log_group=log_group,
        health_check=health_check,
    )


def service_from_response(service: dict[str, Any]) -> ServiceState:
    """Convert a describe_services entry into a service state."""
    awsvpc = (service.get("networkConfiguration") or {}).get("awsvpcConfiguration") or {}
    deployments = tuple(
        ServiceDeployment(
            deployment_id=str(item.get("id", "")),
            status=str(item.get("status", "")),
            task_definition_arn=str(item.get("taskDefinition", "")),
            desired_count=int(item.get("desiredCount", 0)),
            running_count=int(item.get("runningCount", 0)),
            rollout_state=item.get("rolloutState"),
            rollout_state_reason=item.get("rolloutStateReason"),
            failed_tasks=int(item.get("failedTasks", 0)),
        )
        for item in service.get("deployments", [])
    )
    return ServiceState(
        name=str(service.get("serviceName", "")),
        arn=str(service.get("serviceArn", "")),
        status=str(service.get("status", "")),
        task_definition_arn=str(service.get("taskDefinition", "")),
        desired_count=int(service.get("desiredCount", 0)),
        running_count=int(service.get("runningCount", 0)),
        pending_count=int(service.get("pendingCount", 0)),
        subnets=tuple(sorted(awsvpc.get("subnets", []))),
        security_groups=tuple(sorted(awsvpc.get("securityGroups", []))),
        assign_public_ip=awsvpc.get("assignPublicIp") == "ENABLED",
        deployments=deployments,
    )


def security_group_from_response(group: dict[str, Any]) -> SecurityGroupState:
    """Convert a describe_security_groups entry into a security group state."""
    rules: list[IngressRule] = []
    for permission in group.get("IpPermissions", []):
        protocol = str(permission.get("IpProtocol", ""))
        if protocol not in {"tcp", "udp"}:
            continue
        from_port = int(permission.get("FromPort", 0))
        to_port = int(permission.get("ToPort", from_port))
        ranges = [item["CidrIp"] for item in permission.get("IpRanges", [])]
        ranges += [item["CidrIpv6"] for item in permission.get("Ipv6Ranges", [])]
        for cidr in ranges:
            rules.append(IngressRule(protocol, from_port, to_port, str(cidr)))
    return SecurityGroupState(
        group_id=str(group["GroupId"]),
        vpc_id=str(group.get("VpcId", "")),
        ingress=tuple(rules),
    )


def _network_configuration(placement: NetworkPlacement) -> dict[str, Any]:
    return {
        "awsvpcConfiguration": {
            "subnets": list(placement.subnets),
            "securityGroups": list(placement.security_group_ids),
            "assignPublicIp": "ENABLED" if placement.assign_public_ip else "DISABLED",
        }
    }


def _ip_permission(rule: IngressRule) -> dict[str, Any]:
    permission: dict[str, Any] = {
        "IpProtocol": rule.protocol,
        "FromPort": rule.from_port,
        "ToPort": rule.to_port,
    }
    if rule.is_ipv6:
        entry: dict[str, str] = {"CidrIpv6": rule.cidr}
        key = "Ipv6Ranges"
    else:
        entry = {"CidrIp": rule.cidr}
        key = "IpRanges"
    if rule.description:
        entry["Description"] = rule.description
    permission[key] = [entry]
    return permission


def _with_log_region(request: dict[str, Any], region: str) -> dict[str, Any]:
    """Return a copy of the request with the awslogs region filled in."""
    containers = []
    for container in request.get("containerDefinitions", []):
        log_configuration = container.get("logConfiguration")
        if log_configuration and log_configuration.get("logDriver") == "awslogs":
            options = {"awslogs-region": region, **log_configuration.get("options", {})}
            container = {**container, "logConfiguration": {**log_configuration, "options": options}}
        containers.append(container)
    return {**request, "containerDefinitions": containers}


def _log_group_of(request: dict[str, Any]) -> str | None:
    for container in request.get("containerDefinitions", []):
        options = (container.get("logConfiguration") or {}).get("options", {})
        if options.get("awslogs-group"):
            return str(options["awslogs-group"])
    return None
