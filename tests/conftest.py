"""Shared fixtures: an in-memory platform, a fake clock and spec factories."""

import threading
from dataclasses import replace
from typing import Any

import pytest

from ecs_rollout.core.deployments.aws_ecs.models import (
    ClusterState,
    DeploymentSpec,
    IngressRule,
    NetworkState,
    SecurityGroupState,
    ServiceDeployment,
    ServiceState,
    TaskDefinitionState,
)
from ecs_rollout.core.deployments.aws_ecs.operations import RegisterTaskDefinition, UpdateService
from ecs_rollout.core.deployments.aws_ecs.platform import (
    DeploymentPlatform,
    task_definition_from_response,
)

ACCOUNT = "123456789012"
REGION = "eu-west-2"
TD_ARN = f"arn:aws:ecs:{REGION}:{ACCOUNT}:task-definition/hello:1"
CLUSTER_ARN = f"arn:aws:ecs:{REGION}:{ACCOUNT}:cluster/hello-cluster"
SERVICE_ARN = f"arn:aws:ecs:{REGION}:{ACCOUNT}:service/hello-cluster/hello"
WEB_RULE = IngressRule("tcp", 3000, 3000, "0.0.0.0/0")

MUTATIONS = {
    "create_cluster",
    "register_task_definition",
    "create_service",
    "update_service",
    "authorize_ingress",
}


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = 0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps += 1
        self.now += seconds


class FakeAbort(threading.Event):
    """Abort event whose waits advance the fake clock instead of sleeping.

    ``set_after`` sets the event once that many waits have happened.
    """

    def __init__(self, clock: FakeClock, set_after: int | None = None) -> None:
        super().__init__()
        self.clock = clock
        self.set_after = set_after
        self.waits = 0

    def wait(self, timeout: float | None = None) -> bool:
        self.waits += 1
        self.clock.now += timeout or 0
        if self.set_after is not None and self.waits >= self.set_after:
            self.set()
        return self.is_set()


def make_spec(**overrides: Any) -> DeploymentSpec:
    values: dict[str, Any] = {
        "service_name": "hello",
        "image": "repo/hello:latest",
        "cpu": 256,
        "memory": 512,
        "port": 3000,
        "desired_count": 1,
        "cluster_name": "hello-cluster",
        "subnets": ("subnet-a", "subnet-b"),
        "security_group_id": "sg-1",
        "security_group_rules": (WEB_RULE,),
    }
    values.update(overrides)
    return DeploymentSpec(**values)


def make_network(*, rules: tuple[IngressRule, ...] = (), **overrides: Any) -> NetworkState:
    values: dict[str, Any] = {
        "subnets": {"subnet-a": "vpc-1", "subnet-b": "vpc-1"},
        "security_group": SecurityGroupState("sg-1", "vpc-1", ingress=rules),
    }
    values.update(overrides)
    return NetworkState(**values)


def make_service(
    task_definition_arn: str = TD_ARN,
    *,
    desired: int = 1,
    running: int | None = None,
    pending: int = 0,
    rollout_state: str | None = "COMPLETED",
    reason: str | None = None,
    extra_deployments: int = 0,
    subnets: tuple[str, ...] = ("subnet-a", "subnet-b"),
    security_groups: tuple[str, ...] = ("sg-1",),
    assign_public_ip: bool = True,
    status: str = "ACTIVE",
) -> ServiceState:
    running = desired if running is None else running
    deployments = [
        ServiceDeployment(
            deployment_id="ecs-svc/1",
            status="PRIMARY",
            task_definition_arn=task_definition_arn,
            desired_count=desired,
            running_count=running,
            rollout_state=rollout_state,
            rollout_state_reason=reason,
        )
    ]
    for index in range(extra_deployments):
        deployments.append(
            ServiceDeployment(
                deployment_id=f"ecs-svc/old-{index}",
                status="ACTIVE",
                task_definition_arn="arn:old",
                desired_count=desired,
                running_count=1,
            )
        )
    return ServiceState(
        name="hello",
        arn=SERVICE_ARN,
        status=status,
        task_definition_arn=task_definition_arn,
        desired_count=desired,
        running_count=running,
        pending_count=pending,
        subnets=subnets,
        security_groups=security_groups,
        assign_public_ip=assign_public_ip,
        deployments=tuple(deployments),
    )


def matching_task_definition(spec: DeploymentSpec, arn: str = TD_ARN) -> TaskDefinitionState:
    return TaskDefinitionState(
        arn=arn,
        family=spec.task_family,
        revision=int(arn.rsplit(":", 1)[1]),
        status="ACTIVE",
        image=spec.image,
        cpu=spec.cpu,
        memory=spec.memory,
        container_port=spec.port,
        cpu_architecture=spec.cpu_architecture,
        environment=spec.environment,
        execution_role_arn=spec.execution_role_arn,
        task_role_arn=spec.task_role_arn,
        log_group=spec.log_group,
        health_check=spec.health_check,
    )


class FakePlatform(DeploymentPlatform):
    """In-memory platform that records every call.

    After each create or update of the service, ``describe_service`` walks
    the next list in ``scripts`` and keeps returning its last entry. Without
    a script the service settles immediately. ``failures`` maps a method
    name to the exception it raises, or to a list holding one outcome per
    call where None lets that call through.
    """

    def __init__(
        self,
        *,
        cluster: ClusterState | None = None,
        service: ServiceState | None = None,
        task_definition: TaskDefinitionState | None = None,
        network: NetworkState | None = None,
    ) -> None:
        self.cluster = cluster
        self.service = service
        self.task_definitions: dict[str, TaskDefinitionState] = {}
        if task_definition is not None:
            self._store(task_definition)
        self.network = network if network is not None else make_network()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, Exception | list[Exception | None]] = {}
        self.scripts: list[list[ServiceState]] = []
        self.task_statuses: list[str] = []
        self._polls: list[ServiceState] = []
        self._revision = task_definition.revision if task_definition else 0

    @classmethod
    def deployed(cls, spec: DeploymentSpec) -> "FakePlatform":
        """Return a platform already converged on ``spec``."""
        return cls(
            cluster=ClusterState(spec.cluster_name, CLUSTER_ARN, "ACTIVE"),
            service=make_service(desired=spec.desired_count),
            task_definition=matching_task_definition(spec),
            network=make_network(rules=spec.security_group_rules),
        )

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    @property
    def mutations(self) -> list[str]:
        return [name for name in self.call_names if name in MUTATIONS]

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        failure = self.failures.get(name)
        if isinstance(failure, list):
            failure = failure.pop(0) if failure else None
        if failure is not None:
            raise failure

    def _store(self, task_definition: TaskDefinitionState) -> None:
        self.task_definitions[task_definition.arn] = task_definition
        self.task_definitions[task_definition.family] = task_definition

    def describe_cluster(self, cluster_name: str) -> ClusterState | None:
        self._call("describe_cluster", cluster_name)
        return self.cluster

    def create_cluster(self, cluster_name: str) -> ClusterState:
        self._call("create_cluster", cluster_name)
        self.cluster = ClusterState(cluster_name, CLUSTER_ARN, "ACTIVE")
        return self.cluster

    def describe_task_definition(self, reference: str) -> TaskDefinitionState | None:
        self._call("describe_task_definition", reference)
        return self.task_definitions.get(reference)

    def register_task_definition(self, operation: RegisterTaskDefinition) -> str:
        self._call("register_task_definition", operation)
        self._revision += 1
        arn = f"arn:aws:ecs:{REGION}:{ACCOUNT}:task-definition/{operation.family}:{self._revision}"
        self._store(
            task_definition_from_response(
                {
                    **operation.request,
                    "taskDefinitionArn": arn,
                    "revision": self._revision,
                    "status": "ACTIVE",
                }
            )
        )
        return arn

    def describe_service(self, cluster_name: str, service_name: str) -> ServiceState | None:
        self._call("describe_service", cluster_name, service_name)
        if self._polls:
            self.service = self._polls.pop(0) if len(self._polls) > 1 else self._polls[0]
        return self.service

    def create_service(self, operation: UpdateService, task_definition_arn: str) -> ServiceState:
        self._call("create_service", operation, task_definition_arn)
        return self._settle(operation, task_definition_arn)

    def update_service(self, operation: UpdateService, task_definition_arn: str) -> ServiceState:
        self._call("update_service", operation, task_definition_arn)
        return self._settle(operation, task_definition_arn)

    def task_health(self, cluster_name: str, service_name: str) -> list[str]:
        self._call("task_health", cluster_name, service_name)
        return list(self.task_statuses)

    def describe_network(
        self,
        subnet_ids: tuple[str, ...],
        security_group_id: str | None,
    ) -> NetworkState:
        self._call("describe_network", subnet_ids, security_group_id)
        return self.network

    def authorize_ingress(self, security_group_id: str, rules: tuple[IngressRule, ...]) -> None:
        self._call("authorize_ingress", security_group_id, rules)
        network = self.network
        for attribute in ("security_group", "default_security_group"):
            group = getattr(network, attribute)
            if group is not None and group.group_id == security_group_id:
                group = replace(group, ingress=group.ingress + group.missing_rules(rules))
                network = replace(network, **{attribute: group})
        self.network = network

    def _settle(self, operation: UpdateService, task_definition_arn: str) -> ServiceState:
        placement = operation.placement
        previous = self.service
        if placement is not None:
            subnets = placement.subnets
            security_groups = placement.security_group_ids
            assign_public_ip = placement.assign_public_ip
        elif previous is not None:
            subnets = previous.subnets
            security_groups = previous.security_groups
            assign_public_ip = previous.assign_public_ip
        else:
            subnets, security_groups, assign_public_ip = (), (), False

        self.service = make_service(
            task_definition_arn,
            desired=operation.desired_count,
            subnets=subnets,
            security_groups=security_groups,
            assign_public_ip=assign_public_ip,
        )
        self._polls = list(self.scripts.pop(0)) if self.scripts else []
        return self.service


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def abort(clock: FakeClock) -> FakeAbort:
    return FakeAbort(clock)


@pytest.fixture
def spec() -> DeploymentSpec:
    return make_spec()
