"""Data models for ECS rollouts."""

from dataclasses import dataclass, field
from enum import StrEnum
from ipaddress import ip_network
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ecs_rollout.core.deployments.aws_ecs.operations import ChangeOperation

DEFAULT_CIDR = "0.0.0.0/0"


@dataclass(frozen=True)
class IngressRule:
    """A single inbound security group rule."""

    protocol: str
    from_port: int
    to_port: int
    cidr: str
    description: str | None = field(default=None, compare=False)

    @property
    def is_ipv6(self) -> bool:
        """Return true when the rule targets an IPv6 range."""
        return ip_network(self.cidr, strict=False).version == 6

    def describe(self) -> str:
        """Return a short human readable form of the rule."""
        ports = str(self.from_port)
        if self.to_port != self.from_port:
            ports = f"{self.from_port}-{self.to_port}"
        return f"{self.protocol}/{ports} from {self.cidr}"


@dataclass(frozen=True)
class HealthCheck:
    """Container health check settings."""

    command: tuple[str, ...]
    interval: int = 30
    timeout: int = 5
    retries: int = 3
    start_period: int = 0


@dataclass(frozen=True)
class DeploymentSpec:
    """Desired state of a single Fargate service.

    Built once per run by the descriptor loader and never mutated.
    """

    service_name: str
    image: str
    cpu: int
    memory: int
    port: int
    desired_count: int
    cluster_name: str
    subnets: tuple[str, ...] = ()
    security_group_id: str | None = None
    security_group_rules: tuple[IngressRule, ...] = ()
    assign_public_ip: bool = True
    cpu_architecture: str = "X86_64"
    environment: tuple[tuple[str, str], ...] = ()
    execution_role_arn: str | None = None
    task_role_arn: str | None = None
    log_group: str | None = None
    health_check: HealthCheck | None = None

    @property
    def task_family(self) -> str:
        """Return the task definition family for the service."""
        return self.service_name

    @property
    def container_name(self) -> str:
        """Return the name of the service's only container."""
        return self.service_name


@dataclass(frozen=True)
class ClusterState:
    """Observed ECS cluster."""

    name: str
    arn: str
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"


@dataclass(frozen=True)
class TaskDefinitionState:
    """Observed task definition revision."""

    arn: str
    family: str
    revision: int
    status: str
    image: str
    cpu: int
    memory: int
    container_port: int | None
    cpu_architecture: str = "X86_64"
    environment: tuple[tuple[str, str], ...] = ()
    execution_role_arn: str | None = None
    task_role_arn: str | None = None
    log_group: str | None = None
    health_check: HealthCheck | None = None

    def matches(self, spec: DeploymentSpec) -> bool:
        """Return true when this revision already runs what the deployment spec describes."""
        return (
            self.status == "ACTIVE"
            and self.family == spec.task_family
            and self.image == spec.image
            and self.cpu == spec.cpu
            and self.memory == spec.memory
            and self.container_port == spec.port
            and self.cpu_architecture == spec.cpu_architecture
            and self.environment == spec.environment
            and self.execution_role_arn == spec.execution_role_arn
            and self.task_role_arn == spec.task_role_arn
            and self.log_group == spec.log_group
            and self.health_check == spec.health_check
        )


@dataclass(frozen=True)
class ServiceDeployment:
    """One entry of a service's deployment list."""

    deployment_id: str
    status: str
    task_definition_arn: str
    desired_count: int
    running_count: int
    rollout_state: str | None = None
    rollout_state_reason: str | None = None
    failed_tasks: int = 0


@dataclass(frozen=True)
class ServiceState:
    """Observed ECS service."""

    name: str
    arn: str
    status: str
    task_definition_arn: str
    desired_count: int
    running_count: int
    pending_count: int = 0
    subnets: tuple[str, ...] = ()
    security_groups: tuple[str, ...] = ()
    assign_public_ip: bool = False
    deployments: tuple[ServiceDeployment, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    @property
    def primary_deployment(self) -> ServiceDeployment | None:
        """Return the deployment ECS is currently rolling towards."""
        for deployment in self.deployments:
            if deployment.status == "PRIMARY":
                return deployment
        return None

    @property
    def is_steady(self) -> bool:
        """Return true when no deployment activity is pending.

        Task health is checked separately since it needs extra API calls.
        """
        primary = self.primary_deployment
        if primary is None or len(self.deployments) != 1:
            return False
        if primary.rollout_state not in (None, "COMPLETED"):
            return False
        return self.running_count == self.desired_count and self.pending_count == 0


@dataclass(frozen=True)
class SecurityGroupState:
    """Observed security group and its ingress rules."""

    group_id: str
    vpc_id: str
    ingress: tuple[IngressRule, ...] = ()

    def missing_rules(self, rules: tuple[IngressRule, ...]) -> tuple[IngressRule, ...]:
        """Return the rules that are not yet authorised on this group."""
        existing = set(self.ingress)
        missing: list[IngressRule] = []
        for rule in rules:
            if rule not in existing and rule not in missing:
                missing.append(rule)
        return tuple(missing)


@dataclass(frozen=True)
class NetworkState:
    """Network resources relevant to a deployment's placement.

    ``subnets`` maps each subnet that exists to its VPC. Defaults are only
    looked up when the deployment leaves subnets or the security group unset.
    """

    subnets: dict[str, str] = field(default_factory=dict)
    security_group: SecurityGroupState | None = None
    default_vpc_id: str | None = None
    default_subnet_ids: tuple[str, ...] = ()
    default_security_group: SecurityGroupState | None = None


@dataclass(frozen=True)
class RemoteState:
    """Snapshot of what exists on the platform for one service.

    Read once at the start of a run.
    """

    cluster: ClusterState | None = None
    service: ServiceState | None = None
    task_definition: TaskDefinitionState | None = None
    network: NetworkState = field(default_factory=NetworkState)

    @property
    def is_empty(self) -> bool:
        """Return true when nothing has been deployed for the service yet.

        Network state is not considered: subnets and security groups exist
        independently of the service.
        """
        return self.cluster is None and self.service is None and self.task_definition is None


@dataclass(frozen=True)
class NetworkPlacement:
    """Resolved awsvpc placement for the service's tasks."""

    vpc_id: str
    subnets: tuple[str, ...]
    security_group: SecurityGroupState
    assign_public_ip: bool

    @property
    def security_group_ids(self) -> tuple[str, ...]:
        return (self.security_group.group_id,)


class DeploymentStatus(StrEnum):
    """Terminal outcome of a rollout."""

    SUCCEEDED = "succeeded"
    UNCHANGED = "unchanged"
    PLANNED = "planned"
    VALIDATION_FAILED = "validation_failed"
    REMOTE_API_FAILED = "remote_api_failed"
    CONVERGENCE_FAILED = "convergence_failed"
    ROLLBACK_FAILED = "rollback_failed"
    ABORTED = "aborted"


SUCCESSFUL_STATUSES = frozenset(
    {DeploymentStatus.SUCCEEDED, DeploymentStatus.UNCHANGED, DeploymentStatus.PLANNED}
)


@dataclass(frozen=True)
class DeploymentResult:
    """Terminal record of a rollout run."""

    status: DeploymentStatus
    service_name: str
    planned: tuple["ChangeOperation", ...] = ()
    applied: tuple["ChangeOperation", ...] = ()
    service: ServiceState | None = None
    failed_operation_index: int | None = None
    error: str | None = None
    rolled_back_to: str | None = None
    exception: BaseException | None = field(default=None, compare=False, repr=False)

    @property
    def success(self) -> bool:
        return self.status in SUCCESSFUL_STATUSES

    @property
    def replicas(self) -> int:
        """Return the number of running tasks last observed."""
        if self.service is None:
            return 0
        return self.service.running_count
