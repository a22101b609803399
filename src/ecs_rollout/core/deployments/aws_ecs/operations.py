"""Change operations produced by the plan builder."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from ecs_rollout.core.deployments.aws_ecs.models import IngressRule, NetworkPlacement


class OperationKind(StrEnum):
    """Kinds of change, listed in dependency order."""

    CREATE_CLUSTER = "create_cluster"
    REGISTER_TASK_DEFINITION = "register_task_definition"
    UPDATE_SERVICE = "update_service"
    UPDATE_NETWORKING = "update_networking"


@dataclass(frozen=True)
class CreateCluster:
    """Create the ECS cluster the service runs in."""

    kind: ClassVar[OperationKind] = OperationKind.CREATE_CLUSTER

    cluster_name: str

    def describe(self) -> str:
        return f"Create cluster {self.cluster_name}"


@dataclass(frozen=True)
class RegisterTaskDefinition:
    """Register a new revision of the service's task definition."""

    kind: ClassVar[OperationKind] = OperationKind.REGISTER_TASK_DEFINITION

    family: str
    image: str
    request: dict[str, Any] = field(compare=False, repr=False)

    def describe(self) -> str:
        return f"Register task definition {self.family} ({self.image})"


@dataclass(frozen=True)
class UpdateService:
    """Create the service, or point it at a task definition revision.

    ``task_definition_arn`` is None when the revision is registered earlier
    in the same plan. ``placement`` is None when the network configuration
    is left untouched, as it is for rollbacks.
    """

    kind: ClassVar[OperationKind] = OperationKind.UPDATE_SERVICE

    cluster_name: str
    service_name: str
    desired_count: int
    task_definition_arn: str | None = None
    placement: NetworkPlacement | None = None
    create: bool = False
    previous_task_definition_arn: str | None = None
    previous_desired_count: int | None = None
    require_healthy: bool = False

    def describe(self) -> str:
        verb = "Create" if self.create else "Update"
        revision = self.task_definition_arn or "new revision"
        return (
            f"{verb} service {self.service_name} in {self.cluster_name} "
            f"({revision}, {self.desired_count} desired)"
        )


@dataclass(frozen=True)
class UpdateNetworking:
    """Authorise inbound rules on the service's security group."""

    kind: ClassVar[OperationKind] = OperationKind.UPDATE_NETWORKING

    security_group_id: str
    rules: tuple[IngressRule, ...]

    def describe(self) -> str:
        rules = ", ".join(rule.describe() for rule in self.rules)
        return f"Authorise ingress on {self.security_group_id}: {rules}"


ChangeOperation = CreateCluster | RegisterTaskDefinition | UpdateService | UpdateNetworking
