"""Deployment descriptor loading and validation."""

import json
import re
from ipaddress import ip_network
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ecs_rollout.core.deployments.aws_ecs.errors import ValidationError
from ecs_rollout.core.deployments.aws_ecs.models import (
    DEFAULT_CIDR,
    DeploymentSpec,
    HealthCheck,
    IngressRule,
)
from ecs_rollout.core.deployments.aws_ecs.task_definitions import (
    CPU_ARCHITECTURES,
    check_fargate_size,
    normalise_cpu_architecture,
)

NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,254}$")
YAML_SUFFIXES = {".yaml", ".yml"}
HEALTH_CHECK_FORMS = ("CMD", "CMD-SHELL")


class IngressRuleModel(BaseModel):
    """Inbound rule as written in a descriptor."""

    model_config = ConfigDict(extra="forbid")

    protocol: str = "tcp"
    from_port: int = Field(ge=0, le=65535)
    to_port: int | None = Field(default=None, ge=0, le=65535)
    cidr: str = DEFAULT_CIDR
    description: str | None = None

    @field_validator("protocol")
    @classmethod
    def _check_protocol(cls, value: str) -> str:
        protocol = value.strip().lower()
        if protocol not in {"tcp", "udp"}:
            raise ValueError("protocol must be tcp or udp")
        return protocol

    @field_validator("cidr")
    @classmethod
    def _check_cidr(cls, value: str) -> str:
        try:
            return str(ip_network(value.strip(), strict=False))
        except ValueError as exc:
            raise ValueError(f"invalid CIDR '{value}'") from exc

    @model_validator(mode="after")
    def _check_range(self) -> "IngressRuleModel":
        if self.to_port is not None and self.to_port < self.from_port:
            raise ValueError("to_port must not be lower than from_port")
        return self

    def to_rule(self) -> IngressRule:
        return IngressRule(
            protocol=self.protocol,
            from_port=self.from_port,
            to_port=self.from_port if self.to_port is None else self.to_port,
            cidr=self.cidr,
            description=self.description,
        )


class HealthCheckModel(BaseModel):
    """Container health check as written in a descriptor."""

    model_config = ConfigDict(extra="forbid")

    command: list[str] = Field(min_length=1)
    interval: int = Field(default=30, ge=5, le=300)
    timeout: int = Field(default=5, ge=2, le=120)
    retries: int = Field(default=3, ge=1, le=10)
    start_period: int = Field(default=0, ge=0, le=300)

    @field_validator("command", mode="before")
    @classmethod
    def _shell_command(cls, value: Any) -> Any:
        # A plain string is run through the container shell.
        if isinstance(value, str):
            return ["CMD-SHELL", value]
        return value

    @field_validator("command")
    @classmethod
    def _check_command_form(cls, value: list[str]) -> list[str]:
        if value[0] not in HEALTH_CHECK_FORMS:
            raise ValueError("health check command must start with CMD or CMD-SHELL")
        return value


class DescriptorModel(BaseModel):
    """Schema of a deployment descriptor file."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    service_name: str
    image: str = Field(min_length=1)
    cpu: int = 256
    memory: int = 512
    port: int = Field(ge=1, le=65535)
    desired_count: int = Field(default=1, ge=0)
    cluster_name: str | None = None
    subnets: list[str] = Field(default_factory=list)
    security_group_id: str | None = None
    security_group_rules: list[IngressRuleModel] | None = None
    assign_public_ip: bool = True
    cpu_architecture: str = "X86_64"
    environment: dict[str, str] = Field(default_factory=dict)
    execution_role_arn: str | None = None
    task_role_arn: str | None = None
    log_group: str | None = None
    health_check: HealthCheckModel | None = None

    @field_validator("service_name", "cluster_name")
    @classmethod
    def _check_name(cls, value: str | None) -> str | None:
        if value is not None and not NAME_PATTERN.match(value):
            raise ValueError(
                "must start with a letter or digit and contain only letters, digits, "
                "hyphens and underscores (max 255 characters)"
            )
        return value

    @field_validator("subnets")
    @classmethod
    def _check_subnets(cls, value: list[str]) -> list[str]:
        for subnet in value:
            if not subnet.startswith("subnet-"):
                raise ValueError(f"'{subnet}' is not a subnet ID")
        if len(set(value)) != len(value):
            raise ValueError("subnets must not repeat")
        return value

    @field_validator("security_group_id")
    @classmethod
    def _check_security_group(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith("sg-"):
            raise ValueError(f"'{value}' is not a security group ID")
        return value

    @model_validator(mode="after")
    def _check_logging(self) -> "DescriptorModel":
        if self.log_group and not self.execution_role_arn:
            raise ValueError("log_group requires execution_role_arn for the awslogs driver")
        return self

    def to_spec(self) -> DeploymentSpec:
        """Convert the validated descriptor into a deployment spec."""
        check_fargate_size(self.cpu, self.memory)
        if self.security_group_rules is None:
            rules: tuple[IngressRule, ...] = (
                IngressRule("tcp", from_port=self.port, to_port=self.port, cidr=DEFAULT_CIDR),
            )
        else:
            rules = tuple(rule.to_rule() for rule in self.security_group_rules)

        health_check = None
        if self.health_check is not None:
            health_check = HealthCheck(
                command=tuple(self.health_check.command),
                interval=self.health_check.interval,
                timeout=self.health_check.timeout,
                retries=self.health_check.retries,
                start_period=self.health_check.start_period,
            )

        return DeploymentSpec(
            service_name=self.service_name,
            image=self.image,
            cpu=self.cpu,
            memory=self.memory,
            port=self.port,
            desired_count=self.desired_count,
            cluster_name=self.cluster_name or f"{self.service_name}-cluster",
            subnets=tuple(self.subnets),
            security_group_id=self.security_group_id,
            security_group_rules=rules,
            assign_public_ip=self.assign_public_ip,
            cpu_architecture=normalise_cpu_architecture(self.cpu_architecture),
            environment=tuple(sorted(self.environment.items())),
            execution_role_arn=self.execution_role_arn,
            task_role_arn=self.task_role_arn,
            log_group=self.log_group,
            health_check=health_check,
        )


def validate_spec(spec: DeploymentSpec) -> None:
    """Check a deployment spec built outside the descriptor loader.

    Raises:
        ValidationError: Listing every field that cannot be deployed.
    """
    problems = []
    for label, name in (("service_name", spec.service_name), ("cluster_name", spec.cluster_name)):
        if not NAME_PATTERN.match(name):
            problems.append(f"{label} '{name}' is not a valid ECS name")
    if not spec.image.strip():
        problems.append("image must not be empty")
    try:
        check_fargate_size(spec.cpu, spec.memory)
    except ValidationError as exc:
        problems.append(str(exc))
    if not 1 <= spec.port <= 65535:
        problems.append(f"port {spec.port} is outside 1-65535")
    if spec.desired_count < 0:
        problems.append(f"desired_count {spec.desired_count} is negative")
    problems.extend(
        f"'{subnet}' is not a subnet ID"
        for subnet in spec.subnets
        if not subnet.startswith("subnet-")
    )
    if len(set(spec.subnets)) != len(spec.subnets):
        problems.append("subnets must not repeat")
    if spec.security_group_id is not None and not spec.security_group_id.startswith("sg-"):
        problems.append(f"'{spec.security_group_id}' is not a security group ID")
    for rule in spec.security_group_rules:
        if rule.protocol not in {"tcp", "udp"} or not 0 <= rule.from_port <= rule.to_port <= 65535:
            problems.append(f"ingress rule {rule.describe()} is invalid")
            continue
        try:
            ip_network(rule.cidr, strict=False)
        except ValueError:
            problems.append(f"invalid CIDR '{rule.cidr}'")
    if spec.cpu_architecture not in CPU_ARCHITECTURES:
        problems.append(f"Unsupported ECS CPU architecture '{spec.cpu_architecture}'")
    if spec.log_group and not spec.execution_role_arn:
        problems.append("log_group requires execution_role_arn for the awslogs driver")
    if spec.health_check is not None and (
        not spec.health_check.command or spec.health_check.command[0] not in HEALTH_CHECK_FORMS
    ):
        problems.append("health check command must start with CMD or CMD-SHELL")
    if problems:
        raise ValidationError(f"Invalid deployment settings: {'; '.join(problems)}")


def load_descriptor(path: Path) -> DeploymentSpec:
    """Load a deployment descriptor from a YAML or JSON file.

    Args:
        path: Path to the descriptor file.

    Returns:
        The validated deployment spec.

    Raises:
        ValidationError: If the file cannot be read or fails validation.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValidationError(f"Cannot read descriptor {path}: {exc}") from exc

    try:
        if path.suffix.lower() in YAML_SUFFIXES:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Invalid descriptor {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValidationError(f"Descriptor {path} must contain a mapping of fields.")

    return parse_descriptor(data, source=str(path))


def parse_descriptor(data: dict[str, Any], source: str = "descriptor") -> DeploymentSpec:
    """Validate raw descriptor data and build a deployment spec."""
    try:
        model = DescriptorModel.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid values in {source}: {exc}") from exc
    return model.to_spec()
