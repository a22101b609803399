"""Task definition helpers for Fargate services."""

from typing import Any

from ecs_rollout.core.deployments.aws_ecs.errors import ValidationError
from ecs_rollout.core.deployments.aws_ecs.models import DeploymentSpec

# Valid Fargate memory sizes (MiB) for each CPU size (CPU units).
FARGATE_CPU_MEMORY: dict[int, tuple[int, ...]] = {
    256: (512, 1024, 2048),
    512: (1024, 2048, 3072, 4096),
    1024: tuple(range(2048, 8193, 1024)),
    2048: tuple(range(4096, 16385, 1024)),
    4096: tuple(range(8192, 30721, 1024)),
    8192: tuple(range(16384, 61441, 4096)),
    16384: tuple(range(32768, 122881, 8192)),
}

CPU_ARCHITECTURES = ("X86_64", "ARM64")


def normalise_cpu_architecture(value: str) -> str:
    """Return a validated ECS CPU architecture."""
    architecture = value.strip().upper()
    if architecture in CPU_ARCHITECTURES:
        return architecture
    raise ValidationError(f"Unsupported ECS CPU architecture '{value}'. Use X86_64 or ARM64.")


def check_fargate_size(cpu: int, memory: int) -> None:
    """Reject CPU and memory pairs Fargate cannot run."""
    allowed = FARGATE_CPU_MEMORY.get(cpu)
    if allowed is None:
        sizes = ", ".join(str(size) for size in FARGATE_CPU_MEMORY)
        raise ValidationError(f"Unsupported Fargate CPU value {cpu}. Use one of: {sizes}.")
    if memory not in allowed:
        raise ValidationError(
            f"Memory {memory} MiB is not valid for {cpu} CPU units. "
            f"Use between {allowed[0]} and {allowed[-1]} MiB."
        )


def task_definition_request(spec: DeploymentSpec) -> dict[str, Any]:
    """Build the register_task_definition request for a spec."""
    container: dict[str, Any] = {
        "name": spec.container_name,
        "image": spec.image,
        "essential": True,
        "portMappings": [{"containerPort": spec.port, "protocol": "tcp"}],
        "environment": [{"name": name, "value": value} for name, value in spec.environment],
    }
    if spec.health_check is not None:
        container["healthCheck"] = {
            "command": list(spec.health_check.command),
            "interval": spec.health_check.interval,
            "timeout": spec.health_check.timeout,
            "retries": spec.health_check.retries,
            "startPeriod": spec.health_check.start_period,
        }
    if spec.log_group:
        # The region is filled in by the platform when registering.
        container["logConfiguration"] = {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": spec.log_group,
                "awslogs-stream-prefix": spec.service_name,
            },
        }

    request: dict[str, Any] = {
        "family": spec.task_family,
        "networkMode": "awsvpc",
        "requiresCompatibilities": ["FARGATE"],
        "runtimePlatform": {
            "cpuArchitecture": spec.cpu_architecture,
            "operatingSystemFamily": "LINUX",
        },
        "cpu": str(spec.cpu),
        "memory": str(spec.memory),
        "containerDefinitions": [container],
    }
    if spec.execution_role_arn:
        request["executionRoleArn"] = spec.execution_role_arn
    if spec.task_role_arn:
        request["taskRoleArn"] = spec.task_role_arn
    return request
