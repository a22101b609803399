"""Rich rendering for plans, remote state and results."""

from collections.abc import Sequence

from rich.table import Table

from ecs_rollout.cli.ui import console
from ecs_rollout.core.deployments.aws_ecs import (
    ChangeOperation,
    DeploymentResult,
    DeploymentSpec,
    DeploymentStatus,
    RemoteState,
)

STATUS_KEY_CLUSTER = "ECS cluster"
STATUS_KEY_TASK_DEFINITION = "Task definition"
STATUS_KEY_SERVICE = "Service"
STATUS_KEY_SUBNETS = "Subnets"
STATUS_KEY_SECURITY_GROUP = "Security group"

RESULT_STYLES = {
    DeploymentStatus.SUCCEEDED: "green",
    DeploymentStatus.UNCHANGED: "green",
    DeploymentStatus.PLANNED: "cyan",
    DeploymentStatus.ABORTED: "yellow",
}


def print_plan(plan: Sequence[ChangeOperation]) -> None:
    """Print planned operations in execution order."""
    if not plan:
        console.print("[green]No changes. Remote state matches the descriptor.[/green]")
        return

    table = Table(title="Planned operations", show_header=True, header_style="bold cyan")
    table.add_column("#", style="white", no_wrap=True)
    table.add_column("Operation", style="white", no_wrap=True)
    table.add_column("Details", style="bright_white")
    for index, operation in enumerate(plan):
        table.add_row(str(index), operation.kind.value, operation.describe())
    console.print(table)


def remote_state_rows(spec: DeploymentSpec, remote: RemoteState) -> dict[str, tuple[str, str]]:
    """Return display targets and statuses keyed by resource name.

    Args:
        spec: Deployment spec the state was read for.
        remote: Remote state snapshot.

    Returns:
        (name/ID, status) pairs keyed by resource label.
    """
    rows: dict[str, tuple[str, str]] = {}

    cluster = remote.cluster
    if cluster is None:
        rows[STATUS_KEY_CLUSTER] = (spec.cluster_name, "missing")
    else:
        rows[STATUS_KEY_CLUSTER] = (cluster.arn, _resource_status(cluster.status))

    task_definition = remote.task_definition
    if task_definition is None:
        rows[STATUS_KEY_TASK_DEFINITION] = (spec.task_family, "missing")
    else:
        status = _resource_status(task_definition.status)
        if status == "present" and not task_definition.matches(spec):
            status = "present (outdated)"
        rows[STATUS_KEY_TASK_DEFINITION] = (task_definition.arn, status)

    service = remote.service
    if service is None:
        rows[STATUS_KEY_SERVICE] = (spec.service_name, "missing")
    else:
        status = _resource_status(service.status)
        if status == "present":
            status = f"present {service.running_count}/{service.desired_count} running"
        rows[STATUS_KEY_SERVICE] = (service.arn, status)

    network = remote.network
    if spec.subnets:
        missing = [subnet for subnet in spec.subnets if subnet not in network.subnets]
        status = f"missing {len(missing)}/{len(spec.subnets)}" if missing else "present"
        rows[STATUS_KEY_SUBNETS] = (", ".join(spec.subnets), status)
    elif network.default_subnet_ids:
        rows[STATUS_KEY_SUBNETS] = (
            ", ".join(network.default_subnet_ids),
            "present, default VPC",
        )
    else:
        rows[STATUS_KEY_SUBNETS] = ("default VPC", "missing")

    if spec.security_group_id:
        group = network.security_group
        status = "missing"
        if group is not None:
            status = _rules_status(group.missing_rules(spec.security_group_rules))
        rows[STATUS_KEY_SECURITY_GROUP] = (spec.security_group_id, status)
    elif network.default_security_group is not None:
        group = network.default_security_group
        rows[STATUS_KEY_SECURITY_GROUP] = (
            f"{group.group_id} (default)",
            _rules_status(group.missing_rules(spec.security_group_rules)),
        )
    else:
        rows[STATUS_KEY_SECURITY_GROUP] = ("default", "missing")

    return rows


def print_remote_state(spec: DeploymentSpec, remote: RemoteState) -> None:
    """Print a remote state table."""
    table = Table(title="Deployment resources", show_header=True, header_style="bold cyan")
    table.add_column("Resource", style="white", no_wrap=True)
    table.add_column("Name/ID", style="bright_white")
    table.add_column("Status", style="white", no_wrap=True)

    for name, (target, status) in remote_state_rows(spec, remote).items():
        table.add_row(name, target, style_status(status))

    console.print(table)


def print_result(result: DeploymentResult) -> None:
    """Print the outcome of a deployment run."""
    style = RESULT_STYLES.get(result.status, "red")
    console.print(f"[{style}]Deployment {result.status.value}: {result.service_name}[/{style}]")

    if result.applied:
        console.print(
            f"[dim]Applied {len(result.applied)}/{len(result.planned)} operation(s).[/dim]"
        )
    if result.failed_operation_index is not None:
        failed = result.planned[result.failed_operation_index]
        console.print(
            f"[red]Failed at operation {result.failed_operation_index}: "
            f"{failed.describe()}[/red]"
        )
    if result.error and result.status != DeploymentStatus.REMOTE_API_FAILED:
        console.print(f"[{style}]{result.error}[/{style}]")
    if result.rolled_back_to:
        console.print(f"[yellow]Rolled back to {result.rolled_back_to}[/yellow]")
    if result.status == DeploymentStatus.ROLLBACK_FAILED:
        console.print(
            "[bold red]Manual intervention required: the service state is unknown.[/bold red]"
        )
    if result.service is not None:
        console.print(
            f"[dim]Service {result.service.name}: {result.service.running_count}/"
            f"{result.service.desired_count} running on {result.service.task_definition_arn}[/dim]"
        )


def style_status(status: str) -> str:
    """Return colourised status text for terminal output.

    Args:
        status: Resource status string.

    Returns:
        Rich-marked status text.
    """
    if status.startswith("present ("):
        return f"[yellow]{status}[/yellow]"
    if status.startswith("present"):
        return f"[green]{status}[/green]"
    if status.startswith("missing"):
        return f"[red]{status}[/red]"
    if status.startswith("status "):
        return f"[yellow]{status}[/yellow]"
    return status


def _resource_status(status: str) -> str:
    if status == "ACTIVE":
        return "present"
    return f"status {status.lower()}"


def _rules_status(missing: Sequence[object]) -> str:
    if missing:
        return f"present ({len(missing)} rule(s) to add)"
    return "present"
