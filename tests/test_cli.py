"""CLI tests using click's CliRunner."""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner
from conftest import FakePlatform, make_spec

from ecs_rollout.cli.main import cli
from ecs_rollout.core.deployments.aws_ecs import (
    DeploymentLockedError,
    DeploymentResult,
    DeploymentStatus,
    RemoteAPIError,
)

DESCRIPTOR = """\
service_name: hello
image: repo/hello:latest
port: 3000
subnets: [subnet-a, subnet-b]
security_group_id: sg-1
"""


@pytest.fixture
def descriptor(tmp_path):
    path = tmp_path / "hello.yaml"
    path.write_text(DESCRIPTOR, encoding="utf-8")
    return path


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("ECS_ROLLOUT_LOCK_DIR", str(tmp_path / "locks"))
    monkeypatch.setenv("ECS_ROLLOUT_POLL_INTERVAL_SECONDS", "0.01")
    return CliRunner()


def _with_platform(command: str, platform: FakePlatform):
    return patch(f"ecs_rollout.cli.commands.{command}.platform_or_exit", return_value=platform)


def test_deploy_fresh_service(runner, descriptor):
    platform = FakePlatform()

    with _with_platform("deploy", platform):
        result = runner.invoke(cli, ["deploy", "--config", str(descriptor)])

    assert result.exit_code == 0, result.output
    assert "Deployment succeeded: hello" in result.output
    assert platform.mutations == [
        "create_cluster",
        "register_task_definition",
        "create_service",
        "authorize_ingress",
    ]


def test_deploy_dry_run_prints_plan(runner, descriptor):
    platform = FakePlatform()

    with _with_platform("deploy", platform):
        result = runner.invoke(cli, ["deploy", "--config", str(descriptor), "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Planned operations" in result.output
    assert platform.mutations == []


def test_deploy_unchanged_service(runner, descriptor):
    platform = FakePlatform.deployed(make_spec())

    with _with_platform("deploy", platform):
        result = runner.invoke(cli, ["deploy", "--config", str(descriptor)])

    assert result.exit_code == 0, result.output
    assert "Deployment unchanged" in result.output


@pytest.mark.parametrize(
    ("status", "exit_code"),
    [
        (DeploymentStatus.VALIDATION_FAILED, 3),
        (DeploymentStatus.REMOTE_API_FAILED, 4),
        (DeploymentStatus.CONVERGENCE_FAILED, 5),
        (DeploymentStatus.ROLLBACK_FAILED, 6),
        (DeploymentStatus.ABORTED, 130),
    ],
)
def test_deploy_exit_codes(runner, descriptor, status, exit_code):
    outcome = DeploymentResult(status=status, service_name="hello", error="it broke")

    with (
        _with_platform("deploy", FakePlatform()),
        patch("ecs_rollout.cli.commands.deploy.deploy_service", return_value=outcome),
    ):
        result = runner.invoke(cli, ["deploy", "--config", str(descriptor)])

    assert result.exit_code == exit_code


def test_deploy_rollback_failure_asks_for_manual_action(runner, descriptor):
    outcome = DeploymentResult(
        status=DeploymentStatus.ROLLBACK_FAILED,
        service_name="hello",
        rolled_back_to="arn:previous",
    )

    with (
        _with_platform("deploy", FakePlatform()),
        patch("ecs_rollout.cli.commands.deploy.deploy_service", return_value=outcome),
    ):
        result = runner.invoke(cli, ["deploy", "--config", str(descriptor)])

    assert result.exit_code == 6
    assert "Manual intervention required" in result.output


def test_deploy_locked(runner, descriptor):
    with (
        _with_platform("deploy", FakePlatform()),
        patch(
            "ecs_rollout.cli.commands.deploy.deploy_service",
            side_effect=DeploymentLockedError("Another rollout of hello is in progress"),
        ),
    ):
        result = runner.invoke(cli, ["deploy", "--config", str(descriptor)])

    assert result.exit_code == 7


def test_invalid_descriptor_exits_with_validation_code(runner, tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("service_name: hello\nimage: repo/hello\nport: 3000\ncpu: 300\n")

    result = runner.invoke(cli, ["deploy", "--config", str(path)])

    assert result.exit_code == 3


def test_missing_credentials_exit_with_remote_code(runner, descriptor):
    error = RemoteAPIError(Exception("Unable to locate credentials"))

    with (
        patch("ecs_rollout.cli.steps.create_session", return_value=MagicMock()),
        patch("ecs_rollout.cli.steps.get_identity", side_effect=error),
    ):
        result = runner.invoke(cli, ["deploy", "--config", str(descriptor)])

    assert result.exit_code == 4


def test_plan_lists_operations(runner, descriptor):
    with _with_platform("plan", FakePlatform()):
        result = runner.invoke(cli, ["plan", "--config", str(descriptor)])

    assert result.exit_code == 0, result.output
    assert "create_cluster" in result.output
    assert "update_networking" in result.output


def test_plan_rejects_unknown_subnets(runner, tmp_path):
    path = tmp_path / "hello.yaml"
    path.write_text(DESCRIPTOR.replace("subnet-b", "subnet-zzz"), encoding="utf-8")

    with _with_platform("plan", FakePlatform()):
        result = runner.invoke(cli, ["plan", "--config", str(path)])

    assert result.exit_code == 3


def test_status_shows_resources(runner, descriptor):
    with _with_platform("status", FakePlatform.deployed(make_spec())):
        result = runner.invoke(cli, ["status", "--config", str(descriptor)])

    assert result.exit_code == 0, result.output
    assert "ECS cluster" in result.output
    assert "Security group" in result.output


def test_invalid_settings_exit_with_validation_code(runner, descriptor, monkeypatch):
    monkeypatch.setenv("ECS_ROLLOUT_TIMEOUT_SECONDS", "-5")

    result = runner.invoke(cli, ["status", "--config", str(descriptor)])

    assert result.exit_code == 3
