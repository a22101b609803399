"""Tests for the boto3-backed platform, using botocore's Stubber."""

from collections.abc import Iterator

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber
from conftest import CLUSTER_ARN, SERVICE_ARN, TD_ARN, WEB_RULE, make_spec

from ecs_rollout.core.deployments.aws_ecs import EcsPlatform, UpdateService
from ecs_rollout.core.deployments.aws_ecs.models import (
    IngressRule,
    NetworkPlacement,
    SecurityGroupState,
)
from ecs_rollout.core.deployments.aws_ecs.operations import RegisterTaskDefinition
from ecs_rollout.core.deployments.aws_ecs.task_definitions import task_definition_request

NETWORK = {
    "awsvpcConfiguration": {
        "subnets": ["subnet-b", "subnet-a"],
        "securityGroups": ["sg-1"],
        "assignPublicIp": "ENABLED",
    }
}


@pytest.fixture
def platform() -> EcsPlatform:
    session = boto3.session.Session(
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name="eu-west-2",
    )
    return EcsPlatform(session)


@pytest.fixture
def ecs(platform: EcsPlatform) -> Iterator[Stubber]:
    with Stubber(platform._ecs) as stubber:
        yield stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def ec2(platform: EcsPlatform) -> Iterator[Stubber]:
    with Stubber(platform._ec2) as stubber:
        yield stubber
        stubber.assert_no_pending_responses()


def _service_payload(**overrides):
    payload = {
        "serviceName": "hello",
        "serviceArn": SERVICE_ARN,
        "status": "ACTIVE",
        "taskDefinition": TD_ARN,
        "desiredCount": 2,
        "runningCount": 2,
        "pendingCount": 0,
        "networkConfiguration": NETWORK,
        "deployments": [
            {
                "id": "ecs-svc/1",
                "status": "PRIMARY",
                "taskDefinition": TD_ARN,
                "desiredCount": 2,
                "runningCount": 2,
                "rolloutState": "COMPLETED",
            }
        ],
    }
    payload.update(overrides)
    return payload


def test_describe_cluster(platform, ecs):
    ecs.add_response(
        "describe_clusters",
        {
            "clusters": [
                {"clusterName": "hello-cluster", "clusterArn": CLUSTER_ARN, "status": "ACTIVE"}
            ]
        },
        {"clusters": ["hello-cluster"]},
    )
    ecs.add_response("describe_clusters", {"clusters": []}, {"clusters": ["other"]})

    cluster = platform.describe_cluster("hello-cluster")

    assert cluster is not None and cluster.is_active
    assert cluster.arn == CLUSTER_ARN
    assert platform.describe_cluster("other") is None


def test_describe_service_parses_deployments(platform, ecs):
    ecs.add_response(
        "describe_services",
        {"services": [_service_payload()]},
        {"cluster": "hello-cluster", "services": ["hello"]},
    )

    service = platform.describe_service("hello-cluster", "hello")

    assert service is not None
    assert service.is_steady
    assert service.subnets == ("subnet-a", "subnet-b")
    assert service.security_groups == ("sg-1",)
    assert service.assign_public_ip is True
    assert service.primary_deployment.rollout_state == "COMPLETED"


def test_describe_service_without_cluster_is_missing(platform, ecs):
    ecs.add_client_error(
        "describe_services",
        service_error_code="ClusterNotFoundException",
        expected_params={"cluster": "hello-cluster", "services": ["hello"]},
    )

    assert platform.describe_service("hello-cluster", "hello") is None


def test_describe_unknown_task_definition_is_missing(platform, ecs):
    ecs.add_client_error(
        "describe_task_definition",
        service_error_code="ClientException",
        expected_params={"taskDefinition": "hello"},
    )

    assert platform.describe_task_definition("hello") is None


def test_register_task_definition_returns_arn(platform, ecs):
    spec = make_spec()
    request = task_definition_request(spec)
    ecs.add_response(
        "register_task_definition",
        {"taskDefinition": {"taskDefinitionArn": TD_ARN}},
        request,
    )

    operation = RegisterTaskDefinition(family="hello", image=spec.image, request=request)

    assert platform.register_task_definition(operation) == TD_ARN


def test_create_service_uses_fargate_and_placement(platform, ecs):
    placement = NetworkPlacement(
        vpc_id="vpc-1",
        subnets=("subnet-a", "subnet-b"),
        security_group=SecurityGroupState("sg-1", "vpc-1"),
        assign_public_ip=False,
    )
    operation = UpdateService(
        cluster_name="hello-cluster",
        service_name="hello",
        desired_count=1,
        placement=placement,
        create=True,
    )
    ecs.add_response(
        "create_service",
        {"service": _service_payload(desiredCount=1, runningCount=0)},
        {
            "cluster": "hello-cluster",
            "serviceName": "hello",
            "taskDefinition": TD_ARN,
            "desiredCount": 1,
            "launchType": "FARGATE",
            "platformVersion": "LATEST",
            "networkConfiguration": {
                "awsvpcConfiguration": {
                    "subnets": ["subnet-a", "subnet-b"],
                    "securityGroups": ["sg-1"],
                    "assignPublicIp": "DISABLED",
                }
            },
            "deploymentConfiguration": {
                "deploymentCircuitBreaker": {"enable": True, "rollback": False},
                "minimumHealthyPercent": 100,
                "maximumPercent": 200,
            },
        },
    )

    service = platform.create_service(operation, TD_ARN)

    assert service.desired_count == 1


def test_rollback_update_leaves_network_untouched(platform, ecs):
    operation = UpdateService(
        cluster_name="hello-cluster",
        service_name="hello",
        desired_count=2,
        task_definition_arn=TD_ARN,
    )
    ecs.add_response(
        "update_service",
        {"service": _service_payload()},
        {
            "cluster": "hello-cluster",
            "service": "hello",
            "taskDefinition": TD_ARN,
            "desiredCount": 2,
        },
    )

    assert platform.update_service(operation, TD_ARN).task_definition_arn == TD_ARN


def test_task_health_collects_running_tasks(platform, ecs):
    task_arns = ["arn:task/1", "arn:task/2"]
    ecs.add_response(
        "list_tasks",
        {"taskArns": task_arns},
        {"cluster": "hello-cluster", "serviceName": "hello", "desiredStatus": "RUNNING"},
    )
    ecs.add_response(
        "describe_tasks",
        {
            "tasks": [
                {"taskArn": task_arns[0], "healthStatus": "HEALTHY"},
                {"taskArn": task_arns[1], "healthStatus": "UNKNOWN"},
            ]
        },
        {"cluster": "hello-cluster", "tasks": task_arns},
    )

    assert platform.task_health("hello-cluster", "hello") == ["HEALTHY", "UNKNOWN"]


def test_describe_network_falls_back_to_default_vpc(platform, ec2):
    ec2.add_response(
        "describe_vpcs",
        {"Vpcs": [{"VpcId": "vpc-default"}]},
        {"Filters": [{"Name": "isDefault", "Values": ["true"]}]},
    )
    ec2.add_response(
        "describe_subnets",
        {
            "Subnets": [
                {"SubnetId": "subnet-b", "VpcId": "vpc-default"},
                {"SubnetId": "subnet-a", "VpcId": "vpc-default"},
            ]
        },
        {
            "Filters": [
                {"Name": "vpc-id", "Values": ["vpc-default"]},
                {"Name": "default-for-az", "Values": ["true"]},
            ]
        },
    )
    ec2.add_response(
        "describe_security_groups",
        {
            "SecurityGroups": [
                {
                    "GroupId": "sg-default",
                    "VpcId": "vpc-default",
                    "IpPermissions": [
                        {
                            "IpProtocol": "tcp",
                            "FromPort": 3000,
                            "ToPort": 3000,
                            "IpRanges": [{"CidrIp": "0.0.0.0/0"}],
                            "Ipv6Ranges": [{"CidrIpv6": "::/0"}],
                        },
                        {"IpProtocol": "-1", "IpRanges": [{"CidrIp": "10.0.0.0/8"}]},
                    ],
                }
            ]
        },
        {
            "Filters": [
                {"Name": "vpc-id", "Values": ["vpc-default"]},
                {"Name": "group-name", "Values": ["default"]},
            ]
        },
    )

    network = platform.describe_network((), None)

    assert network.default_vpc_id == "vpc-default"
    assert network.default_subnet_ids == ("subnet-a", "subnet-b")
    assert network.default_security_group is not None
    assert network.default_security_group.ingress == (
        WEB_RULE,
        IngressRule("tcp", 3000, 3000, "::/0"),
    )


def test_describe_network_skips_unknown_subnets(platform, ec2):
    ec2.add_response(
        "describe_subnets",
        {"Subnets": [{"SubnetId": "subnet-a", "VpcId": "vpc-1"}]},
        {"SubnetIds": ["subnet-a"]},
    )
    ec2.add_client_error(
        "describe_subnets",
        service_error_code="InvalidSubnetID.NotFound",
        expected_params={"SubnetIds": ["subnet-gone"]},
    )
    ec2.add_client_error(
        "describe_security_groups",
        service_error_code="InvalidGroup.NotFound",
        expected_params={"GroupIds": ["sg-1"]},
    )

    network = platform.describe_network(("subnet-a", "subnet-gone"), "sg-1")

    assert network.subnets == {"subnet-a": "vpc-1"}
    assert network.security_group is None
    assert network.default_vpc_id is None


def test_authorize_ingress_ignores_duplicates(platform, ec2):
    permission = {
        "IpProtocol": "tcp",
        "FromPort": 3000,
        "ToPort": 3000,
        "IpRanges": [{"CidrIp": "0.0.0.0/0"}],
    }
    ec2.add_client_error(
        "authorize_security_group_ingress",
        service_error_code="InvalidPermission.Duplicate",
        expected_params={"GroupId": "sg-1", "IpPermissions": [permission]},
    )

    platform.authorize_ingress("sg-1", (WEB_RULE,))


def test_authorize_ingress_raises_other_errors(platform, ec2):
    ec2.add_client_error(
        "authorize_security_group_ingress",
        service_error_code="UnauthorizedOperation",
    )

    with pytest.raises(ClientError):
        platform.authorize_ingress("sg-1", (WEB_RULE,))
