"""Shared pytest fixtures."""

import pytest
from aws_cdk import App, Stack
from aws_cdk import aws_ec2 as ec2
from httpx import ASGITransport, AsyncClient

from cluster_policy.config import Settings, build_environment, environment_registry
from cluster_policy.routers.plans import get_policy_service
from cluster_policy.schemas.environment import (
    Environment,
    EnvironmentName,
    PolicyModel,
    PolicyOptions,
)
from cluster_policy.services.policy_service import PolicyService

TEST_SETTINGS = Settings(_env_file=None)


@pytest.fixture
def registry():
    return environment_registry(TEST_SETTINGS)


@pytest.fixture
def service(registry):
    return PolicyService(registry=registry)


@pytest.fixture
def qa_environment() -> Environment:
    return build_environment(EnvironmentName.QA, config=TEST_SETTINGS)


@pytest.fixture
def prod_open_environment() -> Environment:
    return build_environment(
        EnvironmentName.PROD,
        policy=PolicyOptions.from_model(PolicyModel.OPEN, allow_legacy_open=True),
        config=TEST_SETTINGS,
    )


@pytest.fixture
async def client(service):
    from cluster_policy.main import app

    app.dependency_overrides[get_policy_service] = lambda: service
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


def make_environment(
    name: EnvironmentName = EnvironmentName.QA,
    network_cidr: str = None,
    **policy,
) -> Environment:
    return build_environment(
        name,
        policy=PolicyOptions(**policy),
        config=TEST_SETTINGS.model_copy(update={"network_cidr": network_cidr}),
    )


def make_test_vpc(app: App) -> ec2.Vpc:
    """A VPC in its own stack, so no context lookup is needed."""
    vpc_stack = Stack(app, "VpcStack")
    return ec2.Vpc(
        vpc_stack,
        "TestVpc",
        max_azs=2,
        nat_gateways=0,
        subnet_configuration=[
            ec2.SubnetConfiguration(
                name="Public Subnet",
                subnet_type=ec2.SubnetType.PUBLIC,
                cidr_mask=24,
            ),
        ],
    )
