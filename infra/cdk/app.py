#!/usr/bin/env python3
"""
CDK app entry point.

Usage
-----
Install the project (from the repo root) first:
    pip install -e .

Bootstrap (once per account/region):
    cdk bootstrap aws://<ACCOUNT_ID>/eu-west-2

Deploy one environment:
    cdk deploy QaEcsClusterStack

Optional context:
    --context log_level=DEBUG

Every environment is compiled and provisioned on its own; an environment
whose policy fails to compile, or whose stack fails to build, is logged and
left out, and the remaining stacks still synthesise.
"""

from typing import Iterable, Optional

import aws_cdk as cdk
from aws_cdk import aws_ec2 as ec2
from stacks.ecs_cluster_stack import EcsClusterStack, PlanProvisioningError

from cluster_policy.config import settings
from cluster_policy.logging_config import configure_logging, get_logger
from cluster_policy.schemas.plan import EnvironmentResult, OutcomeStatus
from cluster_policy.services.policy_service import PolicyService

logger = get_logger(__name__)


def build_stacks(
    app: cdk.App,
    results: Iterable[EnvironmentResult],
    env: Optional[cdk.Environment] = None,
    vpc: Optional[ec2.IVpc] = None,
) -> dict[str, EcsClusterStack]:
    stacks = {}
    for result in results:
        if not result.ok:
            logger.error("stack_skipped", environment=result.environment, error=result.error)
            continue

        title = result.environment.capitalize()
        construct_id = f"{title}EcsClusterStack"
        try:
            stacks[result.environment] = EcsClusterStack(
                app,
                construct_id,
                plan=result.plan,
                vpc=vpc,
                stack_name=result.plan.stack_name,
                description=f"{title} ECS Cluster Stack",
                env=env,
            )
        except PlanProvisioningError as exc:
            # Drop the half-built stack so it never reaches the cloud assembly
            app.node.try_remove_child(construct_id)
            logger.error(
                "stack_skipped",
                environment=result.environment,
                error=exc.message,
                failed=[o.name for o in exc.outcomes if o.status == OutcomeStatus.FAILED],
            )
    return stacks


def main() -> None:
    app = cdk.App()
    log_level = app.node.try_get_context("log_level")
    configure_logging(settings.model_copy(update={"log_level": log_level}) if log_level else settings)

    build_stacks(
        app,
        PolicyService().compile_all(),
        env=cdk.Environment(account=settings.aws_account, region=settings.aws_region),
    )
    app.synth()


if __name__ == "__main__":
    main()
