"""
CDK assertions for the stack built from compiled plans.
"""

import pytest
from aws_cdk import App
from aws_cdk.assertions import Match, Template
from stacks.ecs_cluster_stack import EcsClusterStack, PlanProvisioningError

from cluster_policy.schemas.plan import OutcomeStatus
from cluster_policy.schemas.rule import Direction, Peer, PortRange, SymbolicRule
from cluster_policy.services.plan_emitter import PlanEmitter
from cluster_policy.services.policy_compiler import PolicyCompiler
from cluster_policy.services.rule_table import build_rule_table
from tests.conftest import make_test_vpc


def build_stack(plan):
    app = App()
    vpc = make_test_vpc(app)
    return EcsClusterStack(app, "TestEcsClusterStack", plan=plan, vpc=vpc)


@pytest.fixture
def qa_stack(service):
    return build_stack(service.compile_environment("qa"))


@pytest.fixture
def qa_template(qa_stack):
    return Template.from_stack(qa_stack)


class TestSecurityGroups:
    def test_two_security_groups_created(self, qa_template):
        qa_template.resource_count_is("AWS::EC2::SecurityGroup", 2)

    def test_edge_ingress_is_listener_port_only(self, qa_template):
        qa_template.has_resource_properties(
            "AWS::EC2::SecurityGroup",
            {
                "GroupName": "ohme-assessment-qa-alb-security-group",
                "SecurityGroupIngress": [
                    Match.object_like(
                        {"CidrIp": "0.0.0.0/0", "IpProtocol": "tcp", "FromPort": 80, "ToPort": 80}
                    )
                ],
            },
        )

    def test_compute_ingress_references_edge_group(self, qa_template):
        qa_template.resource_count_is("AWS::EC2::SecurityGroupIngress", 1)
        qa_template.has_resource_properties(
            "AWS::EC2::SecurityGroupIngress",
            {
                "IpProtocol": "tcp",
                "FromPort": 0,
                "ToPort": 65535,
                "GroupId": Match.any_value(),
                "SourceSecurityGroupId": Match.any_value(),
            },
        )

    def test_groups_referencing_each_other(self, qa_environment):
        table = build_rule_table(qa_environment)
        table.append(
            SymbolicRule(
                group="edge",
                direction=Direction.OUTBOUND,
                peer=Peer.group("compute"),
                port=PortRange.tcp(8080),
                description="Allow outbound to the fleet",
            )
        )
        plan = PlanEmitter().emit(PolicyCompiler().compile(qa_environment, table))

        stack = build_stack(plan)
        template = Template.from_stack(stack)

        assert all(o.status == OutcomeStatus.SUCCEEDED for o in stack.outcomes)
        template.resource_count_is("AWS::EC2::SecurityGroupIngress", 1)
        template.has_resource_properties(
            "AWS::EC2::SecurityGroupEgress",
            {"FromPort": 8080, "ToPort": 8080, "DestinationSecurityGroupId": Match.any_value()},
        )

    def test_groups_are_tagged_with_environment(self, qa_template):
        qa_template.has_resource_properties(
            "AWS::EC2::SecurityGroup",
            {"Tags": Match.array_with([{"Key": "Environment", "Value": "qa"}])},
        )


class TestLoadBalancer:
    def test_internet_facing_alb(self, qa_template):
        qa_template.has_resource_properties(
            "AWS::ElasticLoadBalancingV2::LoadBalancer",
            {"Name": "ohme-assessment-qa-alb", "Scheme": "internet-facing"},
        )

    def test_listener_placeholder_fixed_response(self, qa_template):
        qa_template.has_resource_properties(
            "AWS::ElasticLoadBalancingV2::Listener",
            {
                "Port": 80,
                "DefaultActions": [
                    Match.object_like(
                        {
                            "Type": "fixed-response",
                            "FixedResponseConfig": Match.object_like({"StatusCode": "200"}),
                        }
                    )
                ],
            },
        )


class TestComputeFleet:
    def test_instance_role(self, qa_template):
        qa_template.has_resource_properties(
            "AWS::IAM::Role", {"RoleName": "ohme-assessment-qa-asg-iam-role"}
        )

    def test_launch_template(self, qa_template):
        qa_template.has_resource_properties(
            "AWS::EC2::LaunchTemplate",
            {
                "LaunchTemplateName": "ohme-assessment-qa-launch-template",
                "LaunchTemplateData": Match.object_like({"InstanceType": "t4g.medium"}),
            },
        )

    def test_auto_scaling_group_capacity(self, qa_template):
        qa_template.has_resource_properties(
            "AWS::AutoScaling::AutoScalingGroup",
            {"AutoScalingGroupName": "ohme-assessment-qa-asg", "MinSize": "1", "MaxSize": "4"},
        )

    def test_capacity_provider_bound_to_cluster(self, qa_template):
        qa_template.has_resource_properties(
            "AWS::ECS::CapacityProvider",
            {
                "Name": "ohme-assessment-qa-capacity-provider",
                "AutoScalingGroupProvider": Match.object_like(
                    {"ManagedTerminationProtection": "ENABLED", "ManagedDraining": "ENABLED"}
                ),
            },
        )
        qa_template.has_resource_properties(
            "AWS::ECS::Cluster", {"ClusterName": "ohme-assessment-qa-ecs-cluster"}
        )
        qa_template.resource_count_is("AWS::ECS::ClusterCapacityProviderAssociations", 1)

    def test_outputs_created(self, qa_template):
        for key in ["AlbDnsName", "EcsClusterArn"]:
            qa_template.has_output(key, {})


class TestOutcomes:
    def test_every_resource_succeeds(self, qa_stack):
        assert [o.name for o in qa_stack.outcomes] == qa_stack.plan.order
        assert all(o.status == OutcomeStatus.SUCCEEDED for o in qa_stack.outcomes)
        assert all(o.physical_id for o in qa_stack.outcomes)

    def test_failed_resource_skips_dependants(self, service):
        plan = service.compile_environment("qa")
        broken = tuple(
            r.model_copy(update={"properties": {}}) if r.name == "ASG-SG" else r
            for r in plan.resources
        )

        with pytest.raises(PlanProvisioningError) as exc_info:
            build_stack(plan.model_copy(update={"resources": broken}))

        statuses = {o.name: o.status for o in exc_info.value.outcomes}
        assert statuses["ALB-SG"] == OutcomeStatus.SUCCEEDED
        assert statuses["ASG-SG"] == OutcomeStatus.FAILED
        assert statuses["Launch-Template"] == OutcomeStatus.SKIPPED
        assert statuses["CapacityProviderBinding"] == OutcomeStatus.SKIPPED
        assert statuses["EcsCluster"] == OutcomeStatus.SUCCEEDED


class TestOpenModel:
    def test_open_ingress_spans_all_ports(self, service):
        from cluster_policy.schemas.environment import PolicyModel, PolicyOptions

        plan = service.compile_environment(
            "prod", policy=PolicyOptions.from_model(PolicyModel.OPEN, allow_legacy_open=True)
        )
        template = Template.from_stack(build_stack(plan))
        template.has_resource_properties(
            "AWS::EC2::SecurityGroup",
            {
                "GroupName": "ohme-assessment-prod-asg-security-group",
                "SecurityGroupIngress": [
                    Match.object_like({"CidrIp": "0.0.0.0/0", "FromPort": 0, "ToPort": 65535})
                ],
            },
        )
