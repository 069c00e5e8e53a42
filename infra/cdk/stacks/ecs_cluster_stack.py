"""
AWS CDK stack that provisions a compiled cluster resource plan.

Walks the plan in its emitted order and builds, per environment:
  - VPC lookup and public subnet selection
  - Edge (ALB) and compute (ASG) security groups with explicit rules only
  - Internet-facing ALB with a placeholder fixed-response listener
  - EC2 instance role, launch template and auto-scaling group
  - ECS capacity provider bound to the ECS cluster

Each descriptor yields a ResourceOutcome. A failed descriptor marks its
dependants as skipped and the stack raises PlanProvisioningError once the
walk is complete, so a partially built stack is never synthesised.
"""

from __future__ import annotations

from typing import Callable, Optional

import aws_cdk as cdk
from aws_cdk import CfnOutput, Stack
from aws_cdk import aws_autoscaling as autoscaling
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from aws_cdk import aws_iam as iam
from constructs import Construct

from cluster_policy.logging_config import get_logger
from cluster_policy.schemas.plan import (
    OutcomeStatus,
    ResourceDescriptor,
    ResourceOutcome,
    ResourcePlan,
    ResourceType,
)
from cluster_policy.schemas.rule import PeerKind, PortKind

logger = get_logger(__name__)


class PlanProvisioningError(Exception):
    def __init__(self, message: str, outcomes: list[ResourceOutcome]) -> None:
        self.message = message
        self.outcomes = outcomes
        super().__init__(message)


class EcsClusterStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        plan: ResourcePlan,
        vpc: Optional[ec2.IVpc] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.plan = plan
        self.constructs: dict[str, object] = {}
        self.outcomes: list[ResourceOutcome] = []
        self._vpc = vpc
        self._groups: dict[str, ec2.SecurityGroup] = {}
        # Rules waiting for the security group they reference to be built
        self._pending_rules: list[tuple[ec2.SecurityGroup, str, dict]] = []

        builders: dict[ResourceType, Callable[[ResourceDescriptor], object]] = {
            ResourceType.NETWORK_LOOKUP: self._network_lookup,
            ResourceType.SECURITY_GROUP: self._security_group,
            ResourceType.LOAD_BALANCER: self._load_balancer,
            ResourceType.LISTENER: self._listener,
            ResourceType.IAM_ROLE: self._iam_role,
            ResourceType.LAUNCH_TEMPLATE: self._launch_template,
            ResourceType.AUTO_SCALING_GROUP: self._auto_scaling_group,
            ResourceType.CAPACITY_PROVIDER: self._capacity_provider,
            ResourceType.CLUSTER: self._cluster,
            ResourceType.CAPACITY_PROVIDER_BINDING: self._capacity_provider_binding,
        }

        for descriptor in plan.resources:
            self.outcomes.append(self._provision(descriptor, builders[descriptor.type]))

        failed = [o for o in self.outcomes if o.status != OutcomeStatus.SUCCEEDED]
        if failed:
            raise PlanProvisioningError(
                f"{len(failed)} resource(s) of {plan.stack_name} were not provisioned.",
                self.outcomes,
            )

        for key, value in plan.tags.items():
            cdk.Tags.of(self).add(key, value)

        # ── Stack outputs ─────────────────────────────────────────────────────
        CfnOutput(
            self,
            "AlbDnsName",
            value=self._by_type(ResourceType.LOAD_BALANCER).load_balancer_dns_name,
            description="ALB DNS name",
        )
        CfnOutput(
            self,
            "EcsClusterArn",
            value=self._by_type(ResourceType.CLUSTER).cluster_arn,
            description="ECS cluster ARN",
        )

    def _provision(
        self, descriptor: ResourceDescriptor, build: Callable[[ResourceDescriptor], object]
    ) -> ResourceOutcome:
        missing = [d for d in descriptor.depends_on if d not in self.constructs]
        if missing:
            return ResourceOutcome(
                name=descriptor.name,
                status=OutcomeStatus.SKIPPED,
                error=f"dependencies not provisioned: {', '.join(missing)}",
            )
        try:
            construct = build(descriptor)
        except Exception as exc:
            logger.warning(
                "resource_provision_failed",
                stack=self.plan.stack_name,
                resource=descriptor.name,
                error=str(exc),
            )
            return ResourceOutcome(name=descriptor.name, status=OutcomeStatus.FAILED, error=str(exc))

        self.constructs[descriptor.name] = construct
        physical_id = construct.node.path if isinstance(construct, Construct) else descriptor.name
        return ResourceOutcome(
            name=descriptor.name, status=OutcomeStatus.SUCCEEDED, physical_id=physical_id
        )

    def _by_type(self, resource_type: ResourceType):
        for descriptor in self.plan.resources:
            if descriptor.type == resource_type:
                return self.constructs[descriptor.name]
        raise KeyError(resource_type)

    # ── VPC ───────────────────────────────────────────────────────────────────
    def _network_lookup(self, descriptor: ResourceDescriptor) -> ec2.IVpc:
        props = descriptor.properties
        if self._vpc is None:
            self._vpc = ec2.Vpc.from_lookup(self, descriptor.name, vpc_name=props["network_id"])
        return self._vpc

    # ── Security Groups ───────────────────────────────────────────────────────
    def _security_group(self, descriptor: ResourceDescriptor) -> ec2.SecurityGroup:
        props = descriptor.properties
        sg = ec2.SecurityGroup(
            self,
            descriptor.name,
            security_group_name=descriptor.physical_name,
            description=props["description"],
            vpc=self._vpc,
            allow_all_outbound=props["default_outbound"],
        )
        self._groups[descriptor.physical_name] = sg

        for direction in ("ingress", "egress"):
            for rule in props[direction]:
                peer = rule["peer"]
                if PeerKind(peer["kind"]) == PeerKind.GROUP and peer["value"] not in self._groups:
                    self._pending_rules.append((sg, direction, rule))
                else:
                    self._add_rule(sg, direction, rule)

        waiting = [p for p in self._pending_rules if p[2]["peer"]["value"] == descriptor.physical_name]
        for pending in waiting:
            self._pending_rules.remove(pending)
            self._add_rule(*pending)
        return sg

    def _add_rule(self, sg: ec2.SecurityGroup, direction: str, rule: dict) -> None:
        peer, port = self._peer(rule["peer"]), self._port(rule["port"])
        if direction == "ingress":
            sg.add_ingress_rule(peer, port, rule["description"])
        else:
            sg.add_egress_rule(peer, port, rule["description"])

    def _peer(self, peer: dict) -> ec2.IPeer:
        kind = PeerKind(peer["kind"])
        if kind == PeerKind.GROUP:
            return self._groups[peer["value"]]
        if kind == PeerKind.NETWORK:
            return ec2.Peer.ipv4(self._vpc.vpc_cidr_block)
        return ec2.Peer.ipv4(peer["value"])

    @staticmethod
    def _port(port: dict) -> ec2.Port:
        kind = PortKind(port["kind"])
        if kind == PortKind.SINGLE:
            return ec2.Port.tcp(port["from_port"])
        if kind == PortKind.RANGE:
            return ec2.Port.tcp_range(port["from_port"], port["to_port"])
        return ec2.Port.all_tcp()

    # ── ALB ───────────────────────────────────────────────────────────────────
    def _load_balancer(self, descriptor: ResourceDescriptor) -> elbv2.ApplicationLoadBalancer:
        props = descriptor.properties
        return elbv2.ApplicationLoadBalancer(
            self,
            descriptor.name,
            load_balancer_name=descriptor.physical_name,
            internet_facing=props["internet_facing"],
            vpc=self._vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_group_name=props["subnet_group"]),
            security_group=self._groups[props["security_group"]],
        )

    def _listener(self, descriptor: ResourceDescriptor) -> elbv2.ApplicationListener:
        props = descriptor.properties
        action = props["default_action"]
        alb = self.constructs[descriptor.depends_on[0]]
        return alb.add_listener(
            descriptor.name,
            port=props["port"],
            open=props["open"],
            default_action=elbv2.ListenerAction.fixed_response(
                action["status_code"], message_body=action["message_body"]
            ),
        )

    # ── Compute fleet ─────────────────────────────────────────────────────────
    def _iam_role(self, descriptor: ResourceDescriptor) -> iam.Role:
        props = descriptor.properties
        role = iam.Role(
            self,
            descriptor.name,
            role_name=descriptor.physical_name,
            assumed_by=iam.ServicePrincipal(props["assumed_by"]),
        )
        for policy_name in props["managed_policies"]:
            role.add_managed_policy(iam.ManagedPolicy.from_aws_managed_policy_name(policy_name))
        return role

    def _launch_template(self, descriptor: ResourceDescriptor) -> ec2.LaunchTemplate:
        props = descriptor.properties
        return ec2.LaunchTemplate(
            self,
            descriptor.name,
            launch_template_name=descriptor.physical_name,
            # AWS Graviton hardware type
            machine_image=ecs.EcsOptimizedImage.amazon_linux2023(ecs.AmiHardwareType.ARM),
            user_data=ec2.UserData.for_linux(),
            role=self.constructs[props["role"]],
            security_group=self._groups[props["security_group"]],
            instance_type=ec2.InstanceType(props["instance_type"]),
        )

    def _auto_scaling_group(self, descriptor: ResourceDescriptor) -> autoscaling.AutoScalingGroup:
        props = descriptor.properties
        return autoscaling.AutoScalingGroup(
            self,
            descriptor.name,
            auto_scaling_group_name=descriptor.physical_name,
            vpc=self._vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_group_name=props["subnet_group"]),
            launch_template=self.constructs[props["launch_template"]],
            min_capacity=props["min_capacity"],
            max_capacity=props["max_capacity"],
        )

    def _capacity_provider(self, descriptor: ResourceDescriptor) -> ecs.AsgCapacityProvider:
        props = descriptor.properties
        return ecs.AsgCapacityProvider(
            self,
            descriptor.name,
            capacity_provider_name=descriptor.physical_name,
            auto_scaling_group=self.constructs[props["auto_scaling_group"]],
            enable_managed_scaling=props["managed_scaling"],
            enable_managed_termination_protection=props["managed_termination_protection"],
            enable_managed_draining=props["managed_draining"],
        )

    # ── ECS Cluster ───────────────────────────────────────────────────────────
    def _cluster(self, descriptor: ResourceDescriptor) -> ecs.Cluster:
        return ecs.Cluster(
            self,
            descriptor.name,
            vpc=self._vpc,
            cluster_name=descriptor.physical_name,
        )

    def _capacity_provider_binding(self, descriptor: ResourceDescriptor) -> ecs.Cluster:
        props = descriptor.properties
        cluster = self.constructs[props["cluster"]]
        cluster.add_asg_capacity_provider(self.constructs[props["capacity_provider"]])
        return cluster
