import pytest

from cluster_policy.exceptions.policy_exceptions import (
    CyclicDependencyError,
    PolicyError,
    UnresolvedReferenceError,
)
from cluster_policy.schemas.plan import ResourceDescriptor, ResourceType
from cluster_policy.schemas.rule import Direction, Peer, PortRange, SymbolicRule
from cluster_policy.services import plan_emitter
from cluster_policy.services.plan_emitter import PlanEmitter
from cluster_policy.services.policy_compiler import PolicyCompiler
from cluster_policy.services.rule_table import build_rule_table

EXPECTED_ORDER = [
    "VpcLookUp",
    "ALB-SG",
    "ASG-SG",
    "ALB",
    "Listener-80",
    "ASG-Iam-Role",
    "Launch-Template",
    "ASG",
    "AsgCapacityProvider",
    "EcsCluster",
    "CapacityProviderBinding",
]


def emit(environment, **kwargs):
    policy = PolicyCompiler().compile(environment, build_rule_table(environment))
    return PlanEmitter().emit(policy, **kwargs)


def descriptor(name: str, *depends_on: str) -> ResourceDescriptor:
    return ResourceDescriptor(name=name, type=ResourceType.CLUSTER, depends_on=depends_on)


class TestEmittedPlan:
    def test_fixed_topology_order(self, qa_environment):
        plan = emit(qa_environment)
        assert plan.order == EXPECTED_ORDER
        assert plan.order[0] == plan_emitter.NETWORK_LOOKUP
        assert plan.order[-1] == plan_emitter.CAPACITY_PROVIDER_BINDING

    def test_open_model_keeps_the_same_order(self, prod_open_environment):
        assert emit(prod_open_environment).order == EXPECTED_ORDER

    def test_dependencies_precede_dependants(self, qa_environment):
        plan = emit(qa_environment)
        seen = set()
        for resource in plan.resources:
            assert set(resource.depends_on) <= seen
            seen.add(resource.name)

    def test_compute_group_depends_on_edge_group_when_tiered(self, qa_environment, prod_open_environment):
        assert "ALB-SG" in emit(qa_environment).resource("ASG-SG").depends_on
        assert "ALB-SG" not in emit(prod_open_environment).resource("ASG-SG").depends_on

    def test_stack_metadata(self, qa_environment):
        plan = emit(qa_environment)
        assert plan.stack_name == "ohme-assessment-qa-ecs-cluster-stack"
        assert plan.tags == {"Environment": "qa"}
        assert plan.resource("ALB").physical_name == "ohme-assessment-qa-alb"
        assert plan.resource("EcsCluster").physical_name == "ohme-assessment-qa-ecs-cluster"

    def test_listener_default_action_is_placeholder(self, qa_environment):
        listener = emit(qa_environment).resource("Listener-80")
        action = listener.properties["default_action"]
        assert action["status_code"] == 200
        assert action["rationale"]
        assert listener.properties["open"] is False

    def test_security_group_rules_are_carried(self, qa_environment):
        compute = emit(qa_environment).resource("ASG-SG")
        ingress = compute.properties["ingress"]
        assert ingress[0]["peer"] == {"kind": "group", "value": "ohme-assessment-qa-alb-security-group"}
        assert compute.properties["default_outbound"] is False
        assert len(compute.properties["egress"]) == 1

    def test_idempotent_byte_identical_plans(self, qa_environment):
        first = emit(qa_environment)
        second = emit(qa_environment)
        assert first.to_json() == second.to_json()
        assert first.fingerprint() == second.fingerprint()

    def test_extra_resources_keep_binding_last(self, qa_environment):
        plan = emit(qa_environment, extra_resources=[descriptor("LogGroup", "EcsCluster")])
        assert plan.order[-2:] == ["LogGroup", "CapacityProviderBinding"]


class TestGroupReferences:
    def test_groups_referencing_each_other_do_not_cycle(self, qa_environment):
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

        assert plan.resource("ASG-SG").depends_on == ("VpcLookUp", "ALB-SG")
        assert plan.resource("ALB-SG").depends_on == ("VpcLookUp",)
        assert plan.order == EXPECTED_ORDER


class TestOrdering:
    def test_cycle_is_detected(self):
        with pytest.raises(CyclicDependencyError) as exc_info:
            PlanEmitter.order([descriptor("A"), descriptor("B", "C"), descriptor("C", "B")])
        assert set(exc_info.value.cycle) == {"B", "C"}

    def test_extension_introducing_cycle_fails(self, qa_environment):
        extras = [descriptor("Hook", "EcsCluster", "Sidecar"), descriptor("Sidecar", "Hook")]
        with pytest.raises(CyclicDependencyError):
            emit(qa_environment, extra_resources=extras)

    def test_duplicate_name_rejected(self):
        with pytest.raises(PolicyError):
            PlanEmitter.order([descriptor("A"), descriptor("A")])

    def test_undeclared_dependency_raises(self):
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            PlanEmitter.order([descriptor("A", "Missing")])
        assert exc_info.value.reference == "Missing"

    def test_declaration_order_breaks_ties(self):
        ordered = PlanEmitter.order([descriptor("B"), descriptor("A"), descriptor("C", "A")])
        assert [d.name for d in ordered] == ["B", "A", "C"]

    def test_out_of_order_declaration_is_sorted(self):
        ordered = PlanEmitter.order([descriptor("C", "A"), descriptor("A")])
        assert [d.name for d in ordered] == ["A", "C"]
