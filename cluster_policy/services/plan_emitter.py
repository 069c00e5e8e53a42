import heapq
from typing import Iterable, Sequence

from cluster_policy.exceptions.policy_exceptions import (
    CyclicDependencyError,
    PolicyError,
    UnresolvedReferenceError,
)
from cluster_policy.logging_config import get_logger
from cluster_policy.schemas.plan import (
    CompiledPolicy,
    PolicyWarning,
    ResourceDescriptor,
    ResourcePlan,
    ResourceType,
)
from cluster_policy.schemas.rule import Direction, GroupRole, PeerKind, Rule

logger = get_logger(__name__)

NETWORK_LOOKUP = "VpcLookUp"
EDGE_GROUP = "ALB-SG"
COMPUTE_GROUP = "ASG-SG"
LOAD_BALANCER = "ALB"
IAM_ROLE = "ASG-Iam-Role"
LAUNCH_TEMPLATE = "Launch-Template"
AUTO_SCALING_GROUP = "ASG"
CAPACITY_PROVIDER = "AsgCapacityProvider"
CLUSTER = "EcsCluster"
CAPACITY_PROVIDER_BINDING = "CapacityProviderBinding"

INSTANCE_ROLE_PRINCIPAL = "ec2.amazonaws.com"
INSTANCE_MANAGED_POLICIES = ["AmazonSSMManagedInstanceCore"]

GROUP_RESOURCES = {GroupRole.EDGE: EDGE_GROUP, GroupRole.COMPUTE: COMPUTE_GROUP}


def listener_name(port: int) -> str:
    return f"Listener-{port}"


def rule_properties(rule: Rule) -> dict:
    return {
        "index": rule.index,
        "peer": {"kind": rule.peer.kind.value, "value": rule.peer.value},
        "port": {
            "kind": rule.port.kind.value,
            "from_port": rule.port.from_port,
            "to_port": rule.port.to_port,
        },
        "description": rule.description,
    }


class PlanEmitter:
    """Lays the fixed cluster topology out as an ordered resource plan."""

    def emit(
        self,
        policy: CompiledPolicy,
        warnings: Sequence[PolicyWarning] = (),
        extra_resources: Iterable[ResourceDescriptor] = (),
    ) -> ResourcePlan:
        env = policy.environment
        declared = self._declare(policy)
        # Extensions slot in ahead of the binding so it stays the final step.
        declared[-1:-1] = list(extra_resources)

        plan = ResourcePlan(
            environment=env.name,
            stack_name=env.resource_name("ecs-cluster-stack"),
            tags={"Environment": env.name.value},
            resources=tuple(self.order(declared)),
            warnings=tuple(warnings),
        )
        logger.info(
            "plan_emitted",
            environment=env.name.value,
            resources=len(plan.resources),
            warnings=len(plan.warnings),
            fingerprint=plan.fingerprint(),
        )
        return plan

    def _declare(self, policy: CompiledPolicy) -> list[ResourceDescriptor]:
        env = policy.environment
        lb = policy.load_balancer
        fleet = policy.fleet
        edge = policy.group(GroupRole.EDGE)
        compute = policy.group(GroupRole.COMPUTE)
        group_resources = {edge.id: EDGE_GROUP, compute.id: COMPUTE_GROUP}
        listener = listener_name(lb.listener_port)

        return [
            ResourceDescriptor(
                name=NETWORK_LOOKUP,
                type=ResourceType.NETWORK_LOOKUP,
                physical_name=env.network_id,
                properties={
                    "network_id": env.network_id,
                    "subnet_group": env.public_subnet_selector,
                    "network_cidr": env.network_cidr,
                },
            ),
            self._group_descriptor(policy, GroupRole.EDGE, group_resources),
            self._group_descriptor(policy, GroupRole.COMPUTE, group_resources),
            ResourceDescriptor(
                name=LOAD_BALANCER,
                type=ResourceType.LOAD_BALANCER,
                physical_name=env.resource_name("alb"),
                properties={
                    "internet_facing": lb.internet_facing,
                    "security_group": lb.security_group,
                    "subnet_group": env.public_subnet_selector,
                },
                depends_on=(NETWORK_LOOKUP, EDGE_GROUP),
            ),
            ResourceDescriptor(
                name=listener,
                type=ResourceType.LISTENER,
                properties={
                    "port": lb.listener_port,
                    "open": False,
                    "default_action": lb.default_action.model_dump(mode="json"),
                },
                depends_on=(LOAD_BALANCER,),
            ),
            ResourceDescriptor(
                name=IAM_ROLE,
                type=ResourceType.IAM_ROLE,
                physical_name=env.resource_name("asg-iam-role"),
                properties={
                    "assumed_by": INSTANCE_ROLE_PRINCIPAL,
                    "managed_policies": list(INSTANCE_MANAGED_POLICIES),
                },
            ),
            ResourceDescriptor(
                name=LAUNCH_TEMPLATE,
                type=ResourceType.LAUNCH_TEMPLATE,
                physical_name=env.resource_name("launch-template"),
                properties={
                    "machine_image": {"family": "ecs-optimized-amazon-linux-2023", "hardware": "arm"},
                    "instance_type": env.instance_type,
                    "user_data": "linux",
                    "role": IAM_ROLE,
                    "security_group": compute.id,
                },
                depends_on=(IAM_ROLE, COMPUTE_GROUP),
            ),
            ResourceDescriptor(
                name=AUTO_SCALING_GROUP,
                type=ResourceType.AUTO_SCALING_GROUP,
                physical_name=env.resource_name("asg"),
                properties={
                    "min_capacity": fleet.min_capacity,
                    "max_capacity": fleet.max_capacity,
                    "subnet_group": env.public_subnet_selector,
                    "launch_template": LAUNCH_TEMPLATE,
                },
                depends_on=(NETWORK_LOOKUP, LAUNCH_TEMPLATE),
            ),
            ResourceDescriptor(
                name=CAPACITY_PROVIDER,
                type=ResourceType.CAPACITY_PROVIDER,
                physical_name=fleet.binding.name,
                properties={
                    "auto_scaling_group": AUTO_SCALING_GROUP,
                    "managed_scaling": fleet.binding.managed_scaling,
                    "managed_termination_protection": fleet.binding.managed_termination_protection,
                    "managed_draining": fleet.binding.managed_draining,
                },
                depends_on=(AUTO_SCALING_GROUP,),
            ),
            ResourceDescriptor(
                name=CLUSTER,
                type=ResourceType.CLUSTER,
                physical_name=env.resource_name("ecs-cluster"),
                depends_on=(NETWORK_LOOKUP,),
            ),
            ResourceDescriptor(
                name=CAPACITY_PROVIDER_BINDING,
                type=ResourceType.CAPACITY_PROVIDER_BINDING,
                properties={"cluster": CLUSTER, "capacity_provider": CAPACITY_PROVIDER},
                depends_on=(CLUSTER, CAPACITY_PROVIDER),
            ),
        ]

    @staticmethod
    def _group_descriptor(
        policy: CompiledPolicy, role: GroupRole, group_resources: dict[str, str]
    ) -> ResourceDescriptor:
        group = policy.group(role)
        depends_on = [NETWORK_LOOKUP]
        # Only ingress sources are ordered ahead; egress targets may refer back.
        for rule in policy.rules_for(role, Direction.INBOUND):
            if rule.peer.kind != PeerKind.GROUP:
                continue
            peer_resource = group_resources[rule.peer.value]
            if peer_resource != GROUP_RESOURCES[role] and peer_resource not in depends_on:
                depends_on.append(peer_resource)

        return ResourceDescriptor(
            name=GROUP_RESOURCES[role],
            type=ResourceType.SECURITY_GROUP,
            physical_name=group.id,
            properties={
                "role": role.value,
                "description": group.description,
                "default_outbound": group.default_outbound,
                "ingress": [rule_properties(r) for r in policy.rules_for(role, Direction.INBOUND)],
                "egress": [rule_properties(r) for r in policy.rules_for(role, Direction.OUTBOUND)],
            },
            depends_on=tuple(depends_on),
        )

    @staticmethod
    def order(descriptors: Sequence[ResourceDescriptor]) -> list[ResourceDescriptor]:
        """Topological order; ties are broken by declaration order."""
        position: dict[str, int] = {}
        for i, descriptor in enumerate(descriptors):
            if descriptor.name in position:
                raise PolicyError(f"Resource '{descriptor.name}' is declared twice.")
            position[descriptor.name] = i

        indegree = {d.name: 0 for d in descriptors}
        dependants: dict[str, list[str]] = {d.name: [] for d in descriptors}
        for descriptor in descriptors:
            for dependency in descriptor.depends_on:
                if dependency not in position:
                    raise UnresolvedReferenceError(
                        f"Resource '{descriptor.name}' depends on undeclared resource '{dependency}'.",
                        reference=dependency,
                    )
                indegree[descriptor.name] += 1
                dependants[dependency].append(descriptor.name)

        ready = [position[name] for name, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)
        ordered: list[ResourceDescriptor] = []
        while ready:
            descriptor = descriptors[heapq.heappop(ready)]
            ordered.append(descriptor)
            for dependant in dependants[descriptor.name]:
                indegree[dependant] -= 1
                if indegree[dependant] == 0:
                    heapq.heappush(ready, position[dependant])

        if len(ordered) != len(descriptors):
            blocked = {name for name, degree in indegree.items() if degree > 0}
            cycle = _find_cycle(descriptors, blocked)
            raise CyclicDependencyError(
                f"Resources form a dependency cycle: {' -> '.join(cycle)}",
                cycle=cycle,
            )
        return ordered


def _find_cycle(descriptors: Sequence[ResourceDescriptor], blocked: set[str]) -> list[str]:
    edges = {d.name: [dep for dep in d.depends_on if dep in blocked] for d in descriptors if d.name in blocked}
    start = next(d.name for d in descriptors if d.name in blocked)
    path: list[str] = []
    seen: dict[str, int] = {}
    node = start
    # Every blocked node has a blocked dependency, so this walk must revisit a node.
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = edges[node][0]
    return path[seen[node]:] + [node]
