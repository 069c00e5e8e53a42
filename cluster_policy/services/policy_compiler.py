from typing import Iterable, Optional

from cluster_policy.exceptions.policy_exceptions import (
    ConflictingRuleError,
    UnresolvedReferenceError,
)
from cluster_policy.logging_config import get_logger
from cluster_policy.schemas.environment import Environment
from cluster_policy.schemas.plan import (
    CapacityProviderBinding,
    CompiledPolicy,
    ComputeFleet,
    LoadBalancer,
    PlaceholderAction,
    SecurityGroup,
)
from cluster_policy.schemas.rule import GroupRole, Intent, Peer, PeerKind, Rule, SymbolicRule

logger = get_logger(__name__)


class PolicyCompiler:
    """Binds a symbolic rule table to one environment's topology."""

    def compile(self, environment: Environment, rule_table: Iterable[SymbolicRule]) -> CompiledPolicy:
        groups = self.declare_groups(environment)
        allowed: list[Rule] = []
        denied: list[Rule] = []

        for source_index, symbolic in enumerate(rule_table):
            group = self._resolve_group(symbolic.group, groups)
            peer = self._resolve_peer(symbolic.peer, environment, groups)
            bound = Rule(
                index=len(denied) if symbolic.intent == Intent.DENY else len(allowed),
                group=group.id,
                direction=symbolic.direction,
                peer=peer,
                port=symbolic.port,
                description=symbolic.description,
                source_index=source_index,
            )
            if symbolic.intent == Intent.DENY:
                denied.append(bound)
            elif not self._is_duplicate(bound, allowed):
                allowed.append(bound)

        self._check_conflicts(allowed, denied)

        edge = self._by_role(groups, GroupRole.EDGE)
        compute = self._by_role(groups, GroupRole.COMPUTE)
        policy = CompiledPolicy(
            environment=environment,
            groups=tuple(groups),
            rules=tuple(allowed),
            assertions=tuple(denied),
            load_balancer=LoadBalancer(
                environment=environment.name,
                security_group=edge.id,
                listener_port=environment.listener_port,
                default_action=PlaceholderAction(
                    message_body=f"This is the ALB Default Action on port {environment.listener_port}.",
                ),
            ),
            fleet=ComputeFleet(
                environment=environment.name,
                security_group=compute.id,
                min_capacity=environment.min_capacity,
                max_capacity=environment.max_capacity,
                binding=CapacityProviderBinding(name=environment.resource_name("capacity-provider")),
            ),
        )
        logger.info(
            "policy_compiled",
            environment=environment.name.value,
            rules=len(allowed),
            deny_assertions=len(denied),
        )
        return policy

    @staticmethod
    def declare_groups(environment: Environment) -> list[SecurityGroup]:
        return [
            SecurityGroup(
                id=environment.resource_name("alb-security-group"),
                environment=environment.name,
                role=GroupRole.EDGE,
                description="The public facing security group for the application load balancer.",
            ),
            SecurityGroup(
                id=environment.resource_name("asg-security-group"),
                environment=environment.name,
                role=GroupRole.COMPUTE,
                description="The security group for the auto scaling group.",
            ),
        ]

    @staticmethod
    def _by_role(groups: list[SecurityGroup], role: GroupRole) -> SecurityGroup:
        return next(g for g in groups if g.role == role)

    @staticmethod
    def _lookup_group(ref: str, groups: list[SecurityGroup]) -> Optional[SecurityGroup]:
        for group in groups:
            if ref in (group.id, group.role.value):
                return group
        return None

    def _resolve_group(self, ref: str, groups: list[SecurityGroup]) -> SecurityGroup:
        group = self._lookup_group(ref, groups)
        if group is None:
            raise UnresolvedReferenceError(
                f"Rule targets security group '{ref}', which is not declared in this environment.",
                reference=ref,
            )
        return group

    def _resolve_peer(self, peer: Peer, environment: Environment, groups: list[SecurityGroup]) -> Peer:
        if peer.kind == PeerKind.GROUP:
            group = self._lookup_group(peer.value, groups)
            if group is None:
                raise UnresolvedReferenceError(
                    f"Rule peer references security group '{peer.value}', which is not declared.",
                    reference=peer.value,
                )
            return Peer.group(group.id)
        if peer.kind == PeerKind.NETWORK:
            if environment.network_cidr:
                return Peer.cidr(environment.network_cidr)
            return Peer(kind=PeerKind.NETWORK, value=environment.network_id)
        return peer

    @staticmethod
    def _is_duplicate(rule: Rule, existing: list[Rule]) -> bool:
        return any(rule.same_binding(other) and rule.port == other.port for other in existing)

    @staticmethod
    def _check_conflicts(allowed: list[Rule], denied: list[Rule]) -> None:
        for deny in denied:
            for allow in allowed:
                if allow.conflicts_with(deny):
                    raise ConflictingRuleError(
                        f"Rule {allow.source_index} allows {allow.direction.value} traffic on "
                        f"{allow.group} from {allow.peer.value or allow.peer.kind.value} that rule "
                        f"{deny.source_index} denies from {deny.peer.value or deny.peer.kind.value} "
                        f"(ports {deny.port.from_port}-{deny.port.to_port})."
                    )
