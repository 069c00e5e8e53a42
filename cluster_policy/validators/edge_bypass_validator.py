from cluster_policy.exceptions.policy_exceptions import PolicyValidationError
from cluster_policy.schemas.environment import InboundPort
from cluster_policy.schemas.plan import CompiledPolicy, PolicyWarning
from cluster_policy.schemas.rule import Direction, GroupRole, PeerKind
from cluster_policy.validators.base import PolicyValidator


class EdgeBypassValidator(PolicyValidator):
    """With a single published port, the fleet may only be reached through the edge group."""

    def validate(self, policy: CompiledPolicy) -> list[PolicyWarning]:
        if policy.environment.policy.inbound_port != InboundPort.SINGLE_PORT:
            return []

        edge_id = policy.group(GroupRole.EDGE).id
        for rule in policy.rules_for(GroupRole.COMPUTE, Direction.INBOUND):
            if rule.peer.kind != PeerKind.GROUP or rule.peer.value != edge_id:
                raise PolicyValidationError(
                    f"Compute ingress from {rule.peer.kind.value} '{rule.peer.value}' bypasses "
                    f"the edge group {edge_id}.",
                    rule_index=rule.index,
                )
        return []
