from cluster_policy.exceptions.policy_exceptions import PolicyValidationError
from cluster_policy.schemas.plan import CompiledPolicy, PolicyWarning
from cluster_policy.schemas.rule import Direction, GroupRole
from cluster_policy.validators.base import PolicyValidator


class EdgeIngressValidator(PolicyValidator):
    def validate(self, policy: CompiledPolicy) -> list[PolicyWarning]:
        if not policy.rules_for(GroupRole.EDGE, Direction.INBOUND):
            raise PolicyValidationError(
                f"Edge security group {policy.group(GroupRole.EDGE).id} has no inbound rule."
            )
        return []
