from cluster_policy.exceptions.policy_exceptions import PolicyValidationError
from cluster_policy.schemas.plan import CompiledPolicy, PolicyWarning
from cluster_policy.schemas.rule import Direction
from cluster_policy.validators.base import PolicyValidator


class EgressValidator(PolicyValidator):
    """Every group denies egress by default and carries at least one explicit egress rule."""

    def validate(self, policy: CompiledPolicy) -> list[PolicyWarning]:
        for group in policy.groups:
            if group.default_outbound:
                raise PolicyValidationError(
                    f"Security group {group.id} allows all outbound traffic by default; "
                    f"egress must be granted by explicit rules."
                )
            egress = policy.rules_for(group.role, Direction.OUTBOUND)
            if not egress:
                raise PolicyValidationError(
                    f"Security group {group.id} has no outbound rule and would be stranded."
                )
        return []
