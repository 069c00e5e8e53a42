from cluster_policy.schemas.plan import CompiledPolicy, PolicyWarning
from cluster_policy.schemas.rule import MAX_PORT, Direction
from cluster_policy.validators.base import PolicyValidator


class ExposureValidator(PolicyValidator):
    """Flags inbound rules that open every port to the whole internet."""

    def validate(self, policy: CompiledPolicy) -> list[PolicyWarning]:
        warnings = []
        for rule in policy.rules:
            if (
                rule.direction == Direction.INBOUND
                and (rule.port.from_port, rule.port.to_port) == (0, MAX_PORT)
                and rule.peer.is_anywhere
            ):
                warnings.append(
                    PolicyWarning(
                        rule_index=rule.index,
                        reason=f"{rule.group} accepts inbound traffic on all ports from {rule.peer.value}.",
                    )
                )
        return warnings
