from typing import Optional, Sequence

from cluster_policy.logging_config import get_logger
from cluster_policy.schemas.plan import CompiledPolicy, PolicyWarning
from cluster_policy.validators.base import PolicyValidator
from cluster_policy.validators.edge_bypass_validator import EdgeBypassValidator
from cluster_policy.validators.edge_ingress_validator import EdgeIngressValidator
from cluster_policy.validators.egress_validator import EgressValidator
from cluster_policy.validators.exposure_validator import ExposureValidator

logger = get_logger(__name__)


def default_validators() -> list[PolicyValidator]:
    return [
        EgressValidator(),
        EdgeIngressValidator(),
        EdgeBypassValidator(),
        ExposureValidator(),
    ]


class ValidationPass:
    def __init__(self, validators: Optional[Sequence[PolicyValidator]] = None) -> None:
        self._validators = list(validators) if validators is not None else default_validators()

    def run(self, policy: CompiledPolicy) -> list[PolicyWarning]:
        """Accept or reject a compiled policy; returns the warnings of an accepted one."""
        warnings: list[PolicyWarning] = []
        for validator in self._validators:
            warnings.extend(validator.validate(policy))

        for warning in warnings:
            logger.warning(
                "policy_warning",
                environment=policy.environment.name.value,
                rule_index=warning.rule_index,
                reason=warning.reason,
            )
        return warnings
