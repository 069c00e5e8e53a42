from abc import ABC, abstractmethod

from cluster_policy.schemas.plan import CompiledPolicy, PolicyWarning


class PolicyValidator(ABC):
    @abstractmethod
    def validate(self, policy: CompiledPolicy) -> list[PolicyWarning]:
        ...
