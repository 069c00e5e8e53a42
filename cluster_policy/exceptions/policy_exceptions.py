from typing import Optional


class PolicyError(Exception):
    """Base class for errors raised while compiling an environment's policy."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UnknownEnvironmentError(PolicyError):
    """Raised when an environment name is not in the registry."""


class UnresolvedReferenceError(PolicyError):
    """Raised when a rule or resource references an entity that was never declared."""

    def __init__(self, message: str, reference: str) -> None:
        self.reference = reference
        super().__init__(message)


class ConflictingRuleError(PolicyError):
    """Raised when an allow and a deny rule overlap on the same group, direction and peer."""


class CyclicDependencyError(PolicyError):
    """Raised when the resource graph cannot be ordered."""

    def __init__(self, message: str, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(message)


class PolicyValidationError(PolicyError):
    """Raised when a compiled policy violates a baseline invariant."""

    def __init__(self, reason: str, rule_index: Optional[int] = None) -> None:
        self.rule_index = rule_index
        self.reason = reason
        location = f" (rule {rule_index})" if rule_index is not None else ""
        super().__init__(f"Policy rejected{location}: {reason}")
