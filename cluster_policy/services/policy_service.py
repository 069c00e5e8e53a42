from typing import Iterable, Optional

from cluster_policy.config import environment_registry
from cluster_policy.exceptions.policy_exceptions import PolicyError, UnknownEnvironmentError
from cluster_policy.logging_config import get_logger
from cluster_policy.schemas.environment import Environment, EnvironmentName, PolicyOptions
from cluster_policy.schemas.plan import EnvironmentResult, ResourcePlan
from cluster_policy.services.plan_emitter import PlanEmitter
from cluster_policy.services.policy_compiler import PolicyCompiler
from cluster_policy.services.rule_table import build_rule_table
from cluster_policy.validators.validation_pass import ValidationPass

logger = get_logger(__name__)


class PolicyService:
    def __init__(
        self,
        registry: Optional[dict[EnvironmentName, Environment]] = None,
        compiler: Optional[PolicyCompiler] = None,
        validation: Optional[ValidationPass] = None,
        emitter: Optional[PlanEmitter] = None,
    ) -> None:
        self._registry = registry if registry is not None else environment_registry()
        self._compiler = compiler or PolicyCompiler()
        self._validation = validation or ValidationPass()
        self._emitter = emitter or PlanEmitter()

    @property
    def environments(self) -> list[Environment]:
        return list(self._registry.values())

    def environment(self, name: str) -> Environment:
        try:
            key = EnvironmentName(name)
        except ValueError:
            raise UnknownEnvironmentError(f"Unknown environment '{name}'.") from None
        if key not in self._registry:
            raise UnknownEnvironmentError(f"Environment '{name}' is not configured.")
        return self._registry[key]

    def compile(self, environment: Environment) -> ResourcePlan:
        rule_table = build_rule_table(environment)
        policy = self._compiler.compile(environment, rule_table)
        warnings = self._validation.run(policy)
        return self._emitter.emit(policy, warnings)

    def compile_environment(self, name: str, policy: Optional[PolicyOptions] = None) -> ResourcePlan:
        environment = self.environment(name)
        if policy is not None:
            environment = environment.model_copy(update={"policy": policy})
        return self.compile(environment)

    def compile_all(self, names: Optional[Iterable[str]] = None) -> list[EnvironmentResult]:
        """Compile each environment on its own; one failure never blocks the rest."""
        targets = list(names) if names is not None else [e.name.value for e in self.environments]
        results = []
        for name in targets:
            try:
                plan = self.compile_environment(name)
            except PolicyError as exc:
                logger.warning("environment_compile_failed", environment=name, error=exc.message)
                results.append(EnvironmentResult(environment=name, error=exc.message))
                continue
            results.append(EnvironmentResult(environment=name, plan=plan))
        return results
