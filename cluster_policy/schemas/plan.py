import hashlib
import json
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from cluster_policy.schemas.environment import Environment, EnvironmentName
from cluster_policy.schemas.rule import Direction, GroupRole, Rule


class SecurityGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    environment: EnvironmentName
    role: GroupRole
    description: str
    default_outbound: bool = False


class PlaceholderAction(BaseModel):
    """Listener default action.

    The load balancer API refuses a listener without a default action; this
    catch-all fixed response fills that slot and routes nothing.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int = 200
    message_body: str = "This is the ALB Default Action on port 80."
    rationale: str = "Listeners require a non-empty default action; real routing is added by services."


class LoadBalancer(BaseModel):
    model_config = ConfigDict(frozen=True)

    environment: EnvironmentName
    security_group: str
    listener_port: int = 80
    internet_facing: bool = True
    default_action: PlaceholderAction = PlaceholderAction()


class CapacityProviderBinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    managed_scaling: bool = True
    managed_termination_protection: bool = True
    managed_draining: bool = True


class ComputeFleet(BaseModel):
    model_config = ConfigDict(frozen=True)

    environment: EnvironmentName
    security_group: str
    min_capacity: int
    max_capacity: int
    binding: CapacityProviderBinding


class PolicyWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule_index: Optional[int] = None
    reason: str


class CompiledPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    environment: Environment
    groups: tuple[SecurityGroup, ...]
    rules: tuple[Rule, ...]
    # Deny rules are checked at compile time and never emitted.
    assertions: tuple[Rule, ...] = ()
    load_balancer: LoadBalancer
    fleet: ComputeFleet

    def group(self, role: GroupRole) -> SecurityGroup:
        return next(g for g in self.groups if g.role == role)

    def rules_for(self, role: GroupRole, direction: Direction) -> list[Rule]:
        group_id = self.group(role).id
        return [r for r in self.rules if r.group == group_id and r.direction == direction]


class ResourceType(str, Enum):
    NETWORK_LOOKUP = "network_lookup"
    SECURITY_GROUP = "security_group"
    LOAD_BALANCER = "load_balancer"
    LISTENER = "listener"
    IAM_ROLE = "iam_role"
    LAUNCH_TEMPLATE = "launch_template"
    AUTO_SCALING_GROUP = "auto_scaling_group"
    CAPACITY_PROVIDER = "capacity_provider"
    CLUSTER = "cluster"
    CAPACITY_PROVIDER_BINDING = "capacity_provider_binding"


class ResourceDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: ResourceType
    physical_name: Optional[str] = None
    properties: dict[str, Any] = Field(default_factory=dict)
    depends_on: tuple[str, ...] = ()


class ResourcePlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    environment: EnvironmentName
    stack_name: str
    tags: dict[str, str] = Field(default_factory=dict)
    resources: tuple[ResourceDescriptor, ...]
    warnings: tuple[PolicyWarning, ...] = ()

    def to_json(self) -> str:
        """Canonical serialisation; equal plans give identical bytes."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))

    def fingerprint(self) -> str:
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()

    def resource(self, name: str) -> ResourceDescriptor:
        for descriptor in self.resources:
            if descriptor.name == name:
                return descriptor
        raise KeyError(name)

    @property
    def order(self) -> list[str]:
        return [r.name for r in self.resources]


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class ResourceOutcome(BaseModel):
    name: str
    status: OutcomeStatus
    physical_id: Optional[str] = None
    error: Optional[str] = None


class EnvironmentResult(BaseModel):
    environment: str
    plan: Optional[ResourcePlan] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
