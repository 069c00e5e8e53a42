from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EnvironmentName(str, Enum):
    DEV = "dev"
    QA = "qa"
    PROD = "prod"


class InboundPort(str, Enum):
    SINGLE_PORT = "single-port"
    ALL_PORTS = "all-ports"


class EdgeEgressScope(str, Enum):
    ANY = "any"
    FLEET_CIDR = "fleet-cidr"


class ComputeIngressSource(str, Enum):
    ANY = "any"
    EDGE_GROUP_IDENTITY = "edge-group-identity"


class PolicyModel(str, Enum):
    TIERED = "tiered"
    OPEN = "open"


class PolicyOptions(BaseModel):
    """Admission policy knobs. Defaults describe the tiered model.

    Any permissive option (all-ports inbound, unrestricted edge egress or
    compute ingress from anywhere) is legacy behaviour and only compiles when
    ``allow_legacy_open`` is set.
    """

    model_config = ConfigDict(frozen=True)

    inbound_port: InboundPort = InboundPort.SINGLE_PORT
    edge_egress_scope: EdgeEgressScope = EdgeEgressScope.FLEET_CIDR
    compute_ingress_source: ComputeIngressSource = ComputeIngressSource.EDGE_GROUP_IDENTITY
    allow_legacy_open: bool = False

    @classmethod
    def from_model(cls, model: PolicyModel, allow_legacy_open: bool = False) -> "PolicyOptions":
        if model == PolicyModel.OPEN:
            return cls(
                inbound_port=InboundPort.ALL_PORTS,
                edge_egress_scope=EdgeEgressScope.ANY,
                compute_ingress_source=ComputeIngressSource.ANY,
                allow_legacy_open=allow_legacy_open,
            )
        return cls(allow_legacy_open=allow_legacy_open)

    @property
    def is_permissive(self) -> bool:
        return (
            self.inbound_port == InboundPort.ALL_PORTS
            or self.edge_egress_scope == EdgeEgressScope.ANY
            or self.compute_ingress_source == ComputeIngressSource.ANY
        )


class Environment(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: EnvironmentName
    network_id: str = Field(..., min_length=1, examples=["ohme-assessment-qa-vpc"])
    public_subnet_selector: str = Field(..., min_length=1, examples=["Public Subnet"])
    network_cidr: Optional[str] = Field(default=None, examples=["10.0.0.0/16"])
    listener_port: int = Field(default=80, ge=1, le=65535)
    resource_prefix: str = Field(default="ohme-assessment", min_length=1)
    instance_type: str = "t4g.medium"
    min_capacity: int = Field(default=1, ge=0)
    max_capacity: int = Field(default=4, ge=1)
    policy: PolicyOptions = PolicyOptions()

    @model_validator(mode="after")
    def capacity_bounds(self) -> "Environment":
        if self.min_capacity > self.max_capacity:
            raise ValueError("min_capacity must not exceed max_capacity")
        return self

    def resource_name(self, suffix: str) -> str:
        return f"{self.resource_prefix}-{self.name.value}-{suffix}"
