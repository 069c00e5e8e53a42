import ipaddress
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ANY_IPV4 = "0.0.0.0/0"
MAX_PORT = 65535


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class GroupRole(str, Enum):
    EDGE = "edge"
    COMPUTE = "compute"


class Intent(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class PeerKind(str, Enum):
    CIDR = "cidr"
    GROUP = "group"
    NETWORK = "network"


class Peer(BaseModel):
    """Other end of a rule.

    ``GROUP`` peers hold a group role or id before compilation and the
    concrete group id afterwards. ``NETWORK`` peers stand for the fleet's own
    network range and resolve to a literal CIDR when the environment knows it.
    """

    model_config = ConfigDict(frozen=True)

    kind: PeerKind
    value: str = ""

    @model_validator(mode="after")
    def check_value(self) -> "Peer":
        if self.kind == PeerKind.CIDR:
            ipaddress.ip_network(self.value)
        elif self.kind == PeerKind.GROUP and not self.value:
            raise ValueError("group peers need a group reference")
        return self

    @classmethod
    def cidr(cls, value: str) -> "Peer":
        return cls(kind=PeerKind.CIDR, value=value)

    @classmethod
    def any_ipv4(cls) -> "Peer":
        return cls.cidr(ANY_IPV4)

    @classmethod
    def group(cls, ref: str) -> "Peer":
        return cls(kind=PeerKind.GROUP, value=ref)

    @classmethod
    def network(cls) -> "Peer":
        return cls(kind=PeerKind.NETWORK)

    @property
    def is_anywhere(self) -> bool:
        return self.kind == PeerKind.CIDR and ipaddress.ip_network(self.value).prefixlen == 0

    def overlaps(self, other: "Peer") -> bool:
        """Whether traffic from one peer can also match the other.

        CIDRs overlap by address range. Group and network peers only overlap
        themselves and the any-address range.
        """
        if self.kind == PeerKind.CIDR and other.kind == PeerKind.CIDR:
            return ipaddress.ip_network(self.value).overlaps(ipaddress.ip_network(other.value))
        if self.is_anywhere or other.is_anywhere:
            return True
        return self == other


class PortKind(str, Enum):
    SINGLE = "single"
    RANGE = "range"
    ALL = "all"


class PortRange(BaseModel):
    """TCP port selection."""

    model_config = ConfigDict(frozen=True)

    kind: PortKind
    from_port: int = Field(default=0, ge=0, le=MAX_PORT)
    to_port: int = Field(default=MAX_PORT, ge=0, le=MAX_PORT)

    @model_validator(mode="after")
    def check_bounds(self) -> "PortRange":
        if self.from_port > self.to_port:
            raise ValueError("from_port must not exceed to_port")
        if self.kind == PortKind.SINGLE and self.from_port != self.to_port:
            raise ValueError("single ports must have from_port == to_port")
        if self.kind == PortKind.ALL and (self.from_port, self.to_port) != (0, MAX_PORT):
            raise ValueError("all-ports selection must span 0-65535")
        return self

    @classmethod
    def tcp(cls, port: int) -> "PortRange":
        return cls(kind=PortKind.SINGLE, from_port=port, to_port=port)

    @classmethod
    def tcp_range(cls, from_port: int, to_port: int) -> "PortRange":
        return cls(kind=PortKind.RANGE, from_port=from_port, to_port=to_port)

    @classmethod
    def all_tcp(cls) -> "PortRange":
        return cls(kind=PortKind.ALL)

    def overlaps(self, other: "PortRange") -> bool:
        return self.from_port <= other.to_port and other.from_port <= self.to_port


class SymbolicRule(BaseModel):
    """A rule as written in a rule table; ``group`` is a role name or group id."""

    model_config = ConfigDict(frozen=True)

    group: str
    direction: Direction
    peer: Peer
    port: PortRange
    description: str = ""
    intent: Intent = Intent.ALLOW

    @field_validator("group")
    @classmethod
    def group_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("group must not be empty")
        return v.strip()


class Rule(BaseModel):
    """A compiled rule bound to concrete group ids."""

    model_config = ConfigDict(frozen=True)

    index: int
    group: str
    direction: Direction
    peer: Peer
    port: PortRange
    description: str = ""
    source_index: Optional[int] = None

    def same_binding(self, other: "Rule") -> bool:
        return (
            self.group == other.group
            and self.direction == other.direction
            and self.peer == other.peer
        )

    def conflicts_with(self, other: "Rule") -> bool:
        return (
            self.group == other.group
            and self.direction == other.direction
            and self.peer.overlaps(other.peer)
            and self.port.overlaps(other.port)
        )
