"""Global Accelerator and Route 53 resource models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

# Hosted zone of every Global Accelerator DNS name, used in alias targets.
GLOBAL_ACCELERATOR_HOSTED_ZONE_ID = "Z2BJ6XQ5FK7U4H"


class Protocol(str, enum.Enum):
    """Protocol of a Global Accelerator listener."""

    TCP = "TCP"
    UDP = "UDP"

    @classmethod
    def _missing_(cls, value: object) -> Protocol | None:
        if isinstance(value, str):
            upper = value.upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None


class AcceleratorStatus(str, enum.Enum):
    """Deployment status of an accelerator."""

    DEPLOYED = "DEPLOYED"
    IN_PROGRESS = "IN_PROGRESS"


class RRType(str, enum.Enum):
    """DNS record type of a Route 53 record set."""

    SOA = "SOA"
    A = "A"
    TXT = "TXT"
    NS = "NS"
    CNAME = "CNAME"
    MX = "MX"
    NAPTR = "NAPTR"
    PTR = "PTR"
    SRV = "SRV"
    SPF = "SPF"
    AAAA = "AAAA"
    CAA = "CAA"
    DS = "DS"


@dataclass(frozen=True)
class Tag:
    key: str
    value: str


@dataclass(frozen=True)
class PortRange:
    from_port: int
    to_port: int

    def __post_init__(self) -> None:
        if self.from_port > self.to_port:
            raise ValueError(
                f"port range starts after it ends: {self.from_port}-{self.to_port}"
            )

    @classmethod
    def single(cls, port: int) -> PortRange:
        """Return a range covering exactly ``port``."""
        return cls(port, port)


@dataclass
class Accelerator:
    arn: str = ""
    name: str = ""
    dns_name: str = ""
    enabled: bool = True
    status: AcceleratorStatus = AcceleratorStatus.DEPLOYED
    ip_address_type: str = "IPV4"


@dataclass
class Listener:
    arn: str = ""
    protocol: Protocol = Protocol.TCP
    port_ranges: list[PortRange] = field(default_factory=list)
    client_affinity: str = "NONE"

    @property
    def from_ports(self) -> list[int]:
        """Return the first port of each range, in order."""
        return [r.from_port for r in self.port_ranges]


@dataclass
class EndpointDescription:
    endpoint_id: str
    client_ip_preservation_enabled: bool = False


@dataclass
class EndpointGroup:
    arn: str = ""
    region: str = ""
    endpoint_descriptions: list[EndpointDescription] = field(default_factory=list)

    @property
    def endpoint_ids(self) -> list[str]:
        """Return the identifiers of all endpoints in the group, in order."""
        return [d.endpoint_id for d in self.endpoint_descriptions]


@dataclass
class HostedZone:
    id: str
    name: str


@dataclass(frozen=True)
class ResourceRecord:
    value: str


@dataclass
class AliasTarget:
    dns_name: str
    hosted_zone_id: str = GLOBAL_ACCELERATOR_HOSTED_ZONE_ID
    evaluate_target_health: bool = True


@dataclass
class ResourceRecordSet:
    name: str
    type: RRType
    ttl: int | None = None
    resource_records: list[ResourceRecord] = field(default_factory=list)
    alias_target: AliasTarget | None = None

    @property
    def values(self) -> list[str]:
        """Return the values of the plain (non-alias) records, in order."""
        return [r.value for r in self.resource_records]

    @property
    def is_alias(self) -> bool:
        return self.alias_target is not None