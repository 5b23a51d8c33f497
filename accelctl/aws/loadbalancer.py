"""Elastic Load Balancer lookup and hostname parsing."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence


class LoadBalancerState(str, enum.Enum):
    ACTIVE = "active"
    PROVISIONING = "provisioning"
    ACTIVE_IMPAIRED = "active_impaired"
    FAILED = "failed"


@dataclass
class LoadBalancer:
    name: str
    arn: str
    dns_name: str
    state: LoadBalancerState = LoadBalancerState.ACTIVE


class LoadBalancerAPI(Protocol):
    def describe_load_balancers(self, names: Sequence[str]) -> Iterable[LoadBalancer]:
        """Return the load balancers with the given names."""


class HostnameParseError(ValueError):
    """A hostname could not be read as an Elastic Load Balancer hostname."""


class LoadBalancerNotFoundError(LookupError):
    """No load balancer with the requested name exists."""


_ALB_HOST = re.compile(r"\.elb\.amazonaws\.com\Z")
_NLB_HOST = re.compile(r"\.elb\..+\.amazonaws\.com\Z")
_INTERNAL_PREFIX = re.compile(r"internal-")
_INTERNAL_ALB_NAME = re.compile(r"internal\-([\w\-]+)\-\w+", re.ASCII)
_LB_NAME = re.compile(r"([\w\-]+)\-\w+", re.ASCII)


def get_load_balancer(api: LoadBalancerAPI, name: str) -> LoadBalancer:
    """Describe the load balancer called ``name``."""
    for lb in api.describe_load_balancers([name]):
        if lb.name == name:
            return lb
    raise LoadBalancerNotFoundError(f"Could not find LoadBalancer: {name}")


def _name_from_subdomain(pattern: re.Pattern[str], subdomain: str, kind: str) -> str:
    match = pattern.fullmatch(subdomain)
    if match is None:
        raise HostnameParseError(f"Failed to parse subdomain for {kind}: {subdomain}")
    return match.group(1)


def get_lb_name_from_hostname(hostname: str) -> tuple[str, str]:
    """Return ``(name, region)`` of the load balancer behind ``hostname``."""
    labels = hostname.split(".")
    if _ALB_HOST.search(hostname):
        subdomain, region = labels[0], labels[1]
        if _INTERNAL_PREFIX.match(subdomain):
            return _name_from_subdomain(_INTERNAL_ALB_NAME, subdomain, "internal ALB"), region
        return _name_from_subdomain(_LB_NAME, subdomain, "public ALB"), region
    if _NLB_HOST.search(hostname):
        subdomain, region = labels[0], labels[2]
        return _name_from_subdomain(_LB_NAME, subdomain, "NLB"), region
    raise HostnameParseError(f"{hostname} is not Elastic Load Balancer")


def get_region_from_arn(arn: str) -> str:
    """Return the region field of an ARN."""
    fields = arn.split(":")
    if len(fields) < 4:
        raise ValueError(f"Malformed ARN: {arn}")
    return fields[3]