"""Pure helpers that derive Global Accelerator listener settings from cluster objects."""

from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Iterable, Mapping, Protocol as _TypingProtocol

from accelctl.aws.loadbalancer import LoadBalancer
from accelctl.aws.models import EndpointGroup, Listener, Protocol, Tag
from accelctl.resources import Ingress, Service

logger = logging.getLogger(__name__)

MANAGED_TAG_KEY = "aws-global-accelerator-controller-managed"
OWNER_TAG_KEY = "aws-global-accelerator-owner"
TARGET_HOSTNAME_TAG_KEY = "aws-global-accelerator-target-hostname"
CLUSTER_TAG_KEY = "aws-global-accelerator-cluster"

LISTEN_PORTS_ANNOTATION = "alb.ingress.kubernetes.io/listen-ports"


class _Named(_TypingProtocol):
    namespace: str
    name: str


def accelerator_owner_tag_value(resource: str, ns: str, name: str) -> str:
    """Return the owner tag value ``resource/ns/name``."""
    return f"{resource}/{ns}/{name}"


def accelerator_name(resource: str, obj: _Named) -> str:
    """Return the accelerator name ``resource-namespace-name`` for ``obj``."""
    return f"{resource}-{obj.namespace}-{obj.name}"


def _protocol_of_ports(protocols: Iterable[str]) -> Protocol:
    protocol = Protocol.TCP
    for raw in protocols:
        lowered = raw.lower()
        if lowered == "udp":
            protocol = Protocol.UDP
        elif lowered == "tcp":
            protocol = Protocol.TCP
    return protocol


def listener_for_service(svc: Service) -> tuple[list[int], Protocol]:
    """Return the listener ports and protocol for a load-balancer service.

    The protocol is that of the last port that names TCP or UDP.
    """
    ports = [p.port for p in svc.ports]
    return ports, _protocol_of_ports(p.protocol for p in svc.ports)


class _ListenPortsError(ValueError):
    pass


def _field(entry: Mapping[str, object], wanted: str) -> int:
    value: object = 0
    for key, item in entry.items():
        if key.lower() == wanted.lower():
            value = item
            if key == wanted:
                break
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise _ListenPortsError(f"invalid {wanted} port: {value!r}")
    return value


def _parse_listen_ports(raw: str) -> list[int]:
    try:
        entries = json.loads(raw)
    except json.JSONDecodeError as err:
        raise _ListenPortsError(str(err)) from err
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise _ListenPortsError("listen-ports must be a JSON array")
    ports: list[int] = []
    for entry in entries:
        if entry is None:
            continue
        if not isinstance(entry, dict):
            raise _ListenPortsError(f"invalid listen-ports entry: {entry!r}")
        http = _field(entry, "HTTP")
        https = _field(entry, "HTTPS")
        if http:
            ports.append(http)
        if https:
            ports.append(https)
    return ports


def listener_for_ingress(ingress: Ingress) -> tuple[list[int], Protocol]:
    """Return the listener ports and protocol for an ALB ingress.

    The listen-ports annotation, when present, overrides the ports of the rules.
    The protocol is always TCP.
    """
    raw = ingress.annotations.get(LISTEN_PORTS_ANNOTATION)
    if raw is not None:
        try:
            return _parse_listen_ports(raw), Protocol.TCP
        except _ListenPortsError as err:
            logger.error("%s", err)
            return [], Protocol.TCP

    ports: list[int] = []
    if ingress.default_backend_port is not None:
        ports.append(ingress.default_backend_port)
    for rule in ingress.rules:
        for path in rule.paths:
            if path.service_port is not None:
                ports.append(path.service_port)
    return ports, Protocol.TCP


def listener_protocol_changed_from_service(listener: Listener, svc: Service) -> bool:
    """Return True if the listener protocol differs from what ``svc`` needs."""
    _, protocol = listener_for_service(svc)
    return listener.protocol != protocol


def listener_protocol_changed_from_ingress(listener: Listener, ingress: Ingress) -> bool:
    """Return True unless the listener is TCP, the only protocol an ALB allows."""
    return listener.protocol != Protocol.TCP


def _ports_differ(listener_ports: Iterable[int], wanted_ports: Iterable[int]) -> bool:
    counts = Counter(listener_ports)
    counts.update(wanted_ports)
    return any(count <= 1 for count in counts.values())


def listener_port_changed_from_service(listener: Listener, svc: Service) -> bool:
    """Return True if the listener ports differ from the service ports."""
    return _ports_differ(listener.from_ports, (p.port for p in svc.ports))


def listener_port_changed_from_ingress(listener: Listener, ingress: Ingress) -> bool:
    """Return True if the listener ports differ from the ingress ports."""
    ports, _ = listener_for_ingress(ingress)
    return _ports_differ(listener.from_ports, ports)


def endpoint_contains_lb(endpoint: EndpointGroup, lb: LoadBalancer) -> bool:
    """Return True if the load balancer is one of the group's endpoints."""
    return lb.arn in endpoint.endpoint_ids


def tags_contain_all_values(tags: Iterable[Tag], target_tags: Mapping[str, str]) -> bool:
    """Return True if every key in ``target_tags`` carries the given value.

    A missing tag counts as an empty value.
    """
    actual = {t.key: t.value for t in tags}
    return all(actual.get(key, "") == value for key, value in target_tags.items())