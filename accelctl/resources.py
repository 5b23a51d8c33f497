"""Cluster objects the controllers read: services and ingresses."""

from __future__ import annotations

from dataclasses import dataclass, field


def _meta_namespace_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}" if namespace else name


@dataclass
class ServicePort:
    port: int
    protocol: str = "TCP"
    name: str = ""


@dataclass
class LoadBalancerIngress:
    hostname: str = ""
    ip: str = ""


@dataclass
class Service:
    name: str
    namespace: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    type: str = "ClusterIP"
    load_balancer_class: str | None = None
    ports: list[ServicePort] = field(default_factory=list)
    load_balancer_ingress: list[LoadBalancerIngress] = field(default_factory=list)

    def key(self) -> str:
        """Return the ``namespace/name`` key, or just the name without a namespace."""
        return _meta_namespace_key(self.namespace, self.name)


@dataclass
class IngressPath:
    path: str = "/"
    service_name: str | None = None
    service_port: int | None = None


@dataclass
class IngressRule:
    host: str = ""
    paths: list[IngressPath] = field(default_factory=list)


@dataclass
class Ingress:
    name: str
    namespace: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    ingress_class_name: str | None = None
    default_backend_port: int | None = None
    rules: list[IngressRule] = field(default_factory=list)
    load_balancer_ingress: list[LoadBalancerIngress] = field(default_factory=list)

    def key(self) -> str:
        """Return the ``namespace/name`` key, or just the name without a namespace."""
        return _meta_namespace_key(self.namespace, self.name)