"""Keeping a Global Accelerator in step with a load-balancer service or an ALB ingress."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Union

from accelctl.aws.accelerators import (
    AcceleratorClient,
    EndpointGroupNotFoundError,
    ListenerNotFoundError,
)
from accelctl.aws.listeners import (
    CLUSTER_TAG_KEY,
    MANAGED_TAG_KEY,
    OWNER_TAG_KEY,
    TARGET_HOSTNAME_TAG_KEY,
    accelerator_name,
    accelerator_owner_tag_value,
    endpoint_contains_lb,
    listener_for_ingress,
    listener_for_service,
    listener_port_changed_from_ingress,
    listener_port_changed_from_service,
    listener_protocol_changed_from_ingress,
    listener_protocol_changed_from_service,
    tags_contain_all_values,
)
from accelctl.aws.loadbalancer import (
    LoadBalancer,
    LoadBalancerAPI,
    LoadBalancerState,
    get_load_balancer,
)
from accelctl.aws.models import Accelerator, EndpointGroup, Listener, Protocol
from accelctl.resources import Ingress, LoadBalancerIngress, Service

logger = logging.getLogger(__name__)

# Seconds to wait before retrying when the load balancer is not active yet.
NOT_ACTIVE_RETRY_AFTER = 30.0

_Owner = Union[Service, Ingress]
_ListenerSpec = Callable[[_Owner], "tuple[list[int], Protocol]"]
_ListenerChanged = Callable[[Listener, _Owner], bool]


@dataclass(frozen=True)
class EnsureResult:
    """Outcome of an ensure call; ``retry_after`` is in seconds, 0 meaning no retry."""

    arn: str | None = None
    created: bool = False
    retry_after: float = 0.0


@dataclass(frozen=True)
class _Kind:
    resource: str
    listener_spec: _ListenerSpec
    listener_changed: _ListenerChanged
    # When creating the listener fails, keep the bare accelerator and report success.
    keep_accelerator_on_listener_failure: bool


def _service_listener_changed(listener: Listener, svc: _Owner) -> bool:
    return listener_protocol_changed_from_service(listener, svc) or listener_port_changed_from_service(
        listener, svc
    )


def _ingress_listener_changed(listener: Listener, ingress: _Owner) -> bool:
    return listener_protocol_changed_from_ingress(
        listener, ingress
    ) or listener_port_changed_from_ingress(listener, ingress)


_SERVICE = _Kind("service", listener_for_service, _service_listener_changed, False)
_INGRESS = _Kind("ingress", listener_for_ingress, _ingress_listener_changed, True)


class GlobalAcceleratorManager:
    """Creates, updates and removes the accelerators that front cluster load balancers."""

    def __init__(self, client: AcceleratorClient, lb_api: LoadBalancerAPI) -> None:
        self.client = client
        self.lb_api = lb_api

    # Lookup

    def _list_matching(self, required: Mapping[str, str]) -> list[Accelerator]:
        matched = []
        for accelerator in self.client.list_accelerators():
            tags = self.client.list_tags(accelerator.arn)
            if tags_contain_all_values(tags, required):
                matched.append(accelerator)
            else:
                logger.debug("Global Accelerator %s does not have match tags", accelerator.arn)
        return matched

    def list_by_hostname(self, hostname: str, cluster_name: str) -> list[Accelerator]:
        """Return the managed accelerators of the cluster that target ``hostname``."""
        return self._list_matching(
            {
                MANAGED_TAG_KEY: "true",
                TARGET_HOSTNAME_TAG_KEY: hostname,
                CLUSTER_TAG_KEY: cluster_name,
            }
        )

    def list_by_resource(
        self, cluster_name: str, resource: str, ns: str, name: str
    ) -> list[Accelerator]:
        """Return the managed accelerators of the cluster owned by ``resource/ns/name``."""
        return self._list_matching(
            {
                MANAGED_TAG_KEY: "true",
                OWNER_TAG_KEY: accelerator_owner_tag_value(resource, ns, name),
                CLUSTER_TAG_KEY: cluster_name,
            }
        )

    # Ensure

    def ensure_for_service(
        self,
        svc: Service,
        lb_ingress: LoadBalancerIngress,
        cluster_name: str,
        lb_name: str,
        region: str,
        client_ip_preservation: bool,
    ) -> EnsureResult:
        """Create or update the accelerator for a load-balancer service."""
        return self._ensure(
            _SERVICE, svc, lb_ingress, cluster_name, lb_name, region, client_ip_preservation
        )

    def ensure_for_ingress(
        self,
        ingress: Ingress,
        lb_ingress: LoadBalancerIngress,
        cluster_name: str,
        lb_name: str,
        region: str,
        client_ip_preservation: bool,
    ) -> EnsureResult:
        """Create or update the accelerator for an ALB ingress."""
        return self._ensure(
            _INGRESS, ingress, lb_ingress, cluster_name, lb_name, region, client_ip_preservation
        )

    def _ensure(
        self,
        kind: _Kind,
        obj: _Owner,
        lb_ingress: LoadBalancerIngress,
        cluster_name: str,
        lb_name: str,
        region: str,
        ip_preserve: bool,
    ) -> EnsureResult:
        lb = get_load_balancer(self.lb_api, lb_name)
        if lb.dns_name != lb_ingress.hostname:
            raise ValueError(f"LoadBalancer's DNS name is not matched: {lb.dns_name}")
        if lb.state != LoadBalancerState.ACTIVE:
            logger.warning("LoadBalancer %s is not Active: %s", lb.arn, lb.state.value)
            return EnsureResult(retry_after=NOT_ACTIVE_RETRY_AFTER)

        logger.info("LoadBalancer is %s", lb.arn)

        accelerators = self.list_by_resource(cluster_name, kind.resource, obj.namespace, obj.name)
        if not accelerators:
            logger.info("Creating Global Accelerator for %s", lb.dns_name)
            arn = self._create(kind, obj, lb, cluster_name, region, ip_preserve)
            return EnsureResult(arn=arn, created=True)

        for accelerator in accelerators:
            logger.info("Updating existing Global Accelerator %s", accelerator.arn)
            self._update(kind, obj, accelerator, lb, region, ip_preserve)
        return EnsureResult(arn=accelerators[0].arn)

    def _create(
        self,
        kind: _Kind,
        obj: _Owner,
        lb: LoadBalancer,
        cluster_name: str,
        region: str,
        ip_preserve: bool,
    ) -> str:
        accelerator = self.client.create_accelerator(
            accelerator_name(kind.resource, obj),
            cluster_name,
            accelerator_owner_tag_value(kind.resource, obj.namespace, obj.name),
            lb.dns_name,
        )
        try:
            ports, protocol = kind.listener_spec(obj)
            try:
                listener = self.client.create_listener(accelerator, ports, protocol)
            except Exception:
                if kind.keep_accelerator_on_listener_failure:
                    logger.exception("Failed to create listener for %s", accelerator.arn)
                    return accelerator.arn
                raise
            self.client.create_endpoint_group(listener, lb.arn, region, ip_preserve)
        except Exception:
            logger.warning(
                "Failed to create Global Accelerator, but some resources are created, so cleanup %s",
                accelerator.arn,
            )
            try:
                self.cleanup(accelerator.arn)
            except Exception:
                logger.exception("Cleanup of %s failed", accelerator.arn)
            raise
        return accelerator.arn

    def _accelerator_changed(
        self, accelerator: Accelerator, hostname: str, resource: str, obj: _Owner
    ) -> bool:
        if not accelerator.enabled:
            return True
        if accelerator.name != accelerator_name(resource, obj):
            return True
        try:
            tags = self.client.list_tags(accelerator.arn)
        except Exception as err:
            logger.warning("%s", err)
            return False
        return not tags_contain_all_values(
            tags,
            {
                MANAGED_TAG_KEY: "true",
                OWNER_TAG_KEY: accelerator_owner_tag_value(resource, obj.namespace, obj.name),
                TARGET_HOSTNAME_TAG_KEY: hostname,
            },
        )

    def _update(
        self,
        kind: _Kind,
        obj: _Owner,
        accelerator: Accelerator,
        lb: LoadBalancer,
        region: str,
        ip_preserve: bool,
    ) -> None:
        if self._accelerator_changed(accelerator, lb.dns_name, kind.resource, obj):
            self.client.update_accelerator(
                accelerator.arn,
                accelerator_name(kind.resource, obj),
                accelerator_owner_tag_value(kind.resource, obj.namespace, obj.name),
                lb.dns_name,
            )

        try:
            listener = self.client.get_listener(accelerator.arn)
        except ListenerNotFoundError:
            ports, protocol = kind.listener_spec(obj)
            listener = self.client.create_listener(accelerator, ports, protocol)
        if kind.listener_changed(listener, obj):
            logger.info("Listener is changed, so updating: %s", listener.arn)
            ports, protocol = kind.listener_spec(obj)
            listener = self.client.update_listener(listener, ports, protocol)

        try:
            endpoint = self.client.get_endpoint_group(listener.arn)
        except EndpointGroupNotFoundError:
            endpoint = self.client.create_endpoint_group(listener, lb.arn, region, ip_preserve)
        if not endpoint_contains_lb(endpoint, lb):
            logger.info("Endpoint Group is changed, so updating: %s", endpoint.arn)
            self.client.update_endpoint_group(endpoint, lb.arn, ip_preserve)

        logger.info("All resources are synced: %s", accelerator.arn)

    # Removal

    def _related(
        self, arn: str
    ) -> tuple[Accelerator | None, Listener | None, EndpointGroup | None]:
        try:
            accelerator = self.client.get_accelerator(arn)
        except Exception:
            return None, None, None
        try:
            listener = self.client.get_listener(accelerator.arn)
        except Exception:
            return accelerator, None, None
        try:
            endpoint = self.client.get_endpoint_group(listener.arn)
        except Exception:
            return accelerator, listener, None
        return accelerator, listener, endpoint

    def cleanup(self, arn: str) -> None:
        """Delete the accelerator ``arn`` with its listener and endpoint group, where present."""
        accelerator, listener, endpoint = self._related(arn)
        if endpoint is not None:
            self.client.delete_endpoint_group(endpoint.arn)
        if listener is not None:
            self.client.delete_listener(listener.arn)
        if accelerator is not None:
            self.client.delete_accelerator(accelerator.arn)

    # Endpoint group bindings

    def add_lb_to_endpoint_group(
        self, endpoint_group: EndpointGroup, lb_name: str, ip_preserve: bool
    ) -> tuple[str | None, float]:
        """Add the load balancer to the group; return ``(endpoint_id, retry_after)``.

        While the load balancer is not active nothing is added and the id is None.
        """
        lb = get_load_balancer(self.lb_api, lb_name)
        if lb.state != LoadBalancerState.ACTIVE:
            logger.warning("LoadBalancer %s is not Active: %s", lb.arn, lb.state.value)
            return None, NOT_ACTIVE_RETRY_AFTER
        endpoint_id = self.client.add_endpoint(endpoint_group.arn, lb.arn, ip_preserve)
        return endpoint_id, 0.0

    def remove_lb_from_endpoint_group(self, endpoint_group: EndpointGroup, endpoint_id: str) -> None:
        """Remove the endpoint from the group."""
        self.client.remove_endpoint(endpoint_group.arn, endpoint_id)