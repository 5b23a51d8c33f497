"""Thin client over the Global Accelerator API: accelerators, listeners and endpoint groups."""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Protocol as _TypingProtocol, Sequence

from accelctl.aws.listeners import (
    CLUSTER_TAG_KEY,
    MANAGED_TAG_KEY,
    OWNER_TAG_KEY,
    TARGET_HOSTNAME_TAG_KEY,
)
from accelctl.aws.models import (
    Accelerator,
    AcceleratorStatus,
    EndpointDescription,
    EndpointGroup,
    Listener,
    PortRange,
    Protocol,
    Tag,
)

logger = logging.getLogger(__name__)


class GlobalAcceleratorAPI(_TypingProtocol):
    """The Global Accelerator operations the client needs; list calls return every page."""

    def describe_accelerator(self, arn: str) -> Accelerator: ...

    def list_accelerators(self) -> Iterable[Accelerator]: ...

    def list_tags_for_resource(self, arn: str) -> Iterable[Tag]: ...

    def create_accelerator(
        self, name: str, enabled: bool, ip_address_type: str, tags: Sequence[Tag]
    ) -> Accelerator: ...

    def update_accelerator(self, arn: str, enabled: bool, name: str | None = None) -> Accelerator: ...

    def tag_resource(self, arn: str, tags: Sequence[Tag]) -> None: ...

    def delete_accelerator(self, arn: str) -> None: ...

    def list_listeners(self, accelerator_arn: str) -> Iterable[Listener]: ...

    def create_listener(
        self,
        accelerator_arn: str,
        port_ranges: Sequence[PortRange],
        protocol: Protocol,
        client_affinity: str,
    ) -> Listener: ...

    def update_listener(
        self,
        listener_arn: str,
        port_ranges: Sequence[PortRange],
        protocol: Protocol,
        client_affinity: str,
    ) -> Listener: ...

    def delete_listener(self, arn: str) -> None: ...

    def describe_endpoint_group(self, arn: str) -> EndpointGroup: ...

    def list_endpoint_groups(self, listener_arn: str) -> Iterable[EndpointGroup]: ...

    def add_endpoints(
        self, endpoint_group_arn: str, configurations: Sequence[EndpointDescription]
    ) -> Sequence[EndpointDescription]: ...

    def remove_endpoints(self, endpoint_group_arn: str, endpoint_ids: Sequence[str]) -> None: ...

    def create_endpoint_group(
        self, listener_arn: str, region: str, configurations: Sequence[EndpointDescription]
    ) -> EndpointGroup: ...

    def update_endpoint_group(
        self, arn: str, configurations: Sequence[EndpointDescription]
    ) -> EndpointGroup: ...

    def delete_endpoint_group(self, arn: str) -> None: ...


class ListenerNotFoundError(LookupError):
    """The accelerator has no listener."""


class EndpointGroupNotFoundError(LookupError):
    """The listener has no endpoint group."""


_CLIENT_AFFINITY_NONE = "NONE"
_IP_ADDRESS_TYPE_IPV4 = "IPV4"


def _port_ranges(ports: Iterable[int]) -> list[PortRange]:
    return [PortRange.single(p) for p in ports]


class AcceleratorClient:
    """Global Accelerator operations with the controller's tagging and checks applied."""

    def __init__(
        self,
        api: GlobalAcceleratorAPI,
        *,
        poll_interval: float = 10.0,
        poll_timeout: float = 180.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api = api
        self._poll_interval = poll_interval
        self._poll_timeout = poll_timeout
        self._sleep = sleep
        self._clock = clock

    # Accelerators

    def get_accelerator(self, arn: str) -> Accelerator:
        """Describe the accelerator ``arn``."""
        return self.api.describe_accelerator(arn)

    def list_accelerators(self) -> list[Accelerator]:
        """Return every accelerator of the account."""
        return list(self.api.list_accelerators())

    def list_tags(self, arn: str) -> list[Tag]:
        """Return the tags of the resource ``arn``."""
        return list(self.api.list_tags_for_resource(arn))

    def create_accelerator(
        self, name: str, cluster_name: str, owner: str, hostname: str
    ) -> Accelerator:
        """Create an enabled IPv4 accelerator carrying the controller's tags."""
        logger.info("Creating Global Accelerator %s", name)
        tags = [
            Tag(MANAGED_TAG_KEY, "true"),
            Tag(OWNER_TAG_KEY, owner),
            Tag(TARGET_HOSTNAME_TAG_KEY, hostname),
            Tag(CLUSTER_TAG_KEY, cluster_name),
        ]
        accelerator = self.api.create_accelerator(name, True, _IP_ADDRESS_TYPE_IPV4, tags)
        logger.info("Global Accelerator is created: %s", accelerator.arn)
        return accelerator

    def update_accelerator(self, arn: str, name: str, owner: str, hostname: str) -> Accelerator:
        """Enable and rename the accelerator, then refresh its ownership tags."""
        logger.info("Updating Global Accelerator %s", arn)
        updated = self.api.update_accelerator(arn, True, name)
        self.api.tag_resource(
            arn,
            [
                Tag(MANAGED_TAG_KEY, "true"),
                Tag(OWNER_TAG_KEY, owner),
                Tag(TARGET_HOSTNAME_TAG_KEY, hostname),
            ],
        )
        return updated

    def delete_accelerator(self, arn: str) -> None:
        """Disable the accelerator, wait until it is deployed, then delete it.

        Raises TimeoutError if it does not reach the deployed state in time.
        """
        logger.info("Disabling Global Accelerator %s", arn)
        self.api.update_accelerator(arn, False)

        deadline = self._clock() + self._poll_timeout
        while True:
            self._sleep(self._poll_interval)
            accelerator = self.get_accelerator(arn)
            if accelerator.status == AcceleratorStatus.DEPLOYED:
                logger.info("Global Accelerator %s is %s", accelerator.arn, accelerator.status.value)
                break
            logger.info(
                "Global Accelerator %s is %s, so waiting", accelerator.arn, accelerator.status.value
            )
            if self._clock() >= deadline:
                raise TimeoutError("timed out waiting for the condition")

        self.api.delete_accelerator(arn)
        logger.info("Global Accelerator is deleted: %s", arn)

    # Listeners

    def get_listener(self, accelerator_arn: str) -> Listener:
        """Return the single listener of the accelerator."""
        listeners = list(self.api.list_listeners(accelerator_arn))
        if not listeners:
            raise ListenerNotFoundError(f"no listener for {accelerator_arn}")
        if len(listeners) > 1:
            logger.debug("Too many listeners: %r", listeners)
            raise ValueError("Too many listeners")
        return listeners[0]

    def create_listener(
        self, accelerator: Accelerator, ports: Iterable[int], protocol: Protocol
    ) -> Listener:
        """Create a listener with one single-port range per port."""
        listener = self.api.create_listener(
            accelerator.arn, _port_ranges(ports), protocol, _CLIENT_AFFINITY_NONE
        )
        logger.info("Listener is created: %s", listener.arn)
        return listener

    def update_listener(
        self, listener: Listener, ports: Iterable[int], protocol: Protocol
    ) -> Listener:
        """Replace the ports and protocol of the listener."""
        updated = self.api.update_listener(
            listener.arn, _port_ranges(ports), protocol, _CLIENT_AFFINITY_NONE
        )
        logger.info("Listener is updated: %s", updated.arn)
        return updated

    def delete_listener(self, arn: str) -> None:
        """Delete the listener ``arn``."""
        self.api.delete_listener(arn)
        logger.info("Listener is deleted: %s", arn)

    # Endpoint groups

    def describe_endpoint_group(self, arn: str) -> EndpointGroup:
        """Describe the endpoint group ``arn``."""
        return self.api.describe_endpoint_group(arn)

    def get_endpoint_group(self, listener_arn: str) -> EndpointGroup:
        """Return the single endpoint group of the listener."""
        groups = list(self.api.list_endpoint_groups(listener_arn))
        if not groups:
            raise EndpointGroupNotFoundError(f"no endpoint group for {listener_arn}")
        if len(groups) > 1:
            logger.debug("Too many endpoint groups: %r", groups)
            raise ValueError("Too many endpoint groups")
        return groups[0]

    def add_endpoint(self, endpoint_group_arn: str, lb_arn: str, ip_preserve: bool) -> str:
        """Add the load balancer to the group and return the new endpoint id."""
        added = self.api.add_endpoints(
            endpoint_group_arn, [EndpointDescription(lb_arn, ip_preserve)]
        )
        if not added:
            raise RuntimeError("No endpoint is added")
        endpoint_id = added[0].endpoint_id
        logger.info("Endpoint is added: %s", endpoint_id)
        return endpoint_id

    def remove_endpoint(self, endpoint_group_arn: str, endpoint_id: str) -> None:
        """Remove the endpoint from the group."""
        self.api.remove_endpoints(endpoint_group_arn, [endpoint_id])
        logger.info("Endpoint is removed: %s", endpoint_id)

    def create_endpoint_group(
        self, listener: Listener, lb_arn: str, region: str, ip_preserve: bool
    ) -> EndpointGroup:
        """Create an endpoint group in ``region`` holding the load balancer."""
        group = self.api.create_endpoint_group(
            listener.arn, region, [EndpointDescription(lb_arn, ip_preserve)]
        )
        logger.info("EndpointGroup is created: %s", group.arn)
        return group

    def update_endpoint_group(
        self, endpoint: EndpointGroup, lb_arn: str, ip_preserve: bool
    ) -> EndpointGroup:
        """Replace the endpoints of the group with the load balancer."""
        group = self.api.update_endpoint_group(
            endpoint.arn, [EndpointDescription(lb_arn, ip_preserve)]
        )
        logger.info("EndpointGroup is updated: %s", group.arn)
        return group

    def delete_endpoint_group(self, arn: str) -> None:
        """Delete the endpoint group ``arn``."""
        self.api.delete_endpoint_group(arn)
        logger.info("EndpointGroup is deleted: %s", arn)