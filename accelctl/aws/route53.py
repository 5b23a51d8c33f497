"""Route 53 alias records that point cluster hostnames at their Global Accelerator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol as _TypingProtocol, Sequence

from accelctl.aws.globalaccelerator import GlobalAcceleratorManager
from accelctl.aws.models import (
    Accelerator,
    AliasTarget,
    HostedZone,
    ResourceRecord,
    ResourceRecordSet,
    RRType,
)
from accelctl.resources import Ingress, LoadBalancerIngress, Service

logger = logging.getLogger(__name__)

# Seconds to wait before retrying when no single accelerator matches the load balancer.
ACCELERATOR_LOOKUP_RETRY_AFTER = 60.0

METADATA_RECORD_TTL = 300

_CREATE = "CREATE"
_UPSERT = "UPSERT"
_DELETE = "DELETE"


class Route53API(_TypingProtocol):
    """The Route 53 operations the manager needs; list calls return every page."""

    def list_hosted_zones(self) -> Iterable[HostedZone]: ...

    def list_hosted_zones_by_name(self, dns_name: str, max_items: int) -> Iterable[HostedZone]: ...

    def list_resource_record_sets(self, hosted_zone_id: str) -> Iterable[ResourceRecordSet]: ...

    def change_resource_record_sets(
        self, hosted_zone_id: str, action: str, record_set: ResourceRecordSet
    ) -> None: ...


class HostedZoneNotFoundError(LookupError):
    """No hosted zone covers the requested hostname."""


@dataclass(frozen=True)
class Route53Result:
    """Outcome of an ensure call; ``retry_after`` is in seconds, 0 meaning no retry."""

    created: bool = False
    retry_after: float = 0.0


def route53_owner_value(cluster_name: str, resource: str, ns: str, name: str) -> str:
    """Return the quoted TXT value that marks a record as owned by ``resource/ns/name``."""
    return (
        f'"heritage=aws-global-accelerator-controller,cluster={cluster_name},'
        f'{resource}/{ns}/{name}"'
    )


def replace_wildcards(s: str) -> str:
    """Turn the first escaped wildcard label into ``*``."""
    return s.replace("\\052", "*", 1)


def find_a_record(
    records: Iterable[ResourceRecordSet], hostname: str
) -> ResourceRecordSet | None:
    """Return the A record set named ``hostname``, or None."""
    wanted = hostname + "."
    for record in records:
        if record.type == RRType.A and replace_wildcards(record.name) == wanted:
            return record
    return None


def need_records_update(record: ResourceRecordSet, accelerator: Accelerator) -> bool:
    """Return True unless the record already aliases the accelerator's DNS name."""
    if record.alias_target is None:
        return True
    return record.alias_target.dns_name != accelerator.dns_name + "."


def parent_domain(hostname: str) -> str:
    """Return ``hostname`` without its first label."""
    return ".".join(hostname.split(".")[1:])


class Route53Manager:
    """Creates, updates and removes the records that route hostnames to accelerators."""

    def __init__(self, api: Route53API, accelerators: GlobalAcceleratorManager) -> None:
        self.api = api
        self.accelerators = accelerators

    # Ensure

    def ensure_for_service(
        self,
        svc: Service,
        lb_ingress: LoadBalancerIngress,
        hostnames: Sequence[str],
        cluster_name: str,
    ) -> Route53Result:
        """Point ``hostnames`` at the accelerator of a load-balancer service."""
        return self._ensure(lb_ingress, hostnames, cluster_name, "service", svc.namespace, svc.name)

    def ensure_for_ingress(
        self,
        ingress: Ingress,
        lb_ingress: LoadBalancerIngress,
        hostnames: Sequence[str],
        cluster_name: str,
    ) -> Route53Result:
        """Point ``hostnames`` at the accelerator of an ALB ingress."""
        return self._ensure(
            lb_ingress, hostnames, cluster_name, "ingress", ingress.namespace, ingress.name
        )

    def _ensure(
        self,
        lb_ingress: LoadBalancerIngress,
        hostnames: Sequence[str],
        cluster_name: str,
        resource: str,
        ns: str,
        name: str,
    ) -> Route53Result:
        accelerators = self.accelerators.list_by_hostname(lb_ingress.hostname, cluster_name)
        if len(accelerators) > 1:
            logger.debug("Found many Global Accelerators: %r", accelerators)
            logger.error("Too many Global Accelerators for %s", lb_ingress.hostname)
            return Route53Result(retry_after=ACCELERATOR_LOOKUP_RETRY_AFTER)
        if not accelerators:
            logger.error("Could not find Global Accelerator for %s", lb_ingress.hostname)
            return Route53Result(retry_after=ACCELERATOR_LOOKUP_RETRY_AFTER)
        accelerator = accelerators[0]
        owner = route53_owner_value(cluster_name, resource, ns, name)

        created = False
        for hostname in hostnames:
            zone = self.get_hosted_zone(hostname)
            logger.info("HostedZone is %s", zone.id)
            logger.info("Finding record sets %r for HostedZone %s", owner, zone.id)
            records = self.find_owned_a_record_sets(zone, owner)
            record = find_a_record(records, hostname)
            if record is None:
                logger.info("Creating record for %s with %s", hostname, accelerator.arn)
                self._create_metadata_record_set(zone, hostname, owner)
                self._change_alias(zone, _CREATE, hostname, accelerator)
                created = True
                continue
            if not need_records_update(record, accelerator):
                logger.info("Do not need to update for %s, so skip it", record.name)
                continue
            self._change_alias(zone, _UPSERT, hostname, accelerator)
            logger.info("RecordSet %s is updated", record.name)

        logger.info("All records are synced for %s %s/%s", resource, ns, name)
        return Route53Result(created=created)

    def _change_alias(
        self, zone: HostedZone, action: str, hostname: str, accelerator: Accelerator
    ) -> None:
        record_set = ResourceRecordSet(
            name=hostname,
            type=RRType.A,
            alias_target=AliasTarget(dns_name=accelerator.dns_name),
        )
        self.api.change_resource_record_sets(zone.id, action, record_set)

    def _create_metadata_record_set(self, zone: HostedZone, hostname: str, owner: str) -> None:
        record_set = ResourceRecordSet(
            name=hostname,
            type=RRType.TXT,
            ttl=METADATA_RECORD_TTL,
            resource_records=[ResourceRecord(owner)],
        )
        self.api.change_resource_record_sets(zone.id, _CREATE, record_set)

    # Removal

    def cleanup_record_set(self, cluster_name: str, resource: str, ns: str, name: str) -> None:
        """Delete every alias and ownership record of ``resource/ns/name`` in all zones."""
        owner = route53_owner_value(cluster_name, resource, ns, name)
        for zone in list(self.api.list_hosted_zones()):
            for record in self.find_owned_a_record_sets(zone, owner):
                self.api.change_resource_record_sets(zone.id, _DELETE, record)
                logger.info("Record set %s: %s is deleted", record.name, record.type.value)
            for record in self._find_owned_metadata_record_sets(zone, owner):
                self.api.change_resource_record_sets(zone.id, _DELETE, record)
                logger.info("Record set %s: %s is deleted", record.name, record.type.value)

    # Lookup

    def _find_owned_metadata_record_sets(
        self, zone: HostedZone, owner_value: str
    ) -> list[ResourceRecordSet]:
        return [
            record_set
            for record_set in self.api.list_resource_record_sets(zone.id)
            for value in record_set.values
            if value == owner_value
        ]

    def find_owned_a_record_sets(
        self, hosted_zone: HostedZone, owner_value: str
    ) -> list[ResourceRecordSet]:
        """Return the alias record sets whose name carries ``owner_value`` in a TXT record."""
        record_sets = list(self.api.list_resource_record_sets(hosted_zone.id))
        owned_names = {
            record_set.name
            for record_set in record_sets
            if owner_value in record_set.values
        }
        logger.debug("Finding A record %s", sorted(owned_names))
        return [
            record_set
            for record_set in record_sets
            if record_set.name in owned_names and record_set.alias_target is not None
        ]

    def get_hosted_zone(self, hostname: str) -> HostedZone:
        """Return the most specific hosted zone that covers ``hostname``."""
        target = hostname
        while target:
            logger.debug("Getting hosted zone for %s", target)
            wanted = target + "."
            for zone in self.api.list_hosted_zones_by_name(wanted, 1):
                if zone.name == wanted:
                    return zone
            target = parent_domain(target)
        raise HostedZoneNotFoundError(f"Could not find hosted zone for {hostname}")