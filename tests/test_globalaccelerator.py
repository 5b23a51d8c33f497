import itertools

import pytest

from accelctl.aws.accelerators import AcceleratorClient
from accelctl.aws.globalaccelerator import (
    NOT_ACTIVE_RETRY_AFTER,
    EnsureResult,
    GlobalAcceleratorManager,
)
from accelctl.aws.listeners import (
    CLUSTER_TAG_KEY,
    MANAGED_TAG_KEY,
    OWNER_TAG_KEY,
    TARGET_HOSTNAME_TAG_KEY,
    accelerator_name,
    accelerator_owner_tag_value,
)
from accelctl.aws.loadbalancer import (
    LoadBalancer,
    LoadBalancerNotFoundError,
    LoadBalancerState,
)
from accelctl.aws.models import (
    Accelerator,
    EndpointDescription,
    EndpointGroup,
    Listener,
    Protocol,
    Tag,
)
from accelctl.resources import (
    Ingress,
    IngressPath,
    IngressRule,
    LoadBalancerIngress,
    Service,
    ServicePort,
)


class FakeGlobalAccelerator:
    def __init__(self):
        self.accelerators: dict[str, Accelerator] = {}
        self.tags: dict[str, dict[str, str]] = {}
        self.listeners: dict[str, list[Listener]] = {}
        self.groups: dict[str, list[EndpointGroup]] = {}
        self.failing: set[str] = set()
        self._ids = itertools.count(1)

    def _check(self, op):
        if op in self.failing:
            raise RuntimeError(f"{op} failed")

    def describe_accelerator(self, arn):
        return self.accelerators[arn]

    def list_accelerators(self):
        return list(self.accelerators.values())

    def list_tags_for_resource(self, arn):
        return [Tag(k, v) for k, v in self.tags.get(arn, {}).items()]

    def create_accelerator(self, name, enabled, ip_address_type, tags):
        self._check("create_accelerator")
        n = next(self._ids)
        acc = Accelerator(
            arn=f"arn:aws:globalaccelerator::000000000000:accelerator/acc-{n}",
            name=name,
            dns_name=f"acc-{n}.awsglobalaccelerator.com",
            enabled=enabled,
            ip_address_type=ip_address_type,
        )
        self.accelerators[acc.arn] = acc
        self.tags[acc.arn] = {t.key: t.value for t in tags}
        return acc

    def update_accelerator(self, arn, enabled, name=None):
        acc = self.accelerators[arn]
        acc.enabled = enabled
        if name is not None:
            acc.name = name
        return acc

    def tag_resource(self, arn, tags):
        self.tags.setdefault(arn, {}).update({t.key: t.value for t in tags})

    def delete_accelerator(self, arn):
        del self.accelerators[arn]
        self.tags.pop(arn, None)
        self.listeners.pop(arn, None)

    def list_listeners(self, accelerator_arn):
        return list(self.listeners.get(accelerator_arn, []))

    def create_listener(self, accelerator_arn, port_ranges, protocol, client_affinity):
        self._check("create_listener")
        listener = Listener(
            arn=f"{accelerator_arn}/listener/l-{next(self._ids)}",
            protocol=protocol,
            port_ranges=list(port_ranges),
            client_affinity=client_affinity,
        )
        self.listeners.setdefault(accelerator_arn, []).append(listener)
        return listener

    def update_listener(self, listener_arn, port_ranges, protocol, client_affinity):
        for listeners in self.listeners.values():
            for listener in listeners:
                if listener.arn == listener_arn:
                    listener.port_ranges = list(port_ranges)
                    listener.protocol = protocol
                    return listener
        raise KeyError(listener_arn)

    def delete_listener(self, arn):
        for key, listeners in self.listeners.items():
            self.listeners[key] = [li for li in listeners if li.arn != arn]
        self.groups.pop(arn, None)

    def _all_groups(self):
        for groups in self.groups.values():
            yield from groups

    def describe_endpoint_group(self, arn):
        return next(g for g in self._all_groups() if g.arn == arn)

    def list_endpoint_groups(self, listener_arn):
        return list(self.groups.get(listener_arn, []))

    def add_endpoints(self, endpoint_group_arn, configurations):
        group = self.describe_endpoint_group(endpoint_group_arn)
        group.endpoint_descriptions.extend(configurations)
        return list(configurations)

    def remove_endpoints(self, endpoint_group_arn, endpoint_ids):
        group = self.describe_endpoint_group(endpoint_group_arn)
        group.endpoint_descriptions = [
            d for d in group.endpoint_descriptions if d.endpoint_id not in endpoint_ids
        ]

    def create_endpoint_group(self, listener_arn, region, configurations):
        self._check("create_endpoint_group")
        group = EndpointGroup(
            arn=f"{listener_arn}/endpoint-group/eg-{next(self._ids)}",
            region=region,
            endpoint_descriptions=list(configurations),
        )
        self.groups.setdefault(listener_arn, []).append(group)
        return group

    def update_endpoint_group(self, arn, configurations):
        group = self.describe_endpoint_group(arn)
        group.endpoint_descriptions = list(configurations)
        return group

    def delete_endpoint_group(self, arn):
        for key, groups in self.groups.items():
            self.groups[key] = [g for g in groups if g.arn != arn]


class FakeLoadBalancers:
    def __init__(self, *lbs):
        self.lbs = {lb.name: lb for lb in lbs}

    def describe_load_balancers(self, names):
        return [self.lbs[n] for n in names if n in self.lbs]


LB_DNS = "web-abc123.elb.us-east-1.amazonaws.com"
LB_ARN = "arn:aws:elasticloadbalancing:us-east-1:000000000000:loadbalancer/net/web/abc123"
REGION = "us-east-1"
CLUSTER = "test-cluster"


def make_lb(state=LoadBalancerState.ACTIVE):
    return LoadBalancer(name="web", arn=LB_ARN, dns_name=LB_DNS, state=state)


def make_manager(lb=None):
    fake = FakeGlobalAccelerator()
    client = AcceleratorClient(fake, sleep=lambda _: None)
    manager = GlobalAcceleratorManager(client, FakeLoadBalancers(lb or make_lb()))
    return manager, fake


def make_service(ports=None):
    return Service(
        name="web",
        namespace="default",
        type="LoadBalancer",
        ports=ports if ports is not None else [ServicePort(80), ServicePort(443)],
        load_balancer_ingress=[LoadBalancerIngress(hostname=LB_DNS)],
    )


def ensure_service(manager, svc, preserve=False):
    return manager.ensure_for_service(
        svc, LoadBalancerIngress(hostname=LB_DNS), CLUSTER, "web", REGION, preserve
    )


def only_listener(fake, arn):
    (listener,) = fake.listeners[arn]
    return listener


def only_group(fake, listener):
    (group,) = fake.groups[listener.arn]
    return group


def test_ensure_for_service_creates_everything():
    manager, fake = make_manager()
    svc = make_service()
    result = ensure_service(manager, svc, preserve=True)

    assert result.created is True
    assert result.retry_after == 0
    assert list(fake.accelerators) == [result.arn]
    acc = fake.accelerators[result.arn]
    assert acc.name == accelerator_name("service", svc)
    assert fake.tags[result.arn] == {
        MANAGED_TAG_KEY: "true",
        OWNER_TAG_KEY: accelerator_owner_tag_value("service", "default", "web"),
        TARGET_HOSTNAME_TAG_KEY: LB_DNS,
        CLUSTER_TAG_KEY: CLUSTER,
    }
    listener = only_listener(fake, result.arn)
    assert listener.from_ports == [80, 443]
    assert listener.protocol == Protocol.TCP
    group = only_group(fake, listener)
    assert group.region == REGION
    assert group.endpoint_ids == [LB_ARN]
    assert group.endpoint_descriptions[0].client_ip_preservation_enabled is True


def test_ensure_for_service_udp_protocol():
    manager, fake = make_manager()
    result = ensure_service(manager, make_service([ServicePort(53, "UDP")]))
    assert only_listener(fake, result.arn).protocol == Protocol.UDP


def test_ensure_is_idempotent():
    manager, fake = make_manager()
    svc = make_service()
    first = ensure_service(manager, svc)
    second = ensure_service(manager, svc)
    assert second == EnsureResult(arn=first.arn, created=False)
    assert len(fake.accelerators) == 1
    assert len(fake.listeners[first.arn]) == 1


def test_ensure_waits_for_inactive_load_balancer():
    manager, fake = make_manager(make_lb(LoadBalancerState.PROVISIONING))
    result = ensure_service(manager, make_service())
    assert result == EnsureResult(arn=None, created=False, retry_after=NOT_ACTIVE_RETRY_AFTER)
    assert NOT_ACTIVE_RETRY_AFTER == 30.0
    assert fake.accelerators == {}


def test_ensure_rejects_dns_mismatch():
    manager, fake = make_manager()
    with pytest.raises(ValueError, match="DNS name is not matched"):
        manager.ensure_for_service(
            make_service(),
            LoadBalancerIngress(hostname="other-1.elb.us-east-1.amazonaws.com"),
            CLUSTER,
            "web",
            REGION,
            False,
        )
    assert fake.accelerators == {}


def test_ensure_missing_load_balancer():
    manager, _ = make_manager()
    with pytest.raises(LoadBalancerNotFoundError):
        manager.ensure_for_service(
            make_service(), LoadBalancerIngress(hostname=LB_DNS), CLUSTER, "absent", REGION, False
        )


def test_ensure_updates_changed_ports():
    manager, fake = make_manager()
    svc = make_service([ServicePort(80)])
    result = ensure_service(manager, svc)
    svc.ports = [ServicePort(8080, "UDP")]
    ensure_service(manager, svc)
    listener = only_listener(fake, result.arn)
    assert listener.from_ports == [8080]
    assert listener.protocol == Protocol.UDP


def test_ensure_reenables_and_renames_accelerator():
    manager, fake = make_manager()
    svc = make_service()
    result = ensure_service(manager, svc)
    acc = fake.accelerators[result.arn]
    acc.enabled = False
    acc.name = "stale"
    ensure_service(manager, svc)
    assert acc.enabled is True
    assert acc.name == accelerator_name("service", svc)


def test_ensure_recreates_missing_listener_and_group():
    manager, fake = make_manager()
    svc = make_service()
    result = ensure_service(manager, svc)
    fake.listeners[result.arn] = []
    ensure_service(manager, svc)
    listener = only_listener(fake, result.arn)
    assert listener.from_ports == [80, 443]
    assert only_group(fake, listener).endpoint_ids == [LB_ARN]


def test_ensure_replaces_foreign_endpoint():
    manager, fake = make_manager()
    svc = make_service()
    result = ensure_service(manager, svc)
    group = only_group(fake, only_listener(fake, result.arn))
    group.endpoint_descriptions = [EndpointDescription("arn:other")]
    ensure_service(manager, svc)
    assert group.endpoint_ids == [LB_ARN]


def test_failed_creation_is_cleaned_up():
    manager, fake = make_manager()
    fake.failing.add("create_endpoint_group")
    with pytest.raises(RuntimeError, match="create_endpoint_group failed"):
        ensure_service(manager, make_service())
    assert fake.accelerators == {}


def test_ensure_for_ingress_uses_rule_ports():
    manager, fake = make_manager()
    ingress = Ingress(
        name="site",
        namespace="default",
        ingress_class_name="alb",
        default_backend_port=8080,
        rules=[IngressRule(paths=[IngressPath(service_name="site", service_port=80)])],
    )
    result = manager.ensure_for_ingress(
        ingress, LoadBalancerIngress(hostname=LB_DNS), CLUSTER, "web", REGION, False
    )
    assert result.created is True
    listener = only_listener(fake, result.arn)
    assert listener.from_ports == [8080, 80]
    assert listener.protocol == Protocol.TCP
    assert manager.list_by_resource(CLUSTER, "ingress", "default", "site")[0].arn == result.arn


def test_ensure_for_ingress_keeps_accelerator_when_listener_fails():
    manager, fake = make_manager()
    fake.failing.add("create_listener")
    ingress = Ingress(name="site", namespace="default", default_backend_port=80)
    result = manager.ensure_for_ingress(
        ingress, LoadBalancerIngress(hostname=LB_DNS), CLUSTER, "web", REGION, False
    )
    assert result.created is True
    assert list(fake.accelerators) == [result.arn]
    assert fake.listeners.get(result.arn, []) == []


def test_list_by_hostname_filters_cluster_and_hostname():
    manager, _ = make_manager()
    client = manager.client
    mine = client.create_accelerator("a", CLUSTER, "service/default/a", LB_DNS)
    client.create_accelerator("b", "other-cluster", "service/default/b", LB_DNS)
    client.create_accelerator("c", CLUSTER, "service/default/c", "elsewhere.example.com")
    found = manager.list_by_hostname(LB_DNS, CLUSTER)
    assert [a.arn for a in found] == [mine.arn]


def test_list_by_resource_filters_owner():
    manager, _ = make_manager()
    client = manager.client
    owner = accelerator_owner_tag_value("service", "default", "web")
    mine = client.create_accelerator("a", CLUSTER, owner, LB_DNS)
    client.create_accelerator("b", CLUSTER, accelerator_owner_tag_value("ingress", "default", "web"), LB_DNS)
    found = manager.list_by_resource(CLUSTER, "service", "default", "web")
    assert [a.arn for a in found] == [mine.arn]


def test_cleanup_removes_all_resources():
    manager, fake = make_manager()
    result = ensure_service(manager, make_service())
    listener = only_listener(fake, result.arn)
    manager.cleanup(result.arn)
    assert fake.accelerators == {}
    assert fake.groups.get(listener.arn, []) == []


def test_cleanup_of_unknown_arn_is_noop():
    manager, fake = make_manager()
    result = ensure_service(manager, make_service())
    manager.cleanup("arn:aws:globalaccelerator::000000000000:accelerator/missing")
    assert list(fake.accelerators) == [result.arn]


def test_add_and_remove_lb_in_endpoint_group():
    manager, fake = make_manager()
    group = EndpointGroup(arn="eg-1")
    fake.groups["listener-1"] = [group]
    endpoint_id, retry = manager.add_lb_to_endpoint_group(group, "web", True)
    assert (endpoint_id, retry) == (LB_ARN, 0.0)
    assert group.endpoint_ids == [LB_ARN]
    assert group.endpoint_descriptions[0].client_ip_preservation_enabled is True
    manager.remove_lb_from_endpoint_group(group, LB_ARN)
    assert group.endpoint_ids == []


def test_add_lb_waits_for_inactive_load_balancer():
    manager, fake = make_manager(make_lb(LoadBalancerState.PROVISIONING))
    group = EndpointGroup(arn="eg-1")
    fake.groups["listener-1"] = [group]
    assert manager.add_lb_to_endpoint_group(group, "web", False) == (None, NOT_ACTIVE_RETRY_AFTER)
    assert group.endpoint_ids == []