import pytest

from accelctl.aws.listeners import (
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
from accelctl.aws.loadbalancer import LoadBalancer
from accelctl.aws.models import (
    EndpointDescription,
    EndpointGroup,
    Listener,
    PortRange,
    Protocol,
    Tag,
)
from accelctl.resources import Ingress, IngressPath, IngressRule, Service, ServicePort


def _svc_protocols(*protocols):
    return Service(name="svc", ports=[ServicePort(port=0, protocol=p, name=p.lower()) for p in protocols])


@pytest.mark.parametrize(
    "listener_protocol, protocols, expected",
    [
        (Protocol.UDP, ["UDP"], False),
        (Protocol.TCP, ["TCP", "TCP"], False),
        (Protocol.TCP, ["UDP", "TCP"], False),
        (Protocol.TCP, ["UDP"], True),
        (Protocol.TCP, ["UDP", "UDP"], True),
        (Protocol.TCP, ["TCP", "UDP"], True),
    ],
)
def test_listener_protocol_changed_from_service(listener_protocol, protocols, expected):
    listener = Listener(arn="sample", protocol=listener_protocol)
    assert listener_protocol_changed_from_service(listener, _svc_protocols(*protocols)) is expected


def _listener_ports(*ports):
    return Listener(arn="sample", port_ranges=[PortRange.single(p) for p in ports])


def _svc_ports(*ports):
    return Service(name="svc", ports=[ServicePort(port=p) for p in ports])


@pytest.mark.parametrize(
    "listener_ports, svc_ports, expected",
    [
        ([80], [80], False),
        ([80, 443, 8080], [443, 8080, 80], False),
        ([80], [443], True),
        ([80, 8080], [443, 8080], True),
        ([80, 8080], [443, 8080, 8081], True),
        ([80, 443, 8080], [443], True),
    ],
)
def test_listener_port_changed_from_service(listener_ports, svc_ports, expected):
    assert (
        listener_port_changed_from_service(_listener_ports(*listener_ports), _svc_ports(*svc_ports))
        is expected
    )


def _rule(port):
    return IngressRule(paths=[IngressPath(path="/", service_name="Test service", service_port=port)])


def test_listener_for_ingress_only_rules():
    ingress = Ingress(name="Test ingress", ingress_class_name="alb", rules=[_rule(80)])
    assert listener_for_ingress(ingress) == ([80], Protocol.TCP)


def test_listener_for_ingress_default_backend():
    ingress = Ingress(
        name="Test ingress",
        ingress_class_name="alb",
        default_backend_port=8080,
        rules=[_rule(80)],
    )
    assert listener_for_ingress(ingress) == ([8080, 80], Protocol.TCP)


def test_listener_for_ingress_listen_ports_annotation():
    ingress = Ingress(
        name="Test ingress",
        annotations={"alb.ingress.kubernetes.io/listen-ports": '[{"HTTP": 80}, {"HTTPS": 443}]'},
        ingress_class_name="alb",
        default_backend_port=8080,
        rules=[_rule(80)],
    )
    assert listener_for_ingress(ingress) == ([80, 443], Protocol.TCP)


def test_listener_for_ingress_invalid_annotation_gives_no_ports():
    ingress = Ingress(
        name="Test ingress",
        annotations={"alb.ingress.kubernetes.io/listen-ports": "not json"},
        rules=[_rule(80)],
    )
    assert listener_for_ingress(ingress) == ([], Protocol.TCP)


def test_listener_for_service_ports_and_protocol():
    svc = Service(name="svc", ports=[ServicePort(80, "TCP"), ServicePort(53, "UDP")])
    assert listener_for_service(svc) == ([80, 53], Protocol.UDP)


def test_listener_protocol_changed_from_ingress():
    ingress = Ingress(name="i")
    assert listener_protocol_changed_from_ingress(Listener(protocol=Protocol.TCP), ingress) is False
    assert listener_protocol_changed_from_ingress(Listener(protocol=Protocol.UDP), ingress) is True


def test_listener_port_changed_from_ingress():
    ingress = Ingress(name="i", rules=[_rule(80)])
    assert listener_port_changed_from_ingress(_listener_ports(80), ingress) is False
    assert listener_port_changed_from_ingress(_listener_ports(443), ingress) is True


def test_owner_tag_and_name():
    svc = Service(name="web", namespace="default")
    assert accelerator_owner_tag_value("service", "default", "web") == "service/default/web"
    assert accelerator_name("service", svc) == "service-default-web"


def test_endpoint_contains_lb():
    lb = LoadBalancer(name="lb", arn="arn:lb", dns_name="lb.example.com")
    group = EndpointGroup(arn="eg", endpoint_descriptions=[EndpointDescription("arn:lb")])
    assert endpoint_contains_lb(group, lb) is True
    assert endpoint_contains_lb(EndpointGroup(arn="eg"), lb) is False


def test_tags_contain_all_values():
    tags = [Tag("a", "1"), Tag("b", "2")]
    assert tags_contain_all_values(tags, {"a": "1", "b": "2"}) is True
    assert tags_contain_all_values(tags, {"a": "1", "b": "3"}) is False
    assert tags_contain_all_values(tags, {"c": "1"}) is False
    assert tags_contain_all_values(tags, {"c": ""}) is True