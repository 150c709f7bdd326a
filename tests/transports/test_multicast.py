"""
Brief: Unit tests for dnssd.transports.multicast.MulticastService.

Inputs:
  - None

Outputs:
  - None

Notes:
  - Sockets are replaced with in-memory doubles so no multicast traffic is
    generated.
"""

import ipaddress
import time
from types import SimpleNamespace

import pytest
from dnslib import PTR, QTYPE, RR, DNSHeader, DNSQuestion, DNSRecord

from dnssd.config.config_schema import MDNS_GROUP_V4, MulticastConfig
from dnssd.transports import multicast
from dnssd.transports.multicast import MulticastError, MulticastService


class RecordingSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail
        self.closed = False

    def sendto(self, data, dest):
        if self.fail:
            raise OSError("network unreachable")
        self.sent.append((data, dest))

    def close(self):
        self.closed = True


def _attach(service, *socks):
    service._sockets = [(s, (MDNS_GROUP_V4, 5353)) for s in socks]
    service._started = True


def _query_bytes(name="_services._dns-sd._udp.local", qtype=QTYPE.PTR):
    return DNSRecord(DNSHeader(id=0, qr=0), q=DNSQuestion(name, qtype)).pack()


def _answer_bytes():
    msg = DNSRecord(DNSHeader(id=0, qr=1, aa=1))
    msg.add_answer(RR("_http._tcp.local", QTYPE.PTR, rdata=PTR("a._http._tcp.local")))
    return msg.pack()


def test_config_overrides_build_model():
    svc = MulticastService(use_ipv6=True, port=0)
    assert isinstance(svc.config, MulticastConfig)
    assert svc.config.use_ipv6 is True
    assert svc.config.port == 0


def test_handle_datagram_routes_queries_and_answers():
    """
    Brief: qr=0 messages fire query_received, qr=1 messages fire answer_received.

    Inputs:
      - None

    Outputs:
      - None
    """
    svc = MulticastService(ignore_duplicate_messages=False)
    queries, answers = [], []
    svc.query_received.subscribe(queries.append)
    svc.answer_received.subscribe(answers.append)

    q = svc.handle_datagram(_query_bytes(), ("192.0.2.5", 5353))
    a = svc.handle_datagram(_answer_bytes(), ("192.0.2.6", 5353))

    assert queries == [q]
    assert answers == [a]
    assert str(q.q.qname).rstrip(".") == "_services._dns-sd._udp.local"


def test_malformed_datagram_fires_event_and_returns_none():
    svc = MulticastService()
    bad = []
    svc.malformed_message.subscribe(bad.append)
    assert svc.handle_datagram(b"\x00\x01\x02", ("192.0.2.5", 5353)) is None
    assert bad == [b"\x00\x01\x02"]


def test_duplicate_datagrams_are_dropped_within_window():
    """
    Brief: The same datagram seen twice inside the window is dispatched once.

    Inputs:
      - None

    Outputs:
      - None
    """
    svc = MulticastService(duplicate_window_seconds=0.2)
    seen = []
    svc.query_received.subscribe(seen.append)

    data = _query_bytes()
    assert svc.handle_datagram(data) is not None
    assert svc.handle_datagram(data) is None
    assert len(seen) == 1

    time.sleep(0.3)
    assert svc.handle_datagram(data) is not None
    assert len(seen) == 2


def test_duplicate_suppression_can_be_disabled():
    svc = MulticastService(ignore_duplicate_messages=False)
    seen = []
    svc.query_received.subscribe(seen.append)
    data = _query_bytes()
    svc.handle_datagram(data)
    svc.handle_datagram(data)
    assert len(seen) == 2


def test_send_query_packs_single_question():
    svc = MulticastService()
    sock = RecordingSocket()
    _attach(svc, sock)

    svc.send_query("_http._tcp.local", QTYPE.PTR)

    data, dest = sock.sent[0]
    assert dest == (MDNS_GROUP_V4, 5353)
    msg = DNSRecord.parse(data)
    assert msg.header.qr == 0
    assert msg.header.id == 0
    assert len(msg.questions) == 1
    assert msg.q.qtype == QTYPE.PTR
    assert str(msg.q.qname).rstrip(".") == "_http._tcp.local"


def test_send_answer_forces_mdns_response_form():
    """
    Brief: Answers go out with id 0, qr/aa set and no question section.

    Inputs:
      - None

    Outputs:
      - None
    """
    svc = MulticastService()
    sock = RecordingSocket()
    _attach(svc, sock)

    request = DNSRecord(DNSHeader(id=4242, qr=0), q=DNSQuestion("_http._tcp.local", QTYPE.PTR))
    reply = request.reply()
    reply.add_answer(RR("_http._tcp.local", QTYPE.PTR, rdata=PTR("a._http._tcp.local")))

    svc.send_answer(reply)

    msg = DNSRecord.parse(sock.sent[0][0])
    assert msg.header.id == 0
    assert msg.header.qr == 1
    assert msg.header.aa == 1
    assert msg.questions == []
    assert len(msg.rr) == 1


def test_send_before_start_raises():
    svc = MulticastService()
    with pytest.raises(MulticastError):
        svc.send_query("_http._tcp.local", QTYPE.PTR)


def test_send_fails_only_when_every_socket_fails():
    svc = MulticastService()
    good, bad = RecordingSocket(), RecordingSocket(fail=True)
    _attach(svc, bad, good)
    svc.send_query("_http._tcp.local", QTYPE.PTR)
    assert len(good.sent) == 1

    _attach(svc, RecordingSocket(fail=True))
    with pytest.raises(MulticastError):
        svc.send_query("_http._tcp.local", QTYPE.PTR)


def test_dispose_is_idempotent_and_closes_sockets():
    svc = MulticastService()
    sock = RecordingSocket()
    _attach(svc, sock)

    svc.dispose()
    svc.dispose()

    assert sock.closed
    assert not svc.running
    with pytest.raises(MulticastError):
        svc.start()


def test_start_without_any_family_raises():
    svc = MulticastService(use_ipv4=False, use_ipv6=False)
    with pytest.raises(MulticastError):
        svc.start()


def test_ipv6_interfaces_map_to_adapter_indexes(monkeypatch):
    """
    Brief: IPv6 interface entries resolve to adapter indexes; IPv4 ones are skipped.

    Inputs:
      - monkeypatch: replaces ifaddr.get_adapters and socket.if_nametoindex

    Outputs:
      - None
    """
    adapters = [
        SimpleNamespace(name="eth0", ips=[SimpleNamespace(ip="192.0.2.1")]),
        SimpleNamespace(
            name="wlan0",
            ips=[SimpleNamespace(ip=("fe80::2", 0, 3)), SimpleNamespace(ip=("2001:db8::2", 0, 0))],
        ),
    ]
    monkeypatch.setattr(multicast.ifaddr, "get_adapters", lambda: adapters)
    monkeypatch.setattr(
        multicast.socket, "if_nametoindex", lambda name: {"eth0": 2, "wlan0": 3}[name]
    )

    assert MulticastService.get_ipv6_interface_indexes(
        ["192.0.2.1", "fe80::2", "2001:db8::2"]
    ) == [3]
    assert MulticastService.get_ipv6_interface_indexes(["192.0.2.1"]) == []

    with pytest.raises(MulticastError):
        MulticastService.get_ipv6_interface_indexes(["fe80::99"])


def test_start_with_unknown_ipv6_interface_raises(monkeypatch):
    monkeypatch.setattr(multicast.ifaddr, "get_adapters", lambda: [])
    svc = MulticastService(use_ipv4=False, use_ipv6=True, interfaces=["fe80::99"])
    with pytest.raises(MulticastError):
        svc.start()
    assert not svc.running


def test_get_ip_addresses_uses_ifaddr(monkeypatch):
    """
    Brief: Adapter addresses are parsed, de-duplicated and loopback is skipped.

    Inputs:
      - monkeypatch: replaces ifaddr.get_adapters

    Outputs:
      - None
    """
    adapters = [
        SimpleNamespace(ips=[SimpleNamespace(ip="127.0.0.1"), SimpleNamespace(ip="192.0.2.1")]),
        SimpleNamespace(
            ips=[
                SimpleNamespace(ip=("fe80::1", 0, 2)),
                SimpleNamespace(ip=("2001:db8::1", 0, 0)),
                SimpleNamespace(ip="192.0.2.1"),
            ]
        ),
    ]
    monkeypatch.setattr(multicast.ifaddr, "get_adapters", lambda: adapters)

    assert MulticastService.get_ip_addresses() == [
        ipaddress.ip_address("192.0.2.1"),
        ipaddress.ip_address("fe80::1"),
        ipaddress.ip_address("2001:db8::1"),
    ]
    assert MulticastService.get_link_local_addresses() == [
        ipaddress.ip_address("192.0.2.1"),
        ipaddress.ip_address("fe80::1"),
    ]
