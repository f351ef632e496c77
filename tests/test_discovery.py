import ipaddress
import socket
from collections import namedtuple
from unittest import mock

import pytest

from peerlink import config, discovery
from peerlink.discovery import (
    NetworkInterfaceManager,
    broadcast_address,
    handle_discovery_message,
    send_discovery_request,
    send_to_all,
)
from peerlink.peer import Peer, PeerManager

FakeAddr = namedtuple("FakeAddr", "family address netmask broadcast ptp")


@pytest.fixture
def receiver(monkeypatch):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2)
    monkeypatch.setattr(config, "UDP_PORT", sock.getsockname()[1])
    yield sock
    sock.close()


def test_broadcast_address_of_class_c_network():
    assert broadcast_address(ipaddress.IPv4Interface("192.168.1.10/24")) == ipaddress.IPv4Address(
        "192.168.1.255"
    )


def test_broadcast_address_of_single_host_is_itself():
    iface = ipaddress.IPv4Interface("10.1.2.3/32")
    assert broadcast_address(iface) == iface.ip


def test_broadcast_address_keeps_network_bits():
    iface = ipaddress.IPv4Interface("172.16.5.4/16")
    result = broadcast_address(iface)
    assert result in iface.network
    assert int(result) & int(iface.netmask) == int(iface.network.network_address)


def test_new_peer_is_registered_and_announced():
    manager = PeerManager()
    peer = handle_discovery_message(b"DISCOVER_PEER_REQUEST:42", "10.0.0.7", 1, manager)
    assert peer.id == "42"
    assert peer.addr == "10.0.0.7"
    assert manager.get_peer("42") is peer
    assert manager.updates.get_nowait() is peer


def test_own_request_is_ignored():
    manager = PeerManager()
    assert handle_discovery_message("DISCOVER_PEER_REQUEST:5", "10.0.0.7", 5, manager) is None
    assert manager.get_peer("5") is None


def test_known_peer_is_refreshed_without_announcement():
    manager = PeerManager()
    manager.upsert_peer(Peer("9", "10.0.0.9", last_seen=0.0))
    manager.updates.get_nowait()
    peer = handle_discovery_message("DISCOVER_PEER_REQUEST:9", "10.0.0.9", 1, manager)
    assert peer.last_seen > 0.0
    assert manager.updates.empty()


@pytest.mark.parametrize("message", ["HELLO:42", "garbage", ""])
def test_other_messages_are_ignored(message):
    manager = PeerManager()
    assert handle_discovery_message(message, "10.0.0.7", 1, manager) is None
    assert manager.updates.empty()


def test_message_whitespace_is_trimmed():
    manager = PeerManager()
    peer = handle_discovery_message(b"  DISCOVER_PEER_REQUEST:7\n", "10.0.0.7", 1, manager)
    assert peer.id == "7"


def test_send_discovery_request_wire_format(receiver):
    assert send_discovery_request(42, ipaddress.IPv4Address("127.0.0.1")) is True
    data, _ = receiver.recvfrom(1024)
    assert data == b"DISCOVER_PEER_REQUEST:42"


def test_send_to_all_uses_broadcast_of_each_interface(receiver):
    manager = NetworkInterfaceManager()
    manager.available = [ipaddress.IPv4Interface("127.0.0.1/32")]
    send_to_all(manager, 77)
    data, (host, _port) = receiver.recvfrom(1024)
    assert data == b"DISCOVER_PEER_REQUEST:77"
    assert host == str(broadcast_address(manager.available[0]))


def test_sent_request_is_understood_by_handler(receiver):
    send_discovery_request(314, "127.0.0.1")
    data, (host, _port) = receiver.recvfrom(1024)
    manager = PeerManager()
    peer = handle_discovery_message(data, host, 1, manager)
    assert peer.id == "314"
    assert peer.addr == host


def test_fetch_interfaces_keeps_only_ipv4():
    fake = {
        "eth0": [
            FakeAddr(socket.AF_INET, "192.168.1.10", "255.255.255.0", None, None),
            FakeAddr(socket.AF_INET6, "fe80::1", "ffff:ffff:ffff:ffff::", None, None),
        ],
        "lo": [FakeAddr(socket.AF_INET, "127.0.0.1", "255.0.0.0", None, None)],
    }
    manager = NetworkInterfaceManager()
    with mock.patch.object(discovery.psutil, "net_if_addrs", return_value=fake):
        result = manager.fetch_interfaces()
    assert result == [
        ipaddress.IPv4Interface("192.168.1.10/24"),
        ipaddress.IPv4Interface("127.0.0.1/8"),
    ]
    assert manager.available == result


def test_fetch_interfaces_replaces_previous_list():
    manager = NetworkInterfaceManager()
    manager.available = [ipaddress.IPv4Interface("10.0.0.1/8")]
    with mock.patch.object(discovery.psutil, "net_if_addrs", return_value={}):
        assert manager.fetch_interfaces() == []
    assert manager.available == []