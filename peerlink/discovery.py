"""UDP broadcast discovery of other nodes on the local networks."""

from __future__ import annotations

import ipaddress
import logging
import socket
import threading
import time
from typing import Optional, Union

import psutil

from . import config
from .peer import Peer, PeerManager

log = logging.getLogger(__name__)

DISCOVERY_PREFIX = "DISCOVER_PEER_REQUEST"
SEND_INTERVAL = 5.0
PEER_TIMEOUT = 10.0
SEND_TIMEOUT = 2.0
_BUFFER_SIZE = 1024


def broadcast_address(interface: ipaddress.IPv4Interface) -> ipaddress.IPv4Address:
    """The broadcast address of the network an interface address belongs to."""
    return interface.network.broadcast_address


class NetworkInterfaceManager:
    """Keeps the list of IPv4 addresses configured on this host."""

    def __init__(self) -> None:
        self.available: list[ipaddress.IPv4Interface] = []
        self._lock = threading.Lock()

    def fetch_interfaces(self) -> list[ipaddress.IPv4Interface]:
        """Refresh and return the IPv4 addresses of every local interface."""
        found = []
        for addresses in psutil.net_if_addrs().values():
            for entry in addresses:
                if entry.family != socket.AF_INET:
                    continue
                netmask = entry.netmask or "255.255.255.255"
                try:
                    found.append(ipaddress.IPv4Interface(f"{entry.address}/{netmask}"))
                except ValueError:
                    continue
        with self._lock:
            self.available = found
            return list(found)


def send_discovery_request(
    socket_id: int, ip: Union[ipaddress.IPv4Address, str]
) -> bool:
    """Send one discovery datagram to `ip`; False if it could not be sent."""
    message = f"{DISCOVERY_PREFIX}:{socket_id}".encode()
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.settimeout(SEND_TIMEOUT)
            sock.sendto(message, (str(ip), config.UDP_PORT))
    except OSError as exc:
        log.info("Error while sending UDP discovery: %s", exc)
        return False
    return True


def send_to_all(manager: NetworkInterfaceManager, socket_id: int) -> None:
    """Broadcast a discovery request on every known network."""
    with manager._lock:
        interfaces = list(manager.available)
    for interface in interfaces:
        send_discovery_request(socket_id, broadcast_address(interface))


def sender_loop(
    socket_id: int, manager: NetworkInterfaceManager, peer_manager: PeerManager
) -> None:
    """Block, broadcasting requests and expiring silent peers every few seconds."""
    manager.fetch_interfaces()
    send_to_all(manager, socket_id)
    while True:
        time.sleep(SEND_INTERVAL)
        send_to_all(manager, socket_id)
        peer_manager.remove_inactive_peers(PEER_TIMEOUT)


def handle_discovery_message(
    message: Union[bytes, str],
    remote_ip: str,
    socket_id: int,
    peer_manager: PeerManager,
) -> Optional[Peer]:
    """Register or refresh the peer announced by a datagram; return it, or None."""
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")
    parts = message.strip().split(":")
    if len(parts) < 2:
        return None
    sender_id = parts[1]
    if sender_id == str(socket_id):
        return None
    if parts[0] != DISCOVERY_PREFIX:
        return None
    peer = peer_manager.get_peer(sender_id)
    if peer is None:
        peer = Peer(sender_id, remote_ip)
    else:
        peer.signal()
    peer_manager.upsert_peer(peer)
    return peer


def listen(socket_id: int, peer_manager: PeerManager) -> None:
    """Block, receiving discovery datagrams on the UDP port."""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("0.0.0.0", config.UDP_PORT))
    except OSError as exc:
        log.info("Error while listening on UDP: %s", exc)
        return
    with sock:
        log.info("UDP discovery server listening on port %s", config.UDP_PORT)
        while True:
            try:
                data, (remote_ip, _port) = sock.recvfrom(_BUFFER_SIZE)
            except OSError as exc:
                log.info("Error while reading UDP: %s", exc)
                continue
            handle_discovery_message(data, remote_ip, socket_id, peer_manager)