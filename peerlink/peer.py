"""Known peers and the registry that tracks them."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

log = logging.getLogger(__name__)


@runtime_checkable
class PeerMessenger(Protocol):
    """A channel able to send messages to a peer."""

    def send_directory(self) -> None:
        """Send the local shared directory listing to the peer."""
        ...


@dataclass
class Peer:
    """A node seen on the network."""

    id: str
    addr: str
    tcp_socket: Optional[PeerMessenger] = None
    last_seen: float = field(default_factory=time.monotonic)

    def signal(self) -> None:
        """Mark the peer as seen just now."""
        self.last_seen = time.monotonic()


class PeerManager:
    """Thread-safe registry of peers; newly added peers are published on `updates`."""

    def __init__(self) -> None:
        self._peers: dict[str, Peer] = {}
        self._lock = threading.Lock()
        self.updates: queue.Queue[Peer] = queue.Queue()

    def upsert_peer(self, peer: Peer) -> None:
        """Store a peer, announcing it on `updates` if it was not known before."""
        with self._lock:
            is_new = peer.id not in self._peers
            self._peers[peer.id] = peer
        if is_new:
            self.updates.put(peer)

    def remove_inactive_peers(self, timeout: float) -> list[str]:
        """Drop peers not seen for more than `timeout` seconds; return their ids."""
        now = time.monotonic()
        with self._lock:
            stale = [pid for pid, p in self._peers.items() if now - p.last_seen > timeout]
            for pid in stale:
                del self._peers[pid]
                log.info("Peer %s removed due to inactivity", pid)
        return stale

    def print_peers(self) -> None:
        """Log every known peer."""
        with self._lock:
            for p in self._peers.values():
                log.info("[PMANAGE] Peer : %s, Addr : %s -> Socket %s", p.id, p.addr, p.tcp_socket)

    def get_peer(self, peer_id: str) -> Optional[Peer]:
        """Return the peer with this id, or None."""
        with self._lock:
            return self._peers.get(peer_id)


_instance: Optional[PeerManager] = None
_instance_lock = threading.Lock()


def get_peer_manager() -> PeerManager:
    """Return the process-wide peer manager, creating it on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = PeerManager()
        return _instance