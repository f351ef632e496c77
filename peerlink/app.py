"""Entry point that wires discovery, TCP links, the watcher and transfers together."""

from __future__ import annotations

import argparse
import logging
import os
import queue
import threading
from typing import Optional, Sequence

from . import config
from .discovery import NetworkInterfaceManager, listen, sender_loop
from .peer import Peer, PeerManager, get_peer_manager
from .tcp import TCPServer, create_tcp_connection
from .transfer import TransferQueue
from .watcher import Watcher

log = logging.getLogger(__name__)

WATCH_COOLDOWN = 2.0


def handle_peer_update(peer: Peer, peer_manager: PeerManager) -> bool:
    """Open a TCP link to a newly seen peer; True if a link was created."""
    log.info("New peer detected: %s", peer.id)
    if peer.tcp_socket is not None:
        log.info("This peer already has an active TCP connection: %s", peer.id)
        return False
    try:
        link = create_tcp_connection(peer)
    except OSError as exc:
        log.info("TCP connection to peer failed: %s", exc)
        return False
    peer.tcp_socket = link
    peer_manager.upsert_peer(peer)
    return True


def _log_file_events(events: "queue.Queue") -> None:
    while True:
        event = events.get()
        log.info("Event received: %s on file: %s", event.event_type.name, event.file_path)


def _consume_peer_updates(peer_manager: PeerManager) -> None:
    while True:
        handle_peer_update(peer_manager.updates.get(), peer_manager)


def _start(target, *args) -> threading.Thread:
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the node until interrupted."""
    parser = argparse.ArgumentParser(
        prog="peerlink", description="Share a directory with peers on the local network."
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    shared_directory = config.SHARED_DIRECTORY
    if not os.path.isdir(shared_directory):
        log.error("Cannot read the shared directory: %s", shared_directory)
        return 1

    log.info("Socket ID: %s", config.SOCKET_ID)

    tcp_server = TCPServer()
    peer_manager = get_peer_manager()
    transfers = TransferQueue()
    interfaces = NetworkInterfaceManager()
    file_events: queue.Queue = queue.Queue()
    watcher = Watcher(shared_directory, WATCH_COOLDOWN, file_events)

    _start(_log_file_events, file_events)
    _start(_consume_peer_updates, peer_manager)
    _start(tcp_server.listen)
    _start(watcher.listen)
    _start(listen, config.SOCKET_ID, peer_manager)
    _start(sender_loop, config.SOCKET_ID, interfaces, peer_manager)
    _start(transfers.loop)

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        watcher.stop()
        transfers.stop()
    return 0