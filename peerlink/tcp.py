"""TCP links between peers: the accepting server and per-connection sockets."""

from __future__ import annotations

import logging
import os
import socket
import threading
from dataclasses import dataclass, field
from typing import Optional

from . import config
from .peer import Peer, PeerManager, get_peer_manager
from .protocol import (
    MESSAGE_TYPE_FILE_DIR,
    MESSAGE_TYPE_HELLO,
    Envelope,
    FileDirMessage,
    HelloMessage,
    TCPMessage,
    create_json_message,
    parse_payload,
    receive_tcp_message,
)

log = logging.getLogger(__name__)

UNKNOWN_PEER = "UNKNOWN"


def _format_addr(addr) -> str:
    host, port = addr[0], addr[1]
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def _host_of(remote_addr: str) -> str:
    host = remote_addr.rpartition(":")[0]
    if host.startswith("[") and host.endswith("]"):
        return host[1:-1]
    return host


@dataclass(eq=False)
class TCPSocket:
    """A connection to one peer; its peer id is known once the HELLO handshake is done."""

    remote_addr: str
    conn: Optional[socket.socket]
    peer_id: str = UNKNOWN_PEER
    peer_manager: Optional[PeerManager] = None
    shared_directory: str = field(default_factory=lambda: config.SHARED_DIRECTORY)

    def _manager(self) -> PeerManager:
        return self.peer_manager if self.peer_manager is not None else get_peer_manager()

    def listen_messages(self, server: Optional[TCPServer]) -> None:
        """Block, handling incoming messages until the connection ends."""
        conn = self.conn
        try:
            if conn is None:
                return
            while True:
                try:
                    message = receive_tcp_message(conn)
                except EOFError:
                    log.info("Read end connection closed %s", self.remote_addr)
                    break
                except OSError as exc:
                    log.info("Error while receiving message: %s", exc)
                    break
                if not message.is_json():
                    continue
                try:
                    envelope = message.get_json()
                except ValueError as exc:
                    log.info("Error while getting JSON message: %s", exc)
                    break
                if not self.handshake_done() and envelope.type != MESSAGE_TYPE_HELLO:
                    log.info("Handshake not finished, ignoring message")
                    continue
                log.info("Received message: %s", envelope)
                if envelope.type == MESSAGE_TYPE_HELLO:
                    self._on_hello(envelope, server)
                elif envelope.type == MESSAGE_TYPE_FILE_DIR:
                    self._on_file_dir(envelope)
        finally:
            self.handle_disconnection()

    def _on_hello(self, envelope: Envelope, server: Optional[TCPServer]) -> None:
        try:
            hello = parse_payload(envelope, HelloMessage)
        except ValueError:
            hello = HelloMessage()
        manager = self._manager()
        peer = manager.get_peer(hello.peer_id)
        if peer is None:
            log.info("Receive HELLO from a peer that is not in the peer manager: %s", hello.peer_id)
            peer = Peer(hello.peer_id, _host_of(self.remote_addr))
        else:
            log.info("Receive HELLO from a peer that is already in the peer manager: %s", hello.peer_id)
        peer.tcp_socket = self
        self.peer_id = peer.id
        if server is not None:
            server._register(self)
        manager.upsert_peer(peer)

    def _on_file_dir(self, envelope: Envelope) -> None:
        try:
            listing = parse_payload(envelope, FileDirMessage)
        except ValueError:
            listing = FileDirMessage()
        log.info("Received directory: %s", listing.files)

    def handle_disconnection(self) -> None:
        """Close the connection and detach it from the peer it belonged to."""
        self.close()
        manager = self._manager()
        peer = manager.get_peer(self.peer_id)
        if peer is not None:
            peer.tcp_socket = None
            manager.upsert_peer(peer)
            log.info("Peer disconnected: %s", self.peer_id)

    def close(self) -> None:
        conn, self.conn = self.conn, None
        if conn is None:
            return
        try:
            conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        conn.close()

    def send(self, message: TCPMessage) -> bool:
        """Send a frame; False if the connection is already closed."""
        conn = self.conn
        if conn is None:
            return False
        message.send(conn)
        return True

    def handshake_done(self) -> bool:
        return self.peer_id != UNKNOWN_PEER

    def send_directory(self) -> bool:
        """Send the names of the files in the shared directory as a FILE_DIR message."""
        with os.scandir(self.shared_directory) as entries:
            names = sorted(entry.name for entry in entries if not entry.is_dir(follow_symlinks=False))
        return self.send(create_json_message(MESSAGE_TYPE_FILE_DIR, FileDirMessage(names)))


def create_tcp_connection(peer: Peer) -> TCPSocket:
    """Connect to a peer, send our HELLO and start listening in the background."""
    log.info("Creating TCP (client) connection to peer: %s", peer.id)
    conn = socket.create_connection((peer.addr, config.TCP_PORT))
    link = TCPSocket(_format_addr(conn.getpeername()), conn, peer.id)
    try:
        link.send(create_json_message(MESSAGE_TYPE_HELLO, HelloMessage(str(config.SOCKET_ID))))
    except OSError:
        link.close()
        raise
    threading.Thread(target=link.listen_messages, args=(None,), daemon=True).start()
    return link


class TCPServer:
    """Accepts peer connections and tracks them by remote address."""

    def __init__(self) -> None:
        self.listener: Optional[socket.socket] = None
        self._sockets: dict[str, TCPSocket] = {}
        self._lock = threading.Lock()

    def listen(self) -> None:
        """Block, accepting connections until the listener is closed."""
        listener = socket.create_server(("", config.TCP_PORT))
        listener.settimeout(0.5)
        self.listener = listener
        with listener:
            while True:
                try:
                    conn, addr = listener.accept()
                except OSError:
                    if listener.fileno() == -1:
                        return
                    continue
                threading.Thread(
                    target=self._handle_connection, args=(conn, addr), daemon=True
                ).start()

    def _handle_connection(self, conn: socket.socket, addr) -> None:
        remote_addr = _format_addr(addr)
        log.info("[TCPServer] New connection from %s", remote_addr)
        link = TCPSocket(remote_addr, conn)
        self._register(link)
        link.listen_messages(self)
        self._remove(link)

    def _register(self, link: TCPSocket) -> None:
        with self._lock:
            self._sockets[link.remote_addr] = link

    def _remove(self, link: TCPSocket) -> None:
        log.info("[TCPServer] Remove socket of peer: %s", link.peer_id)
        with self._lock:
            self._sockets.pop(link.remote_addr, None)

    def print_sockets(self) -> None:
        """Log every open connection."""
        with self._lock:
            for link in self._sockets.values():
                log.info("[TCP] Socket : %s -> PeerID %s", link.remote_addr, link.peer_id)