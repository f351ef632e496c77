"""Length-prefixed TCP frames and the JSON messages carried in them."""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass, field
from typing import Any

MESSAGE_TYPE_HELLO = "HELLO"
MESSAGE_TYPE_FILE_DIR = "FILE_DIR"

_HEADER = struct.Struct(">I")


def _as_object(data: Any) -> dict:
    """A JSON payload as a dict; null counts as an empty object."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"payload must be a JSON object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class Envelope:
    """Decoded outer JSON message: its type and its still-untyped payload."""

    type: str
    payload: Any = None


@dataclass
class HelloMessage:
    """Handshake message carrying the sender's node id."""

    peer_id: str = ""

    def to_dict(self) -> dict:
        return {"socket_id": self.peer_id}

    @classmethod
    def from_dict(cls, data: Any) -> HelloMessage:
        peer_id = _as_object(data).get("socket_id", "")
        if peer_id is None:
            peer_id = ""
        if not isinstance(peer_id, str):
            raise ValueError("socket_id must be a string")
        return cls(peer_id)


@dataclass
class FileDirMessage:
    """Listing of the files a peer shares."""

    files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"files": list(self.files)}

    @classmethod
    def from_dict(cls, data: Any) -> FileDirMessage:
        files = _as_object(data).get("files")
        if files is None:
            return cls([])
        if not isinstance(files, list) or not all(isinstance(name, str) for name in files):
            raise ValueError("files must be a list of strings")
        return cls(list(files))


@dataclass
class TCPMessage:
    """One frame: a 4-byte big-endian length followed by the message bytes."""

    message: bytes
    received: bool = False

    @property
    def size(self) -> int:
        return len(self.message)

    def send(self, conn) -> None:
        """Write the length header and the message to a connected socket."""
        if self.size > 0xFFFFFFFF:
            raise ValueError("message too large for a 32-bit length header")
        conn.sendall(_HEADER.pack(self.size) + self.message)

    def is_json(self) -> bool:
        """True when the message looks like a JSON object."""
        return len(self.message) >= 2 and self.message[:1] == b"{" and self.message[-1:] == b"}"

    def get_json(self) -> Envelope:
        """Decode the message as an envelope; raise ValueError if it is not one."""
        if not self.is_json():
            raise ValueError("not a JSON message")
        data = json.loads(self.message)
        if not isinstance(data, dict):
            raise ValueError("not a JSON object")
        message_type = data.get("type", "")
        if message_type is None:
            message_type = ""
        if not isinstance(message_type, str):
            raise ValueError("message type must be a string")
        return Envelope(message_type, data.get("payload"))


def _recv_exact(conn, count: int) -> bytes:
    buffer = bytearray()
    while len(buffer) < count:
        chunk = conn.recv(count - len(buffer))
        if not chunk:
            raise EOFError("connection closed")
        buffer.extend(chunk)
    return bytes(buffer)


def receive_tcp_message(conn) -> TCPMessage:
    """Read one whole frame; raise EOFError if the stream ends first."""
    (length,) = _HEADER.unpack(_recv_exact(conn, _HEADER.size))
    return TCPMessage(_recv_exact(conn, length), received=True)


def create_json_message(message_type: str, payload: Any) -> TCPMessage:
    """Wrap a payload (a message object or plain JSON value) in a typed envelope."""
    body = payload.to_dict() if hasattr(payload, "to_dict") else payload
    encoded = json.dumps(
        {"type": message_type, "payload": body},
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return TCPMessage(encoded)


def parse_payload(envelope: Envelope, message_class):
    """Build a `message_class` instance from an envelope's payload."""
    return message_class.from_dict(envelope.payload)