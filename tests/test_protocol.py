import socket

import pytest

from peerlink.protocol import (
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


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


def test_hello_wire_format():
    message = create_json_message(MESSAGE_TYPE_HELLO, HelloMessage("123"))
    assert message.message == b'{"type":"HELLO","payload":{"socket_id":"123"}}'
    assert message.size == len(message.message)
    assert message.received is False


def test_frame_has_big_endian_length_prefix(pair):
    a, b = pair
    message = create_json_message(MESSAGE_TYPE_HELLO, HelloMessage("1"))
    message.send(a)
    raw = b.recv(1024)
    assert raw[:4] == message.size.to_bytes(4, "big")
    assert raw[4:] == message.message
    assert raw[:4] == len(message.message).to_bytes(4, "big")


def test_send_and_receive_round_trip(pair):
    a, b = pair
    original = create_json_message(MESSAGE_TYPE_FILE_DIR, FileDirMessage(["x.txt", "y.bin"]))
    original.send(a)
    received = receive_tcp_message(b)
    assert received.message == original.message
    assert received.size == original.size
    assert received.received is True


def test_receive_assembles_split_writes(pair):
    a, b = pair
    frame = TCPMessage(b"{split}")
    raw = b"\x00\x00\x00\x07{split}"
    for piece in (raw[:2], raw[2:5], raw[5:]):
        a.sendall(piece)
    assert receive_tcp_message(b).message == frame.message


def test_receive_on_closed_stream_raises_eof(pair):
    a, b = pair
    a.close()
    with pytest.raises(EOFError):
        receive_tcp_message(b)


def test_receive_truncated_body_raises_eof(pair):
    a, b = pair
    a.sendall(b"\x00\x00\x00\x0a{ab")
    a.close()
    with pytest.raises(EOFError):
        receive_tcp_message(b)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (b"{}", True),
        (b'{"type":"HELLO"}', True),
        (b"{", False),
        (b"", False),
        (b"[1]", False),
        (b"{x", False),
        (b"plain text", False),
    ],
)
def test_is_json(raw, expected):
    assert TCPMessage(raw).is_json() is expected


def test_get_json_rejects_non_json():
    with pytest.raises(ValueError, match="not a JSON message"):
        TCPMessage(b"hello").get_json()


def test_get_json_rejects_malformed_object():
    with pytest.raises(ValueError):
        TCPMessage(b"{bad}").get_json()


def test_get_json_rejects_non_string_type():
    with pytest.raises(ValueError):
        TCPMessage(b'{"type":5}').get_json()


def test_get_json_without_payload():
    assert TCPMessage(b'{"type":"X"}').get_json() == Envelope("X", None)


def test_hello_round_trip():
    envelope = create_json_message(MESSAGE_TYPE_HELLO, HelloMessage("987")).get_json()
    assert envelope.type == MESSAGE_TYPE_HELLO
    assert parse_payload(envelope, HelloMessage) == HelloMessage("987")


def test_file_dir_round_trip():
    files = ["a.txt", "b.txt", "ünïcode.md"]
    envelope = create_json_message(MESSAGE_TYPE_FILE_DIR, FileDirMessage(files)).get_json()
    assert envelope.type == MESSAGE_TYPE_FILE_DIR
    assert parse_payload(envelope, FileDirMessage).files == files


def test_plain_payload_is_accepted():
    envelope = create_json_message("CUSTOM", {"k": [1, 2]}).get_json()
    assert envelope == Envelope("CUSTOM", {"k": [1, 2]})


def test_null_payloads_give_empty_messages():
    assert HelloMessage.from_dict(None).peer_id == ""
    assert FileDirMessage.from_dict({"files": None}).files == []


@pytest.mark.parametrize(
    "message_class, data",
    [
        (HelloMessage, {"socket_id": 12}),
        (HelloMessage, [1, 2]),
        (FileDirMessage, {"files": "a.txt"}),
        (FileDirMessage, {"files": [1]}),
    ],
)
def test_from_dict_rejects_wrong_shapes(message_class, data):
    with pytest.raises(ValueError):
        message_class.from_dict(data)


def test_unserializable_payload_raises():
    with pytest.raises(TypeError):
        create_json_message("CUSTOM", object())