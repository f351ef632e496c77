"""Network and filesystem settings shared by the whole node."""

import random

TCP_PORT = 9998
UDP_PORT = 9999
SHARED_DIRECTORY = "./Shared"

_SOCKET_ID_LIMIT = 10_000_000


def new_socket_id() -> int:
    """Return a random identifier for this node, in [0, 10_000_000)."""
    return random.randrange(_SOCKET_ID_LIMIT)


SOCKET_ID = new_socket_id()