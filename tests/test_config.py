import random

from peerlink.config import new_socket_id


def test_socket_ids_stay_in_range():
    ids = [new_socket_id() for _ in range(500)]
    assert all(0 <= value < 10_000_000 for value in ids)


def test_socket_id_follows_random_seed():
    random.seed(1234)
    first = new_socket_id()
    random.seed(1234)
    second = new_socket_id()
    assert first == second


def test_socket_ids_vary():
    ids = {new_socket_id() for _ in range(50)}
    assert len(ids) > 1