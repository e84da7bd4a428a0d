"""IdempotencyStore over a Redis-like client."""
from unittest.mock import MagicMock

import redis

from photoset.services.idempotency import IdempotencyStore


def test_first_call_wins():
    client = MagicMock()
    client.set.side_effect = [True, None]
    store = IdempotencyStore(client=client)

    assert store.check_and_set("generate:1:abc", ttl_seconds=60) is True
    assert store.check_and_set("generate:1:abc", ttl_seconds=60) is False
    client.set.assert_called_with("idempotency:generate:1:abc", "1", nx=True, ex=60)


def test_redis_outage_fails_open():
    client = MagicMock()
    client.set.side_effect = redis.ConnectionError("down")
    assert IdempotencyStore(client=client).check_and_set("k") is True


def test_release_deletes_key():
    client = MagicMock()
    IdempotencyStore(client=client).release("generate:1:abc")
    client.delete.assert_called_once_with("idempotency:generate:1:abc")


def test_release_swallows_outage():
    client = MagicMock()
    client.delete.side_effect = redis.ConnectionError("down")
    IdempotencyStore(client=client).release("k")
