import threading
from unittest.mock import MagicMock

import pytest
import redis

from ballotguard.errors import StoreUnavailable
from ballotguard.security.credential_store import (
    MemoryCredentialStore,
    RedisCredentialStore,
    create_credential_store,
)


def test_set_and_get_json_values(store):
    store.set("vote:abc", {"userId": 1, "electionId": 2}, 120)
    assert store.get("vote:abc") == {"userId": 1, "electionId": 2}
    assert store.get("vote:missing") is None


def test_entries_expire_after_ttl(store, clock):
    store.set("mfa:t", 5, 300)
    clock.advance(299)
    assert store.get("mfa:t") == 5
    clock.advance(1)
    assert store.get("mfa:t") is None
    assert store.take("mfa:t") is None


def test_take_consumes_entry(store):
    store.set("vote:abc", {"userId": 1}, 120)
    assert store.take("vote:abc") == {"userId": 1}
    assert store.take("vote:abc") is None
    assert store.get("vote:abc") is None


def test_concurrent_take_has_single_winner():
    store = MemoryCredentialStore()
    store.set("vote:race", {"userId": 1}, 120)
    results = []
    barrier = threading.Barrier(16)

    def redeem():
        barrier.wait()
        results.append(store.take("vote:race"))

    threads = [threading.Thread(target=redeem) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for r in results if r is not None) == 1


def test_incr_keeps_original_ttl(store, clock):
    assert store.incr("mfa_attempts:t", 300) == 1
    clock.advance(200)
    assert store.incr("mfa_attempts:t", 300) == 2
    clock.advance(100)
    assert store.incr("mfa_attempts:t", 300) == 1


def test_redis_store_uses_getdel_for_take():
    client = MagicMock()
    client.getdel.return_value = '{"userId": 3, "electionId": 4}'
    store = RedisCredentialStore(client)

    assert store.take("vote:xyz") == {"userId": 3, "electionId": 4}
    client.getdel.assert_called_once_with("vote:xyz")


def test_redis_store_sets_expiry():
    client = MagicMock()
    RedisCredentialStore(client).set("mfa:t", 7, 300)
    client.set.assert_called_once_with("mfa:t", "7", ex=300)


def test_redis_errors_fail_fast():
    client = MagicMock()
    client.get.side_effect = redis.ConnectionError("down")
    client.ping.side_effect = redis.ConnectionError("down")
    store = RedisCredentialStore(client)

    with pytest.raises(StoreUnavailable):
        store.get("vote:xyz")
    assert store.ping() is False


def test_create_credential_store_from_url():
    assert isinstance(create_credential_store("memory://"), MemoryCredentialStore)
    assert isinstance(create_credential_store("redis://localhost:6379/0"), RedisCredentialStore)
    with pytest.raises(ValueError):
        create_credential_store("ftp://nowhere")


def test_redis_incr_starts_ttl_without_expire_nx():
    client = MagicMock()
    pipe = client.pipeline.return_value
    pipe.execute.return_value = [True, 1]

    assert RedisCredentialStore(client).incr("mfa_attempts:t", 300) == 1
    pipe.set.assert_called_once_with("mfa_attempts:t", 0, ex=300, nx=True)
    pipe.incr.assert_called_once_with("mfa_attempts:t")
    pipe.expire.assert_not_called()


def test_redis_incr_failure_is_store_unavailable():
    client = MagicMock()
    client.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
    with pytest.raises(StoreUnavailable):
        RedisCredentialStore(client).incr("mfa_attempts:t", 300)


def test_expired_entries_are_pruned_on_write(store, clock):
    for n in range(20):
        store.set(f"login_delay:10.0.0.{n}", n, 5)
    clock.advance(5)
    store.incr("login_failures:10.0.0.99", 900)
    assert list(store._entries) == ["login_failures:10.0.0.99"]
