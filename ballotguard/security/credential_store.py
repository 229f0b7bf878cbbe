# ballotguard/security/credential_store.py
"""Short-lived credential storage with per-entry TTL.

Holds MFA challenges and voting tokens. Values are JSON encoded so a token
can map to a plain user id or to a small dict. Two backends share one
interface:

- ``RedisCredentialStore`` for deployments (``redis://`` URLs)
- ``MemoryCredentialStore`` for a single process (``memory://``), used in
  development and tests

``take`` is the only way to consume a one-time credential: it reads and
deletes in one atomic step so two concurrent redeemers can never both see
the entry. Expired and missing entries are indistinguishable. A backend that
cannot be reached raises ``StoreUnavailable`` instead of pretending the key
is absent.
"""

import json
import logging
import threading
import time

import redis

from ballotguard.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class CredentialStore:
    def set(self, key, value, ttl_seconds):
        raise NotImplementedError

    def get(self, key):
        raise NotImplementedError

    def take(self, key):
        """Atomically return and delete ``key``; None if absent or expired."""
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError

    def incr(self, key, ttl_seconds):
        """Increment a counter, starting its TTL on first use. Returns the new value."""
        raise NotImplementedError

    def ping(self):
        raise NotImplementedError


class RedisCredentialStore(CredentialStore):
    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, url):
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def _call(self, op, key, *args, **kwargs):
        try:
            return getattr(self.client, op)(key, *args, **kwargs)
        except redis.RedisError as e:
            logger.error(f"Credential store {op.upper()} failed for {key.split(':')[0]}: {e}")
            raise StoreUnavailable()

    def set(self, key, value, ttl_seconds):
        self._call('set', key, json.dumps(value), ex=ttl_seconds)

    def get(self, key):
        raw = self._call('get', key)
        return json.loads(raw) if raw is not None else None

    def take(self, key):
        # GETDEL needs Redis >= 6.2
        raw = self._call('getdel', key)
        return json.loads(raw) if raw is not None else None

    def delete(self, key):
        self._call('delete', key)

    def incr(self, key, ttl_seconds):
        # SET NX EX starts the TTL only for a new counter; works on any Redis version
        try:
            pipe = self.client.pipeline()
            pipe.set(key, 0, ex=ttl_seconds, nx=True)
            pipe.incr(key)
            _, count = pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Credential store INCR failed: {e}")
            raise StoreUnavailable()
        return int(count)

    def ping(self):
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


class MemoryCredentialStore(CredentialStore):
    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries = {}  # key -> (json value, expires_at)
        self._lock = threading.Lock()

    def _live(self, key):
        entry = self._entries.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return raw

    def _purge_expired(self):
        now = self._clock()
        for key in [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]:
            del self._entries[key]

    def set(self, key, value, ttl_seconds):
        with self._lock:
            self._purge_expired()
            self._entries[key] = (json.dumps(value), self._clock() + ttl_seconds)

    def get(self, key):
        with self._lock:
            raw = self._live(key)
        return json.loads(raw) if raw is not None else None

    def take(self, key):
        with self._lock:
            raw = self._live(key)
            if raw is not None:
                del self._entries[key]
        return json.loads(raw) if raw is not None else None

    def delete(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def incr(self, key, ttl_seconds):
        with self._lock:
            self._purge_expired()
            raw = self._live(key)
            if raw is None:
                count, expires_at = 1, self._clock() + ttl_seconds
            else:
                count, expires_at = json.loads(raw) + 1, self._entries[key][1]
            self._entries[key] = (json.dumps(count), expires_at)
        return count

    def ping(self):
        return True


def create_credential_store(url):
    if url.startswith('memory://'):
        return MemoryCredentialStore()
    if url.startswith(('redis://', 'rediss://', 'unix://')):
        return RedisCredentialStore.from_url(url)
    raise ValueError(f"Unsupported credential store URL: {url}")
