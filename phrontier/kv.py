"""
List-valued key/value backends for the resource collection.

The whole collection lives under one key as a list of JSON strings, newest
first. Mutations are single atomic operations on that list:

- ``prepend``: push a record to the head (refusing a duplicate id) and trim
  the tail down to the record cap.
- ``replace``: swap the record with a given id for a new serialization.
- ``remove``: drop every record with a given id.

On Redis each mutation runs as a server-side Lua script, so two clients
creating at the same time cannot overwrite each other's write. The memory
backend gives the same guarantees inside one process with a lock.
"""

import json
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .errors import ConfigurationError, StoreUnavailable
from .shared.logger import get_logger

logger = get_logger(__name__)

MEMORY_URL = "memory://"

_PREPEND_SCRIPT = """
local items = redis.call('LRANGE', KEYS[1], 0, -1)
for _, raw in ipairs(items) do
  local ok, rec = pcall(cjson.decode, raw)
  if ok and type(rec) == 'table' and tostring(rec['id']) == ARGV[1] then
    return 0
  end
end
redis.call('LPUSH', KEYS[1], ARGV[2])
local cap = tonumber(ARGV[3])
if cap > 0 then
  redis.call('LTRIM', KEYS[1], 0, cap - 1)
end
return 1
"""

_REPLACE_SCRIPT = """
local items = redis.call('LRANGE', KEYS[1], 0, -1)
for i, raw in ipairs(items) do
  local ok, rec = pcall(cjson.decode, raw)
  if ok and type(rec) == 'table' and tostring(rec['id']) == ARGV[1] then
    redis.call('LSET', KEYS[1], i - 1, ARGV[2])
    return 1
  end
end
return 0
"""

_REMOVE_SCRIPT = """
local items = redis.call('LRANGE', KEYS[1], 0, -1)
local removed = 0
for _, raw in ipairs(items) do
  local ok, rec = pcall(cjson.decode, raw)
  if ok and type(rec) == 'table' and tostring(rec['id']) == ARGV[1] then
    removed = removed + redis.call('LREM', KEYS[1], 1, raw)
  end
end
return removed
"""


def record_id(raw: str) -> Optional[str]:
    """Extract the ``id`` of a serialized record, or None if unreadable."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or data.get("id") is None:
        return None
    return str(data["id"])


class ListBackend(ABC):
    """Atomic list operations on one key."""

    @abstractmethod
    def items(self, key: str) -> List[str]:
        """Return all serialized records, newest first."""

    @abstractmethod
    def prepend(self, key: str, rid: str, raw: str, cap: int) -> bool:
        """Insert at the head; False if a record with ``rid`` already exists."""

    @abstractmethod
    def replace(self, key: str, rid: str, raw: str) -> bool:
        """Replace the record with ``rid``; False if absent."""

    @abstractmethod
    def remove(self, key: str, rid: str) -> int:
        """Remove records with ``rid``; returns how many were removed."""

    @abstractmethod
    def ping(self) -> bool:
        """Check the backend is reachable."""


class MemoryListBackend(ListBackend):
    """In-process backend for local development and tests."""

    def __init__(self):
        self._lists: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def items(self, key: str) -> List[str]:
        with self._lock:
            return list(self._lists.get(key, []))

    def prepend(self, key: str, rid: str, raw: str, cap: int) -> bool:
        with self._lock:
            current = self._lists.setdefault(key, [])
            if any(record_id(item) == rid for item in current):
                return False
            current.insert(0, raw)
            if cap > 0:
                del current[cap:]
            return True

    def replace(self, key: str, rid: str, raw: str) -> bool:
        with self._lock:
            current = self._lists.get(key, [])
            for index, item in enumerate(current):
                if record_id(item) == rid:
                    current[index] = raw
                    return True
            return False

    def remove(self, key: str, rid: str) -> int:
        with self._lock:
            current = self._lists.get(key, [])
            kept = [item for item in current if record_id(item) != rid]
            removed = len(current) - len(kept)
            self._lists[key] = kept
            return removed

    def ping(self) -> bool:
        return True


class RedisListBackend(ListBackend):
    """Redis backend; every mutation is one Lua script call."""

    def __init__(self, url: str, socket_timeout: float = 10.0, client: Optional[Redis] = None):
        self._url = url
        self._client = client or Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._prepend = self._client.register_script(_PREPEND_SCRIPT)
        self._replace = self._client.register_script(_REPLACE_SCRIPT)
        self._remove = self._client.register_script(_REMOVE_SCRIPT)

    def _fail(self, action: str, exc: RedisError) -> StoreUnavailable:
        logger.error("Redis %s failed: %s", action, exc)
        if isinstance(exc, (RedisConnectionError, RedisTimeoutError)):
            return StoreUnavailable(
                "Cloud sync failed: the resource store is unreachable.",
                hint="Check that the key-value store is running and reachable.",
            )
        return StoreUnavailable(f"Cloud sync failed: {exc}")

    def items(self, key: str) -> List[str]:
        try:
            return list(self._client.lrange(key, 0, -1))
        except RedisError as e:
            raise self._fail("read", e) from e

    def prepend(self, key: str, rid: str, raw: str, cap: int) -> bool:
        try:
            return bool(self._prepend(keys=[key], args=[rid, raw, cap]))
        except RedisError as e:
            raise self._fail("prepend", e) from e

    def replace(self, key: str, rid: str, raw: str) -> bool:
        try:
            return bool(self._replace(keys=[key], args=[rid, raw]))
        except RedisError as e:
            raise self._fail("replace", e) from e

    def remove(self, key: str, rid: str) -> int:
        try:
            return int(self._remove(keys=[key], args=[rid]))
        except RedisError as e:
            raise self._fail("remove", e) from e

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError as e:
            raise self._fail("ping", e) from e


def create_backend(url: Optional[str]) -> ListBackend:
    """Pick a backend from a connection URL."""
    if not url:
        raise ConfigurationError(
            "Cloud database configuration missing.",
            hint="Set PHRONTIER_KV_URL (or REDIS_URL) to a redis:// URL.",
        )
    if url.startswith(MEMORY_URL):
        logger.info("Using in-memory resource store")
        return MemoryListBackend()
    if url.startswith(("redis://", "rediss://", "unix://")):
        return RedisListBackend(url)
    raise ConfigurationError(
        f"Unsupported key-value store URL scheme: {url.split('://', 1)[0]}",
        hint="Use redis://, rediss:// or memory://.",
    )
