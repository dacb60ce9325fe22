"""
Short-TTL cache layer in front of the result queries.

Two interchangeable stores implement the same contract: Redis when
REDIS_URL is configured, and an in-process TTL cache otherwise.  Both keep
a tag index (tag -> cache keys) so writes can drop exactly the keys whose
scope they touch instead of issuing wildcard deletes.

ResultCache wraps a store and is what the engines talk to.  It treats the
cache as an accelerator only: any store failure is logged and the call
behaves like a miss.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod

import redis
from cachetools import TLRUCache

from engine.errors import CacheUnavailable

logger = logging.getLogger(__name__)

TAG_PREFIX = "tag:"
# A tag index outlives every key it points at.
TAG_TTL = 600

# Tags shared by the engines.
TAG_ALL_RESULTS = "results"


def category_tag(categoryname: str) -> str:
    # Case-folded so both upload paths hit the same scope.
    return f"results:{categoryname.lower()}"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Stores
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class CacheStore(ABC):
    """Key/value store of strings with per-key TTL and a tag index."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None if missing or expired."""

    @abstractmethod
    def set(self, key: str, value: str, ttl: int) -> None:
        """Store *value* under *key* for *ttl* seconds."""

    @abstractmethod
    def delete(self, *keys: str) -> None:
        """Remove literal keys; missing keys are ignored."""

    @abstractmethod
    def tag(self, tag: str, key: str, ttl: int) -> None:
        """Record *key* under *tag*; the tag lives at least *ttl* seconds."""

    @abstractmethod
    def tagged(self, tag: str) -> set[str]:
        """Return the keys recorded under *tag*."""


class RedisCacheStore(CacheStore):
    """redis-py backed store; client errors surface as CacheUnavailable."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        return cls(redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=2,
            socket_connect_timeout=2,
            health_check_interval=30,
        ))

    def get(self, key):
        try:
            return self._client.get(key)
        except redis.RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc

    def set(self, key, value, ttl):
        try:
            self._client.set(key, value, ex=ttl)
        except redis.RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc

    def delete(self, *keys):
        if not keys:
            return
        try:
            self._client.delete(*keys)
        except redis.RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc

    def tag(self, tag, key, ttl):
        tag_key = TAG_PREFIX + tag
        try:
            pipe = self._client.pipeline()
            pipe.sadd(tag_key, key)
            pipe.expire(tag_key, max(ttl, TAG_TTL))
            pipe.execute()
        except redis.RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc

    def tagged(self, tag):
        try:
            return set(self._client.smembers(TAG_PREFIX + tag))
        except redis.RedisError as exc:
            raise CacheUnavailable(str(exc)) from exc


def _entry_ttu(_key, entry, now):
    return now + entry[0]


class MemoryCacheStore(CacheStore):
    """
    In-process store backed by cachetools.TLRUCache.

    Each entry is kept as (ttl, value) so the TLRU time-to-use function can
    give every key its own lifetime.  The tag index is a separate cache, so
    evicting values never drops an index entry.
    """

    def __init__(self, max_size: int = 2048, timer=time.monotonic) -> None:
        self._cache = TLRUCache(maxsize=max_size, ttu=_entry_ttu, timer=timer)
        self._tags = TLRUCache(maxsize=max_size, ttu=_entry_ttu, timer=timer)
        self._lock = threading.RLock()

    def get(self, key):
        with self._lock:
            entry = self._cache.get(key)
        return None if entry is None else entry[1]

    def set(self, key, value, ttl):
        with self._lock:
            self._cache[key] = (ttl, value)

    def delete(self, *keys):
        with self._lock:
            for key in keys:
                if key.startswith(TAG_PREFIX):
                    self._tags.pop(key, None)
                else:
                    self._cache.pop(key, None)

    def tag(self, tag, key, ttl):
        tag_key = TAG_PREFIX + tag
        with self._lock:
            entry = self._tags.get(tag_key)
            members = set(entry[1]) if entry else set()
            members.add(key)
            self._tags[tag_key] = (max(ttl, TAG_TTL), frozenset(members))

    def tagged(self, tag):
        with self._lock:
            entry = self._tags.get(TAG_PREFIX + tag)
        return set(entry[1]) if entry else set()


def build_store(redis_url: str = "", max_size: int = 2048) -> CacheStore:
    """Redis when a URL is configured, otherwise the in-process store."""
    if redis_url:
        logger.info("Using Redis cache store")
        return RedisCacheStore.from_url(redis_url)
    logger.info("Using in-memory cache store (max_size=%d)", max_size)
    return MemoryCacheStore(max_size=max_size)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Facade used by the engines
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ResultCache:
    """JSON cache with tag-based invalidation that never fails a request."""

    def __init__(self, store: CacheStore) -> None:
        self._store = store

    def get_json(self, key: str):
        try:
            raw = self._store.get(key)
        except CacheUnavailable as exc:
            logger.warning("Cache read bypassed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Dropping undecodable cache entry %s", key)
            self.delete(key)
            return None

    def set_json(self, key: str, value, ttl: int, tags=()) -> None:
        try:
            self._store.set(key, json.dumps(value), ttl)
            for tag in tags:
                self._store.tag(tag, key, ttl)
        except CacheUnavailable as exc:
            logger.warning("Cache write skipped for %s: %s", key, exc)

    def delete(self, *keys: str) -> None:
        try:
            self._store.delete(*keys)
        except CacheUnavailable as exc:
            logger.warning("Cache delete skipped for %s: %s", keys, exc)

    def invalidate(self, *tags: str) -> None:
        """Delete every key recorded under any of *tags*, and the tags themselves."""
        try:
            keys = set()
            for tag in tags:
                keys |= self._store.tagged(tag)
            self._store.delete(*keys, *(TAG_PREFIX + tag for tag in tags))
        except CacheUnavailable as exc:
            logger.warning("Cache invalidation skipped for %s: %s", tags, exc)
            return
        logger.debug("Invalidated %d cache keys for %s", len(keys), tags)
