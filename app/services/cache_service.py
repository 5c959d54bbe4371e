"""
Sheet Read Cache

Provides a thin TTL cache in front of Google Sheets range reads:
  - Keyed by (spreadsheet id, A1 range)
  - Default TTL 30 s (SHEETS_CACHE_TTL)
  - Invalidation by key prefix or by sheet name after every write

Uses Redis when REDIS_URL points at a redis server, falls back to
a simple in-memory dict for development/testing. Each SheetCache owns
its backend, so tests get an isolated cache per app instance.
"""

import fnmatch
import json
import logging
import time

logger = logging.getLogger(__name__)

DEFAULT_TTL = 30
KEY_PREFIX = "sheets:"


# ── In-memory fallback ───────────────────────────────────────────────────


class _MemoryBackend:
    """Simple dict cache for dev/testing."""

    def __init__(self):
        self._store: dict = {}  # key → (value_json, expire_ts)

    def get(self, key):
        entry = self._store.get(key)
        if entry is None:
            return None
        val, expires = entry
        if expires and time.time() > expires:
            self._store.pop(key, None)
            return None
        return val

    def setex(self, key, ttl_seconds, value):
        self._store[key] = (value, time.time() + ttl_seconds)

    def delete(self, *keys):
        for k in keys:
            self._store.pop(k, None)

    def keys(self, pattern):
        """Glob matching, same semantics as redis KEYS."""
        return [k for k in list(self._store) if fnmatch.fnmatchcase(k, pattern)]

    def flushdb(self):
        self._store.clear()

    def ping(self):
        return True


def _make_backend(redis_url: str | None):
    """Return a Redis client or fall back to in-memory."""
    if redis_url and redis_url.startswith(("redis://", "rediss://")):
        try:
            import redis as _redis
            backend = _redis.from_url(redis_url, decode_responses=True)
            backend.ping()
            logger.info("Sheet cache: using Redis at %s", redis_url.split("@")[-1])
            return backend
        except Exception as exc:
            logger.warning("Redis unavailable (%s) — falling back to memory cache", exc)
    return _MemoryBackend()


# ── Cache object ─────────────────────────────────────────────────────────


class SheetCache:
    """TTL cache for sheet range reads.

    Values are JSON-serialised (lists of row lists), so the same object
    works against Redis and the in-memory backend.

    Usage:
        cache = SheetCache(ttl=30)
        rows = cache.get(cache.key(spreadsheet_id, "campaigns!A:BT"))
        cache.invalidate_matching("campaigns")
    """

    def __init__(self, ttl: int = DEFAULT_TTL, redis_url: str | None = None, backend=None):
        self.ttl = ttl
        self._backend = backend if backend is not None else _make_backend(redis_url)

    @staticmethod
    def key(spreadsheet_id: str, a1_range: str) -> str:
        return f"{KEY_PREFIX}{spreadsheet_id}:{a1_range}"

    def get(self, key: str):
        """Return the cached value, or None on miss / expiry / corrupt entry."""
        raw = self._backend.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return None

    def set(self, key: str, value, ttl: int | None = None) -> None:
        ttl = self.ttl if ttl is None else ttl
        if ttl <= 0:
            return
        self._backend.setex(key, ttl, json.dumps(value, ensure_ascii=False))

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with *prefix*. Returns the number removed."""
        keys = self._backend.keys(f"{prefix}*")
        if keys:
            self._backend.delete(*keys)
        return len(keys)

    def invalidate_matching(self, fragment: str) -> int:
        """Drop every cached range whose key contains *fragment* (a sheet name)."""
        keys = self._backend.keys(f"{KEY_PREFIX}*{fragment}*")
        if keys:
            self._backend.delete(*keys)
            logger.debug("Sheet cache: invalidated %d key(s) for %s", len(keys), fragment)
        return len(keys)

    def clear(self) -> None:
        """Drop all sheet entries (mainly for tests)."""
        self.invalidate_prefix(KEY_PREFIX)

    @property
    def backend_name(self) -> str:
        return "memory" if isinstance(self._backend, _MemoryBackend) else "redis"

    def health_check(self) -> dict:
        """Return cache backend status."""
        try:
            self._backend.ping()
            return {"status": "ok", "backend": self.backend_name, "ttl": self.ttl}
        except Exception as exc:
            return {"status": "error", "detail": str(exc)}
