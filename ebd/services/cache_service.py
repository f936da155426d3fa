"""
Tenant-scoped Redis cache for read-heavy summaries.

Key layout: {CACHE_KEY_PREFIX}:tenant:{tenant_id}:{module}:{key}

Redis is optional. Without it (disabled in config, or unreachable) reads miss
and writes are dropped, so callers always fall back to the database.
"""
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask, current_app, has_app_context

logger = logging.getLogger(__name__)

COMMISSIONS_MODULE = 'commissions'

_DECIMAL_TAG = '__decimal__'
_DELETE_CHUNK = 100


class _CacheEncoder(json.JSONEncoder):
    """Money stays exact: Decimals are tagged instead of turned into floats."""

    def default(self, o):
        if isinstance(o, Decimal):
            return {_DECIMAL_TAG: str(o)}
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return super().default(o)


def _decode_object(obj: dict) -> Any:
    if len(obj) == 1 and _DECIMAL_TAG in obj:
        return Decimal(obj[_DECIMAL_TAG])
    return obj


def dumps(value: Any) -> str:
    return json.dumps(value, cls=_CacheEncoder)


def loads(raw: str) -> Any:
    return json.loads(raw, object_hook=_decode_object)


class CacheService:
    """Cache-aside helper over a redis client."""

    def __init__(self, app: Optional[Flask] = None):
        self.client = None
        self._enabled = False
        self._prefix = 'ebd'
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'ebd')
        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Disabled by CACHE_ENABLED")
            return

        url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        try:
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {url} ({e}); running uncached")
            return
        self.client = client
        self._enabled = True
        logger.info(f"[CACHE] Redis connected: {url}")

    def key(self, tenant_id: int, module: str, key: str) -> str:
        return f"{self._prefix}:tenant:{tenant_id}:{module}:{key}"

    def is_available(self) -> bool:
        if not self._enabled or self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def get(self, tenant_id: int, module: str, key: str) -> Optional[Any]:
        if not self.is_available():
            return None
        try:
            raw = self.client.get(self.key(tenant_id, module, key))
            return loads(raw) if raw is not None else None
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] Read failed for {module}:{key}: {e}")
            return None

    def set(self, tenant_id: int, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.is_available():
            return False
        if ttl is None:
            ttl = current_app.config.get('CACHE_DEFAULT_TTL', 60) if has_app_context() else 60
        try:
            self.client.setex(self.key(tenant_id, module, key), ttl, dumps(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Write failed for {module}:{key}: {e}")
            return False
        return True

    def memoize(self, tenant_id: int, module: str, key: str,
                loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Cached value, or loader_fn() stored for the next caller."""
        cached = self.get(tenant_id, module, key)
        if cached is not None:
            return cached
        value = loader_fn()
        self.set(tenant_id, module, key, value, ttl)
        return value

    def invalidate_module(self, tenant_id: int, module: str) -> int:
        """Drop every key of one tenant/module. Returns the number of keys removed."""
        if not self.is_available():
            return 0
        pattern = self.key(tenant_id, module, '*')
        removed = 0
        try:
            batch = []
            for found in self.client.scan_iter(match=pattern, count=_DELETE_CHUNK):
                batch.append(found)
                if len(batch) == _DELETE_CHUNK:
                    removed += self.client.delete(*batch)
                    batch = []
            if batch:
                removed += self.client.delete(*batch)
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidation of {pattern} failed: {e}")
        if removed:
            logger.info(f"[CACHE] Invalidated {removed} keys under {pattern}")
        return removed


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    if _cache_service is None:
        raise RuntimeError("Cache not initialized")
    return _cache_service


def invalidate_commissions(tenant_id: int) -> None:
    """Called after sales or payout batches change."""
    if _cache_service is not None:
        _cache_service.invalidate_module(tenant_id, COMMISSIONS_MODULE)
