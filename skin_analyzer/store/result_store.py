from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from typing import Any, Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from skin_analyzer.models import AnalysisResult

logger = logging.getLogger("skin-analyzer.result-store")


class ResultStore(Protocol):
    async def get(self, session_id: str) -> Optional[AnalysisResult]: ...

    async def put(self, result: AnalysisResult, *, ttl_days: Optional[float] = None) -> None: ...

    async def close(self) -> None: ...


def _normalize_session_id(session_id: str) -> str:
    if not isinstance(session_id, str):
        raise TypeError("session_id must be a string")
    normalized = session_id.strip()
    if not normalized:
        raise ValueError("session_id must be non-empty")
    if len(normalized) > 200:
        raise ValueError("session_id too long")
    return normalized


def _coerce_ttl_seconds(ttl_days: Optional[float], default_ttl_days: float) -> float:
    days = default_ttl_days if ttl_days is None else float(ttl_days)
    if days <= 0:
        return 0.0
    return days * 86400.0


def _result_to_json(result: AnalysisResult) -> str:
    return json.dumps(result.to_payload(), ensure_ascii=False, separators=(",", ":"), sort_keys=True)


class InMemoryResultStore(ResultStore):
    def __init__(self, *, default_ttl_days: float = 1.0, max_items: int = 10_000) -> None:
        self._default_ttl_days = default_ttl_days
        self._max_items = max(1, int(max_items))
        self._lock = asyncio.Lock()
        self._items: dict[str, tuple[dict[str, Any], Optional[float]]] = {}

    def _prune(self, now: float) -> None:
        # Caller holds the lock.
        expired = [key for key, (_, expires_at) in self._items.items() if expires_at is not None and now >= expires_at]
        for key in expired:
            self._items.pop(key, None)
        # Insertion order: the oldest results go first.
        while len(self._items) >= self._max_items:
            self._items.pop(next(iter(self._items)))

    async def get(self, session_id: str) -> Optional[AnalysisResult]:
        key = _normalize_session_id(session_id)
        async with self._lock:
            record = self._items.get(key)
            if not record:
                return None
            data, expires_at = record
            if expires_at is not None and time.monotonic() >= expires_at:
                self._items.pop(key, None)
                return None
            return AnalysisResult.model_validate(data)

    async def put(self, result: AnalysisResult, *, ttl_days: Optional[float] = None) -> None:
        key = _normalize_session_id(result.session_id)
        ttl_seconds = _coerce_ttl_seconds(ttl_days, self._default_ttl_days)
        now = time.monotonic()
        expires_at = None if ttl_seconds <= 0 else (now + ttl_seconds)
        async with self._lock:
            self._items.pop(key, None)
            self._prune(now)
            self._items[key] = (result.to_payload(), expires_at)

    async def close(self) -> None:
        return None


class RedisResultStore(ResultStore):
    def __init__(
        self,
        *,
        redis_url: str,
        default_ttl_days: float = 1.0,
        connect_timeout_s: float = 1.0,
        socket_timeout_s: float = 1.0,
        key_prefix: str = "skin_analysis",
    ) -> None:
        self._default_ttl_days = default_ttl_days
        self._key_prefix = key_prefix.strip(":") or "skin_analysis"
        self._redis = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=connect_timeout_s,
            socket_timeout=socket_timeout_s,
        )

    async def ping(self) -> None:
        await self._redis.ping()

    def _key(self, session_id: str) -> str:
        return f"{self._key_prefix}:{_normalize_session_id(session_id)}"

    async def get(self, session_id: str) -> Optional[AnalysisResult]:
        raw = await self._redis.get(self._key(session_id))
        if not raw:
            return None
        try:
            obj = json.loads(raw)
        except Exception:
            logger.warning("redis_result_parse_failed session_id=%s", session_id)
            return None
        if not isinstance(obj, dict):
            return None
        return AnalysisResult.model_validate(obj)

    async def put(self, result: AnalysisResult, *, ttl_days: Optional[float] = None) -> None:
        ttl_seconds = _coerce_ttl_seconds(ttl_days, self._default_ttl_days)
        ttl_seconds_int = int(max(1.0, ttl_seconds)) if ttl_seconds > 0 else 0
        value = _result_to_json(result)
        if ttl_seconds_int > 0:
            await self._redis.set(self._key(result.session_id), value, ex=ttl_seconds_int)
        else:
            await self._redis.set(self._key(result.session_id), value)

    async def close(self) -> None:
        try:
            await self._redis.aclose()
        except RedisError:
            pass


class PersistentResultStore(ResultStore):
    """Redis when `REDIS_URL` answers, in-memory otherwise (and after any Redis error)."""

    def __init__(
        self,
        *,
        redis_url: Optional[str] = None,
        default_ttl_days: float = 1.0,
        connect_timeout_s: float = 1.0,
        socket_timeout_s: float = 1.0,
        key_prefix: str = "skin_analysis",
    ) -> None:
        self._redis_url = redis_url
        self._default_ttl_days = default_ttl_days
        self._connect_timeout_s = connect_timeout_s
        self._socket_timeout_s = socket_timeout_s
        self._key_prefix = key_prefix
        self._backend: ResultStore = InMemoryResultStore(default_ttl_days=default_ttl_days)
        self._backend_kind = "memory"

    @property
    def backend_kind(self) -> str:
        return self._backend_kind

    async def initialize(self) -> None:
        redis_url = (self._redis_url or os.getenv("REDIS_URL") or "").strip() or None
        if not redis_url:
            self._backend = InMemoryResultStore(default_ttl_days=self._default_ttl_days)
            self._backend_kind = "memory"
            logger.info("result_store_backend=memory reason=missing_REDIS_URL")
            return

        try:
            redis_backend = RedisResultStore(
                redis_url=redis_url,
                default_ttl_days=self._default_ttl_days,
                connect_timeout_s=self._connect_timeout_s,
                socket_timeout_s=self._socket_timeout_s,
                key_prefix=self._key_prefix,
            )
            await redis_backend.ping()
        except (RedisError, OSError, ValueError) as exc:
            self._backend = InMemoryResultStore(default_ttl_days=self._default_ttl_days)
            self._backend_kind = "memory"
            logger.warning("result_store_backend=memory reason=redis_unavailable err=%s", exc)
            return

        self._backend = redis_backend
        self._backend_kind = "redis"
        logger.info("result_store_backend=redis")

    async def get(self, session_id: str) -> Optional[AnalysisResult]:
        try:
            return await self._backend.get(session_id)
        except RedisError as exc:
            logger.warning("result_store_get_failed backend=%s err=%s", self._backend_kind, exc)
            await self._fallback_to_memory(reason="redis_error")
            return None

    async def put(self, result: AnalysisResult, *, ttl_days: Optional[float] = None) -> None:
        try:
            await self._backend.put(result, ttl_days=ttl_days)
        except RedisError as exc:
            logger.warning("result_store_put_failed backend=%s err=%s", self._backend_kind, exc)
            await self._fallback_to_memory(reason="redis_error")
            await self._backend.put(result, ttl_days=ttl_days)

    async def _fallback_to_memory(self, *, reason: str) -> None:
        if self._backend_kind == "memory":
            return
        await self._backend.close()
        self._backend = InMemoryResultStore(default_ttl_days=self._default_ttl_days)
        self._backend_kind = "memory"
        logger.warning("result_store_backend=memory reason=%s", reason)

    async def close(self) -> None:
        await self._backend.close()
