"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Redis-backed lease store.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from typing import Any

from redis.exceptions import RedisError

from ..errors import (
    LeaseConflictError,
    LeaseLostError,
    ObjectNotFoundError,
    StoreUnavailableError,
)
from ..types import LeaseStore, LeaseToken, ObjectRef, validate_scope_and_key

logger = logging.getLogger("leasegate.stores.redis")

# KEYS[1]=object, KEYS[2]=lease; ARGV[1]=token, ARGV[2]=ttl ms
_ACQUIRE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return -1
end
if redis.call('SET', KEYS[2], ARGV[1], 'NX', 'PX', ARGV[2]) then
    return 1
end
return 0
"""

# KEYS[1]=lease; ARGV[1]=token
_RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""

# KEYS[1]=object, KEYS[2]=lease; ARGV[1]=token or ''
_READ_SCRIPT = """
if ARGV[1] ~= '' and redis.call('GET', KEYS[2]) ~= ARGV[1] then
    return {-1, ''}
end
local payload = redis.call('GET', KEYS[1])
if not payload then
    return {0, ''}
end
return {1, payload}
"""

# KEYS[1]=object, KEYS[2]=lease; ARGV[1]=token, ARGV[2]=payload
_WRITE_SCRIPT = """
if redis.call('GET', KEYS[2]) ~= ARGV[1] then
    return 0
end
if redis.call('EXISTS', KEYS[1]) == 0 then
    return 0
end
redis.call('SET', KEYS[1], ARGV[2])
return 1
"""

# KEYS[1]=object, KEYS[2]=lease; ARGV[1]=token or ''
_DELETE_SCRIPT = """
local holder = redis.call('GET', KEYS[2])
if holder and holder ~= ARGV[1] then
    return -1
end
redis.call('DEL', KEYS[2])
return redis.call('DEL', KEYS[1])
"""


def _as_int(value: Any) -> int:
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return int(value)


def _as_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


class RedisLeaseStore(LeaseStore):
    """
    Lease store using Redis keys and Lua compare-and-act scripts.

    Uses:
    - Redis set (``{prefix}:containers``) for scope registration
    - Redis string (``{prefix}:obj:{scope}/{key}``) for object payloads
    - Redis string (``{prefix}:lease:{scope}/{key}``) holding the lease token,
      expiring after the lease duration

    Requires ``redis.asyncio`` (``pip install redis``).

    Args:
        redis: An ``redis.asyncio.Redis`` client instance.
        prefix: Key prefix for namespacing.
        owns_client: Close the client in ``close()``.
    """

    def __init__(
        self,
        redis: Any,
        *,
        prefix: str = "leasegate",
        owns_client: bool = False,
    ) -> None:
        self._redis = redis
        self._prefix = prefix
        self._owns_client = owns_client

    def _containers_key(self) -> str:
        """Redis set key storing registered scopes."""
        return f"{self._prefix}:containers"

    def _object_key(self, ref: ObjectRef) -> str:
        """Redis string key storing one object payload."""
        return f"{self._prefix}:obj:{ref.path}"

    def _lease_key(self, ref: ObjectRef) -> str:
        """Redis string key storing the current lease token of one object."""
        return f"{self._prefix}:lease:{ref.path}"

    async def _eval(self, script: str, keys: list[str], args: list[Any]) -> Any:
        try:
            return await self._redis.eval(script, len(keys), *keys, *args)
        except RedisError as exc:
            raise StoreUnavailableError(f"Redis lease store failed: {exc}") from exc

    async def ensure_container(self, scope: str) -> None:
        try:
            await self._redis.sadd(self._containers_key(), scope)
        except RedisError as exc:
            raise StoreUnavailableError(f"Redis lease store failed: {exc}") from exc

    async def ensure_object(self, scope: str, key: str) -> ObjectRef:
        validate_scope_and_key(scope, key)
        ref = ObjectRef(scope=scope, key=key)
        try:
            known = await self._redis.sismember(self._containers_key(), scope)
            if not known:
                raise ObjectNotFoundError(f"Container '{scope}' not found")
            await self._redis.set(self._object_key(ref), b"", nx=True)
        except RedisError as exc:
            raise StoreUnavailableError(f"Redis lease store failed: {exc}") from exc
        return ref

    async def acquire_lease(self, ref: ObjectRef, duration_s: float) -> LeaseToken:
        if duration_s <= 0:
            raise ValueError("duration_s must be > 0")
        token = uuid.uuid4().hex
        ttl_ms = max(1, math.ceil(duration_s * 1000))
        status = _as_int(
            await self._eval(
                _ACQUIRE_SCRIPT,
                [self._object_key(ref), self._lease_key(ref)],
                [token, ttl_ms],
            )
        )
        if status < 0:
            raise ObjectNotFoundError(f"Object '{ref.path}' not found")
        if status == 0:
            raise LeaseConflictError(f"Object '{ref.path}' is already leased")
        return token

    async def release_lease(self, ref: ObjectRef, token: LeaseToken) -> None:
        released = _as_int(await self._eval(_RELEASE_SCRIPT, [self._lease_key(ref)], [token]))
        if released == 0:
            raise LeaseLostError(f"Lease on '{ref.path}' is not held by this token")

    async def read_payload(
        self,
        ref: ObjectRef,
        *,
        token: LeaseToken | None = None,
    ) -> bytes:
        status, payload = await self._eval(
            _READ_SCRIPT,
            [self._object_key(ref), self._lease_key(ref)],
            [token or ""],
        )
        status = _as_int(status)
        if status < 0:
            raise LeaseLostError(f"Lease on '{ref.path}' is not held by this token")
        if status == 0:
            raise ObjectNotFoundError(f"Object '{ref.path}' not found")
        return _as_bytes(payload)

    async def write_payload(
        self,
        ref: ObjectRef,
        data: bytes,
        *,
        token: LeaseToken,
    ) -> None:
        written = _as_int(
            await self._eval(
                _WRITE_SCRIPT,
                [self._object_key(ref), self._lease_key(ref)],
                [token, data],
            )
        )
        if written == 0:
            raise LeaseLostError(f"Lease on '{ref.path}' is not held by this token")

    async def delete_if_exists(
        self,
        ref: ObjectRef,
        *,
        token: LeaseToken | None = None,
    ) -> bool:
        status = _as_int(
            await self._eval(
                _DELETE_SCRIPT,
                [self._object_key(ref), self._lease_key(ref)],
                [token or ""],
            )
        )
        if status < 0:
            raise LeaseConflictError(f"Object '{ref.path}' is leased; not deleted")
        return status > 0

    async def close(self) -> None:
        if not self._owns_client or self._redis is None:
            return
        client = self._redis
        self._redis = None
        close_fn = getattr(client, "aclose", None)
        if callable(close_fn):
            await close_fn()
            return
        # Older redis clients only expose close(), sync or async.
        logger.debug("Redis client has no aclose(); falling back to close()")
        result = client.close()
        if asyncio.iscoroutine(result):
            await result
