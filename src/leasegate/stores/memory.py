"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

In-memory lease store implementation.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from ..errors import LeaseConflictError, LeaseLostError, ObjectNotFoundError
from ..types import LeaseStore, LeaseToken, ObjectRef, validate_scope_and_key

_OPERATIONS = frozenset(
    {
        "ensure_container",
        "ensure_object",
        "acquire_lease",
        "release_lease",
        "read_payload",
        "write_payload",
        "delete_if_exists",
    }
)


@dataclass(slots=True)
class _StoredObject:
    payload: bytes = b""
    lease_token: LeaseToken | None = None
    lease_expires_at: float = 0.0


class InMemoryLeaseStore(LeaseStore):
    """
    In-process lease store using dict-based tracking.

    Suitable for single-process systems and testing. Leases expire according
    to ``clock`` (``time.monotonic`` by default), so tests can drive expiry
    with a fake clock. ``latency_s`` simulates a store round-trip per call.
    State is lost on process restart.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        latency_s: float = 0.0,
    ) -> None:
        if latency_s < 0:
            raise ValueError("latency_s must be >= 0")
        self._clock = clock
        self._latency_s = latency_s
        self._containers: set[str] = set()
        self._objects: dict[ObjectRef, _StoredObject] = {}
        self._faults: dict[str, list[BaseException]] = {}

    def fail_next(self, operation: str, error: BaseException) -> None:
        """Make the next call of ``operation`` raise ``error``."""
        if operation not in _OPERATIONS:
            raise ValueError(f"Unknown lease store operation '{operation}'")
        self._faults.setdefault(operation, []).append(error)

    async def _enter(self, operation: str) -> None:
        # Every call yields to the event loop, like a network round-trip.
        await asyncio.sleep(self._latency_s)
        pending = self._faults.get(operation)
        if pending:
            raise pending.pop(0)

    def _active_token(self, obj: _StoredObject) -> LeaseToken | None:
        if obj.lease_token is None:
            return None
        if self._clock() >= obj.lease_expires_at:
            obj.lease_token = None
            return None
        return obj.lease_token

    async def ensure_container(self, scope: str) -> None:
        await self._enter("ensure_container")
        self._containers.add(scope)

    async def ensure_object(self, scope: str, key: str) -> ObjectRef:
        await self._enter("ensure_object")
        validate_scope_and_key(scope, key)
        if scope not in self._containers:
            raise ObjectNotFoundError(f"Container '{scope}' not found")
        ref = ObjectRef(scope=scope, key=key)
        self._objects.setdefault(ref, _StoredObject())
        return ref

    async def acquire_lease(self, ref: ObjectRef, duration_s: float) -> LeaseToken:
        await self._enter("acquire_lease")
        if duration_s <= 0:
            raise ValueError("duration_s must be > 0")
        obj = self._objects.get(ref)
        if obj is None:
            raise ObjectNotFoundError(f"Object '{ref.path}' not found")
        if self._active_token(obj) is not None:
            raise LeaseConflictError(f"Object '{ref.path}' is already leased")
        token = uuid.uuid4().hex
        obj.lease_token = token
        obj.lease_expires_at = self._clock() + duration_s
        return token

    async def release_lease(self, ref: ObjectRef, token: LeaseToken) -> None:
        await self._enter("release_lease")
        obj = self._objects.get(ref)
        if obj is None:
            raise ObjectNotFoundError(f"Object '{ref.path}' not found")
        if self._active_token(obj) != token:
            raise LeaseLostError(f"Lease on '{ref.path}' is not held by this token")
        obj.lease_token = None
        obj.lease_expires_at = 0.0

    async def read_payload(
        self,
        ref: ObjectRef,
        *,
        token: LeaseToken | None = None,
    ) -> bytes:
        await self._enter("read_payload")
        obj = self._objects.get(ref)
        if obj is None:
            raise ObjectNotFoundError(f"Object '{ref.path}' not found")
        if token is not None and self._active_token(obj) != token:
            raise LeaseLostError(f"Lease on '{ref.path}' is not held by this token")
        return obj.payload

    async def write_payload(
        self,
        ref: ObjectRef,
        data: bytes,
        *,
        token: LeaseToken,
    ) -> None:
        await self._enter("write_payload")
        obj = self._objects.get(ref)
        if obj is None or self._active_token(obj) != token:
            raise LeaseLostError(f"Lease on '{ref.path}' is not held by this token")
        obj.payload = bytes(data)

    async def delete_if_exists(
        self,
        ref: ObjectRef,
        *,
        token: LeaseToken | None = None,
    ) -> bool:
        await self._enter("delete_if_exists")
        obj = self._objects.get(ref)
        if obj is None:
            return False
        active = self._active_token(obj)
        if active is not None and active != token:
            raise LeaseConflictError(f"Object '{ref.path}' is leased; not deleted")
        del self._objects[ref]
        return True

    def exists(self, ref: ObjectRef) -> bool:
        """Whether the object is currently stored."""
        return ref in self._objects

    def payload(self, ref: ObjectRef) -> bytes | None:
        """Return the stored payload without lease checks, or ``None``."""
        obj = self._objects.get(ref)
        return None if obj is None else obj.payload

    def expire_lease(self, ref: ObjectRef) -> None:
        """Force the lease on ``ref`` to lapse, as if its holder crashed."""
        obj = self._objects.get(ref)
        if obj is not None:
            obj.lease_token = None
            obj.lease_expires_at = 0.0

    @property
    def object_count(self) -> int:
        """Total number of stored objects."""
        return len(self._objects)
