"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Exclusive lock over one lease store object.

The store lease only guards a handful of round-trips (read, write or clear
the timestamp, then release or delete), so its duration stays short no
matter how long the work protected by the surrounding gate runs.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone
from types import TracebackType
from typing import Any

from .errors import (
    TRANSIENT_STORE_ERRORS,
    LeaseConflictError,
    LeaseGateError,
    LeaseLostError,
    LockAcquireTimeoutError,
    ObjectNotFoundError,
)
from .settings import GateSettings
from .types import LeaseStore, LeaseToken, ObjectRef, validate_scope_and_key

logger = logging.getLogger("leasegate.lock")


def encode_timestamp(value: datetime) -> bytes:
    """Encode one instant as an ISO-8601 UTC payload."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().encode("utf-8")


def decode_timestamp(raw: bytes | str | None) -> datetime | None:
    """
    Decode a timestamp payload.

    Empty or unparseable payloads decode to ``None``; naive values are
    interpreted as UTC.
    """
    if raw is None:
        return None
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    text = text.strip()
    if not text:
        return None
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _LockLogAdapter(logging.LoggerAdapter):
    """Prefix lock log lines with the lock path; silenced when disabled."""

    def __init__(self, base: logging.Logger, path: str, *, enabled: bool) -> None:
        super().__init__(base, {"lock_path": path})
        self._enabled = enabled

    def isEnabledFor(self, level: int) -> bool:
        return self._enabled and super().isEnabledFor(level)

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        return f"ExclusiveLock({self.extra['lock_path']}) - {msg}", kwargs


class ExclusiveLock:
    """
    Lease-backed exclusive lock on ``scope/key``.

    Use as an async context manager; the lease is released on every exit
    path::

        async with ExclusiveLock(store, "orders", "42-lock") as lock:
            if await lock.read_timestamp() is None:
                await lock.write_timestamp()

    Acquisition retries lease contention and not-found races forever (or until
    ``acquire_timeout_s``), sleeping a random jittered interval between
    attempts. Any other store error aborts acquisition.
    """

    def __init__(
        self,
        store: LeaseStore,
        scope: str,
        key: str,
        *,
        settings: GateSettings | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        validate_scope_and_key(scope, key)
        self._store = store
        self._scope = scope
        self._key = key
        self._settings = settings or GateSettings()
        self._log = _LockLogAdapter(
            log or logger,
            f"{scope}/{key}",
            enabled=self._settings.log_lock_events,
        )
        self._ref: ObjectRef | None = None
        self._token: LeaseToken | None = None
        self._delete_on_release = False
        self.attempts = 0

    @property
    def path(self) -> str:
        return f"{self._scope}/{self._key}"

    @property
    def is_held(self) -> bool:
        """Whether this instance currently holds the lease."""
        return self._token is not None

    @property
    def delete_on_release(self) -> bool:
        return self._delete_on_release

    async def __aenter__(self) -> ExclusiveLock:
        return await self.acquire()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.release()

    async def acquire(self, *, timeout_s: float | None = None) -> ExclusiveLock:
        """
        Block until the lease is obtained.

        Args:
            timeout_s: Deadline override; defaults to ``acquire_timeout_s``.

        Raises:
            LockAcquireTimeoutError: The deadline elapsed first.
            StoreUnavailableError: The store failed with a non-transient error.
        """
        if self._token is not None:
            raise RuntimeError(f"ExclusiveLock({self.path}) is already held")
        self._delete_on_release = False
        self.attempts = 0
        deadline = timeout_s if timeout_s is not None else self._settings.acquire_timeout_s
        self._log.debug("Acquire starts.")
        try:
            if deadline is None:
                await self._acquire_loop()
            else:
                await asyncio.wait_for(self._acquire_loop(), timeout=deadline)
        except asyncio.TimeoutError as exc:
            await self._abandon()
            raise LockAcquireTimeoutError(
                f"ExclusiveLock({self.path}) not acquired within {deadline:.3f}s "
                f"({self.attempts} attempt(s))"
            ) from exc
        except asyncio.CancelledError:
            await self._abandon()
            raise
        return self

    async def _acquire_loop(self) -> None:
        while True:
            self.attempts += 1
            try:
                await self._store.ensure_container(self._scope)
                ref = await self._store.ensure_object(self._scope, self._key)
                token = await self._store.acquire_lease(
                    ref, self._settings.lease_duration_s
                )
            except TRANSIENT_STORE_ERRORS as exc:
                delay_s = random.uniform(
                    self._settings.retry_jitter_min_s,
                    self._settings.retry_jitter_max_s,
                )
                self._log.debug(
                    "Attempt %d failed (%s); sleeping %.0f ms.",
                    self.attempts,
                    type(exc).__name__,
                    delay_s * 1000,
                )
                await asyncio.sleep(delay_s)
                continue

            self._ref = ref
            self._token = token
            self._log.debug("Lease acquired after %d attempt(s).", self.attempts)
            return

    async def _abandon(self) -> None:
        """Drop a lease obtained by an acquisition that is being aborted."""
        if self._token is None:
            return
        self._delete_on_release = False
        await self.release()

    def _require_held(self) -> tuple[ObjectRef, LeaseToken]:
        if self._ref is None or self._token is None:
            raise LeaseLostError(f"ExclusiveLock({self.path}) is not held")
        return self._ref, self._token

    async def read_timestamp(self) -> datetime | None:
        """Read the timestamp payload under the held lease."""
        ref, token = self._require_held()
        raw = await self._store.read_payload(ref, token=token)
        value = decode_timestamp(raw)
        if value is None:
            self._log.debug("Timestamp not set.")
        else:
            self._log.debug("Timestamp is '%s'.", value.isoformat())
        return value

    async def write_timestamp(self, now: datetime | None = None) -> datetime:
        """
        Write ``now`` (default: current UTC time) under the held lease.

        Raises:
            LeaseLostError: The lease was lost since acquisition.
        """
        ref, token = self._require_held()
        value = now or datetime.now(timezone.utc)
        await self._store.write_payload(ref, encode_timestamp(value), token=token)
        self._log.debug("Timestamp set to '%s'.", value.isoformat())
        return value

    async def clear_timestamp(self) -> None:
        """Reset the payload to empty under the held lease."""
        ref, token = self._require_held()
        await self._store.write_payload(ref, b"", token=token)
        self._log.debug("Timestamp cleared.")

    def mark_delete_on_release(self) -> None:
        """Delete the underlying object, still under the lease, on release."""
        self._delete_on_release = True
        self._log.debug("Marked for deletion on release.")

    async def release(self) -> None:
        """
        Release the lease; safe to call more than once.

        A lease that is already gone is not an error. Other release failures
        and the optional delete are best-effort and only logged. A delete
        runs under the held lease, so the lease ends together with the object.
        """
        ref, token = self._ref, self._token
        if ref is None or token is None:
            return
        self._token = None

        if self._delete_on_release:
            self._delete_on_release = False
            try:
                deleted = await self._store.delete_if_exists(ref, token=token)
            except LeaseConflictError as exc:
                # Our lease lapsed and another worker leased the object.
                logger.warning(
                    "ExclusiveLock(%s) delete skipped, lease is held elsewhere: %s",
                    ref.path,
                    exc,
                )
                return
            except LeaseGateError as exc:
                logger.warning(
                    "ExclusiveLock(%s) delete failed, releasing lease only: %s",
                    ref.path,
                    exc,
                )
            else:
                self._log.debug(
                    "Object deleted with its lease." if deleted else "Object already absent."
                )
                return

        try:
            await self._store.release_lease(ref, token)
            self._log.debug("Lease released.")
        except (LeaseLostError, ObjectNotFoundError):
            self._log.debug("Lease was already gone.")
        except LeaseGateError as exc:
            logger.warning(
                "ExclusiveLock(%s) lease release failed, lease will lapse: %s",
                ref.path,
                exc,
            )

