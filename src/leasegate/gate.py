"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Coalescing gate: run, defer or re-trigger protected work under a lease lock.

Each unit of work ``(scope, key)`` owns two store objects:

- ``{key}-lock`` holds the start timestamp of the run in progress.
- ``{key}-flag`` exists while a re-run was requested during that run.

Phase A (``decide``) inspects the lock timestamp under a short lease and
returns a ``GateDecision``. Only ``RUN`` executes the protected logic, which
happens with no lease held. Phase B (``complete``) reads and clears the flag
while holding the lock lease, then deletes the lock so the next trigger finds
it empty.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from .errors import EnqueueFailedError
from .lock import ExclusiveLock
from .metrics import GateMetrics, NoOpGateMetrics
from .settings import GateSettings
from .types import LeaseStore, require_non_empty

logger = logging.getLogger("leasegate.gate")


# Protected logic and re-trigger callbacks may be sync or async.
GateCallback = Callable[[], Any]


class GateDecision(str, Enum):
    """Terminal decision of Phase A."""

    RUN = "run"
    DEFER = "defer"
    RETRY = "retry"


class LockState(str, Enum):
    """Observed state of the lock resource."""

    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class GateOutcome:
    """
    Result of one ``run_under_lock`` invocation.

    Attributes:
        decision: Phase A decision taken for this trigger.
        result: Protected logic return value (``RUN`` only).
        retriggered: Whether this invocation re-injected a trigger.
    """

    decision: GateDecision
    result: Any = None
    retriggered: bool = False

    @property
    def ran(self) -> bool:
        return self.decision is GateDecision.RUN


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def _invoke(fn: GateCallback) -> Any:
    """Call a callback, awaiting its result when it is awaitable."""
    result = fn()
    if inspect.isawaitable(result):
        return await result
    return result


class CoalescingGate:
    """
    Distributed execution gate for one scope.

    Guarantees at most one protected-logic execution per key at a time, and
    collapses any number of triggers that arrive during an execution into a
    single follow-up re-trigger.
    """

    def __init__(
        self,
        store: LeaseStore,
        scope: str,
        *,
        settings: GateSettings | None = None,
        metrics: GateMetrics | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._scope = require_non_empty("scope", scope)
        self._settings = settings or GateSettings()
        self._metrics: GateMetrics = metrics or NoOpGateMetrics()
        self._clock = clock or _utc_now

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def settings(self) -> GateSettings:
        return self._settings

    def lock_key(self, key: str) -> str:
        return f"{require_non_empty('key', key)}{self._settings.lock_suffix}"

    def flag_key(self, key: str) -> str:
        return f"{require_non_empty('key', key)}{self._settings.flag_suffix}"

    def _lock(self, name: str) -> ExclusiveLock:
        return ExclusiveLock(self._store, self._scope, name, settings=self._settings)

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now

    def classify(self, timestamp: datetime | None) -> LockState:
        """Map a lock timestamp to EMPTY, FRESH or STALE."""
        if timestamp is None:
            return LockState.EMPTY
        age = self._now() - timestamp
        if age > timedelta(seconds=self._settings.staleness_threshold_s):
            return LockState.STALE
        # Future timestamps (clock skew) count as fresh.
        return LockState.FRESH

    async def decide(self, key: str, retrigger: GateCallback) -> GateDecision:
        """
        Phase A: decide whether this trigger runs, defers or restarts.

        - EMPTY lock: stamp it and return ``RUN``.
        - FRESH lock: set the re-run flag and return ``DEFER``.
        - STALE lock: delete it, invoke ``retrigger`` and return ``RETRY``.

        Raises:
            EnqueueFailedError: The stale-recovery re-trigger failed.
        """
        path = f"{self._scope}/{key}"
        async with self._lock(self.lock_key(key)) as lock:
            timestamp = await lock.read_timestamp()
            state = self.classify(timestamp)
            if state is LockState.EMPTY:
                await lock.write_timestamp(self._now())
                decision = GateDecision.RUN
            elif state is LockState.FRESH:
                # Flag is written while the lock lease is held, so a
                # concurrent Phase B cannot clear it unseen.
                await self._set_flag(key)
                decision = GateDecision.DEFER
            else:
                await lock.clear_timestamp()
                lock.mark_delete_on_release()
                decision = GateDecision.RETRY

        self._metrics.incr("decisions_total", tags={"decision": decision.value})
        logger.info(
            "Gate decision for %s: %s (lock state=%s, timestamp=%s)",
            path,
            decision.value,
            state.value,
            timestamp.isoformat() if timestamp else None,
        )
        if decision is GateDecision.RETRY:
            await self._retrigger(key, retrigger, reason="stale")
        return decision

    async def _set_flag(self, key: str) -> None:
        async with self._lock(self.flag_key(key)) as flag:
            await flag.write_timestamp(self._now())
        self._metrics.incr("flags_set_total")
        logger.info("Re-run flag set for %s/%s", self._scope, key)

    async def complete(self, key: str) -> bool:
        """
        Phase B: consume the re-run flag and reset the lock to empty.

        The flag is read and cleared under the same lock acquisition that
        deletes the lock.

        Returns:
            Whether a re-run was requested during the execution.
        """
        async with self._lock(self.lock_key(key)) as lock:
            async with self._lock(self.flag_key(key)) as flag:
                flag_set = await flag.read_timestamp() is not None
                if flag_set:
                    await flag.clear_timestamp()
                flag.mark_delete_on_release()
            # Any worker that leases the lock after this point reads it empty.
            await lock.clear_timestamp()
            lock.mark_delete_on_release()

        if flag_set:
            self._metrics.incr("flags_consumed_total")
        logger.info(
            "Gate completed for %s/%s (re-run requested=%s)",
            self._scope,
            key,
            flag_set,
        )
        return flag_set

    async def _retrigger(self, key: str, retrigger: GateCallback, *, reason: str) -> None:
        logger.info("Re-triggering %s/%s (reason=%s)", self._scope, key, reason)
        try:
            await _invoke(retrigger)
        except EnqueueFailedError:
            self._metrics.incr("retrigger_failures_total", tags={"reason": reason})
            raise
        except Exception as exc:
            self._metrics.incr("retrigger_failures_total", tags={"reason": reason})
            raise EnqueueFailedError(
                f"Re-trigger for '{self._scope}/{key}' failed: {exc}"
            ) from exc
        self._metrics.incr("retriggers_total", tags={"reason": reason})

    async def run_under_lock(
        self,
        key: str,
        protected_logic: GateCallback,
        retrigger: GateCallback,
    ) -> GateOutcome:
        """
        Run ``protected_logic`` unless another worker is already running it.

        Args:
            key: Unit-of-work identifier within this gate's scope.
            protected_logic: The work to protect (sync or async callable).
            retrigger: Re-injects an equivalent trigger into the delivery
                system (sync or async callable).

        Returns:
            Outcome describing the decision and protected-logic result.

        Raises:
            EnqueueFailedError: A required re-trigger failed.
            Exception: Protected-logic failures propagate unchanged once the
                gate has finished its bookkeeping.
        """
        decision = await self.decide(key, retrigger)
        if decision is not GateDecision.RUN:
            return GateOutcome(
                decision=decision,
                retriggered=decision is GateDecision.RETRY,
            )

        logger.debug("Protected logic starts for %s/%s", self._scope, key)
        try:
            result = await _invoke(protected_logic)
        except (Exception, asyncio.CancelledError) as exc:
            if not isinstance(exc, asyncio.CancelledError):
                self._metrics.incr("protected_failures_total")
            logger.warning(
                "Protected logic for %s/%s ended with %s; finishing bookkeeping",
                self._scope,
                key,
                type(exc).__name__,
            )
            await self._complete_after_failure(key, retrigger)
            raise
        logger.debug("Protected logic ends for %s/%s", self._scope, key)

        retriggered = False
        if await self.complete(key):
            await self._retrigger(key, retrigger, reason="coalesced")
            retriggered = True
        return GateOutcome(decision=decision, result=result, retriggered=retriggered)

    async def _complete_after_failure(self, key: str, retrigger: GateCallback) -> None:
        """Phase B for a failed run; never replaces the original exception."""
        try:
            flag_set = await self.complete(key)
            if flag_set:
                await self._retrigger(key, retrigger, reason="coalesced")
        except Exception:  # noqa: BLE001
            logger.exception(
                "Gate bookkeeping for %s/%s failed after protected logic failure",
                self._scope,
                key,
            )
