"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Distributed execution gate backed by store leases.

Provides an ``ExclusiveLock`` over one lease store object and a
``CoalescingGate`` that runs protected work at most once at a time per key,
collapsing triggers that arrive mid-run into a single follow-up re-trigger.

Quick start::

    from leasegate import CoalescingGate, InMemoryLeaseStore

    gate = CoalescingGate(InMemoryLeaseStore(), "orders")
    outcome = await gate.run_under_lock(
        order_id,
        lambda: sync_order(order_id),
        lambda: queue.put(order_id),
    )
"""

from .delivery import GatedConsumer
from .errors import (
    TRANSIENT_STORE_ERRORS,
    EnqueueFailedError,
    LeaseConflictError,
    LeaseGateError,
    LeaseLostError,
    LockAcquireTimeoutError,
    ObjectNotFoundError,
    StoreUnavailableError,
)
from .gate import CoalescingGate, GateDecision, GateOutcome, LockState
from .lock import ExclusiveLock, decode_timestamp, encode_timestamp
from .metrics import GATE_COUNTERS, GateMetrics, NoOpGateMetrics, PrometheusGateMetrics
from .settings import GateSettings
from .stores import InMemoryLeaseStore, create_lease_store_from_env
from .types import LeaseStore, LeaseToken, ObjectRef, validate_scope_and_key

__all__ = [
    "LeaseStore",
    "LeaseToken",
    "ObjectRef",
    "validate_scope_and_key",
    "GateSettings",
    "ExclusiveLock",
    "encode_timestamp",
    "decode_timestamp",
    "CoalescingGate",
    "GateDecision",
    "GateOutcome",
    "LockState",
    "GatedConsumer",
    "GateMetrics",
    "GATE_COUNTERS",
    "NoOpGateMetrics",
    "PrometheusGateMetrics",
    "InMemoryLeaseStore",
    "RedisLeaseStore",
    "create_lease_store_from_env",
    "LeaseGateError",
    "StoreUnavailableError",
    "LeaseConflictError",
    "ObjectNotFoundError",
    "LeaseLostError",
    "EnqueueFailedError",
    "LockAcquireTimeoutError",
    "TRANSIENT_STORE_ERRORS",
]


# Lazy import for Redis store
def __getattr__(name: str):
    """Lazily expose optional store backends that require extra dependencies."""
    if name == "RedisLeaseStore":
        from .stores.redis_store import RedisLeaseStore

        return RedisLeaseStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
