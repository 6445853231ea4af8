"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy for lease stores, exclusive locks and the coalescing gate.
"""

from __future__ import annotations


class LeaseGateError(RuntimeError):
    """Base leasegate error."""


class StoreUnavailableError(LeaseGateError):
    """Raised when the lease store cannot be reached or fails unexpectedly."""


class LeaseConflictError(LeaseGateError):
    """Raised when another holder already owns the lease on an object."""


class ObjectNotFoundError(LeaseGateError):
    """Raised when an object or its container vanished under the caller."""


class LeaseLostError(LeaseGateError):
    """Raised when a presented lease token no longer holds the lease."""


class EnqueueFailedError(LeaseGateError):
    """Raised when a re-trigger callback could not re-inject its event."""


class LockAcquireTimeoutError(LeaseGateError, TimeoutError):
    """Raised when lease acquisition exceeds the caller's deadline."""


# Acquisition retries these with jittered backoff; everything else is fatal.
TRANSIENT_STORE_ERRORS: tuple[type[LeaseGateError], ...] = (
    LeaseConflictError,
    ObjectNotFoundError,
)
