"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Gate settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True, slots=True)
class GateSettings:
    """
    Timing policy for exclusive locks and the coalescing gate.

    Attributes:
        lease_duration_s: Store lease duration. Only guards the short
            decision/bookkeeping steps, never the protected work.
        staleness_threshold_s: Maximum age of a lock timestamp before its
            holder is presumed dead.
        retry_jitter_min_s: Lower bound of the sleep between acquire attempts.
        retry_jitter_max_s: Upper bound of the sleep between acquire attempts.
        acquire_timeout_s: Optional deadline for one acquisition;
            ``None`` retries until the lease is obtained.
        lock_suffix: Key suffix of the lock resource.
        flag_suffix: Key suffix of the pending re-run flag resource.
        log_lock_events: Emit per-lock debug logging.
    """

    lease_duration_s: float = 15.0
    staleness_threshold_s: float = 15 * 60.0
    retry_jitter_min_s: float = 0.25
    retry_jitter_max_s: float = 1.0
    acquire_timeout_s: float | None = None
    lock_suffix: str = "-lock"
    flag_suffix: str = "-flag"
    log_lock_events: bool = True

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ``ValueError`` on inconsistent timing values."""
        if self.lease_duration_s <= 0:
            raise ValueError("lease_duration_s must be > 0")
        if self.staleness_threshold_s <= 0:
            raise ValueError("staleness_threshold_s must be > 0")
        if self.retry_jitter_min_s < 0:
            raise ValueError("retry_jitter_min_s must be >= 0")
        if self.retry_jitter_max_s < self.retry_jitter_min_s:
            raise ValueError("retry_jitter_max_s must be >= retry_jitter_min_s")
        if self.acquire_timeout_s is not None and self.acquire_timeout_s <= 0:
            raise ValueError("acquire_timeout_s must be > 0 when set")
        if not self.lock_suffix or not self.flag_suffix:
            raise ValueError("lock_suffix and flag_suffix must be non-empty")
        if self.lock_suffix == self.flag_suffix:
            raise ValueError("lock_suffix and flag_suffix must differ")

    @staticmethod
    def from_env() -> "GateSettings":
        """Load settings from environment variables."""
        return GateSettings(
            lease_duration_s=float(os.getenv("LEASEGATE_LEASE_DURATION_S", "15")),
            staleness_threshold_s=float(
                os.getenv("LEASEGATE_STALENESS_THRESHOLD_S", "900")
            ),
            retry_jitter_min_s=float(
                os.getenv("LEASEGATE_RETRY_JITTER_MIN_S", "0.25")
            ),
            retry_jitter_max_s=float(os.getenv("LEASEGATE_RETRY_JITTER_MAX_S", "1.0")),
            acquire_timeout_s=_env_optional_float("LEASEGATE_ACQUIRE_TIMEOUT_S"),
            log_lock_events=_env_flag("LEASEGATE_LOG_LOCK_EVENTS", True),
        )
