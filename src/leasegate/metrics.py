"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for gate observability.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class GateMetrics(Protocol):
    """Minimal metrics interface for gate instrumentation."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""


class NoOpGateMetrics:
    """Default metrics sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = name
        _ = value
        _ = tags


# name -> (help text, label names)
GATE_COUNTERS: dict[str, tuple[str, tuple[str, ...]]] = {
    "decisions_total": ("Phase A decisions by outcome.", ("decision",)),
    "retriggers_total": ("Re-triggers issued by reason.", ("reason",)),
    "retrigger_failures_total": ("Re-triggers that failed by reason.", ("reason",)),
    "flags_set_total": ("Re-run flags set by deferred triggers.", ()),
    "flags_consumed_total": ("Re-run flags consumed by Phase B.", ()),
    "protected_failures_total": ("Protected logic runs that raised.", ()),
}


class PrometheusGateMetrics:
    """
    Prometheus-backed gate metrics adapter.

    Registers one counter per entry of ``GATE_COUNTERS`` up front, so every
    series is exported (at zero) before the first trigger arrives.
    """

    def __init__(self, *, namespace: str = "leasegate", registry: Any | None = None) -> None:
        try:
            from prometheus_client import REGISTRY, Counter
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "PrometheusGateMetrics requires `prometheus_client` to be installed."
            ) from exc

        target = registry if registry is not None else REGISTRY
        self._counters: dict[str, Any] = {
            name: Counter(
                name=name,
                documentation=documentation,
                namespace=namespace,
                labelnames=label_names,
                registry=target,
            )
            for name, (documentation, label_names) in GATE_COUNTERS.items()
        }

    def incr(self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None) -> None:
        counter = self._counters.get(name)
        if counter is None:
            raise ValueError(f"Unknown gate metric '{name}'")
        _, label_names = GATE_COUNTERS[name]
        if not label_names:
            counter.inc(value)
            return
        tags = tags or {}
        missing = [label for label in label_names if label not in tags]
        if missing:
            raise ValueError(f"Gate metric '{name}' requires labels {missing}")
        counter.labels(*(str(tags[label]) for label in label_names)).inc(value)
