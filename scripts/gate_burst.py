#!/usr/bin/env python3
"""
Burst-trigger utility for characterizing gate coalescing.

Fires many triggers for one key at once, drains the re-triggers the gate
issues, and reports how many protected runs actually happened.

Usage examples:
  PYTHONPATH=src python scripts/gate_burst.py --backend inmemory
  PYTHONPATH=src python scripts/gate_burst.py --backend redis --redis-url redis://localhost:6379/0
"""

from __future__ import annotations

import argparse
import asyncio
import time
import uuid
from collections import Counter

from leasegate import (
    CoalescingGate,
    GateSettings,
    InMemoryLeaseStore,
    LeaseStore,
    RedisLeaseStore,
)


async def run_burst(
    *,
    backend: str,
    num_triggers: int,
    work_ms: float,
    latency_ms: float,
    redis_url: str | None,
) -> None:
    if backend == "inmemory":
        store: LeaseStore = InMemoryLeaseStore(latency_s=latency_ms / 1000.0)
    elif backend == "redis":
        if not redis_url:
            raise SystemExit("--redis-url is required for redis backend")
        import redis.asyncio as redis

        store = RedisLeaseStore(
            redis.Redis.from_url(redis_url),
            prefix=f"burst:{uuid.uuid4().hex}",
            owns_client=True,
        )
    else:
        raise SystemExit(f"Unknown backend: {backend}")

    settings = GateSettings(retry_jitter_min_s=0.005, retry_jitter_max_s=0.02)
    gate = CoalescingGate(store, "burst", settings=settings)
    retriggers: asyncio.Queue[int] = asyncio.Queue()
    decisions: Counter[str] = Counter()
    in_flight = 0
    max_in_flight = 0

    async def work() -> None:
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(work_ms / 1000.0)
        in_flight -= 1

    async def trigger() -> None:
        outcome = await gate.run_under_lock("job", work, lambda: retriggers.put_nowait(1))
        decisions[outcome.decision.value] += 1

    started = time.perf_counter()
    await asyncio.gather(*(trigger() for _ in range(num_triggers)))
    replays = 0
    while not retriggers.empty():
        retriggers.get_nowait()
        replays += 1
        await trigger()
    elapsed = time.perf_counter() - started
    await store.close()

    print(f"backend={backend} triggers={num_triggers} replays={replays}")
    print(
        "decisions: "
        + ", ".join(f"{name}={count}" for name, count in sorted(decisions.items()))
    )
    print(f"max_in_flight={max_in_flight} elapsed_s={elapsed:.3f}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Burst-trigger a coalescing gate.")
    parser.add_argument("--backend", choices=["inmemory", "redis"], default="inmemory")
    parser.add_argument("--triggers", type=int, default=50)
    parser.add_argument("--work-ms", type=float, default=200.0)
    parser.add_argument("--latency-ms", type=float, default=1.0)
    parser.add_argument("--redis-url", default=None)
    args = parser.parse_args()

    asyncio.run(
        run_burst(
            backend=args.backend,
            num_triggers=args.triggers,
            work_ms=args.work_ms,
            latency_ms=args.latency_ms,
            redis_url=args.redis_url,
        )
    )


if __name__ == "__main__":
    main()
