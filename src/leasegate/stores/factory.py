"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for selecting lease store backends from environment variables.
"""

from __future__ import annotations

import os
from typing import Any

from ..types import LeaseStore
from .memory import InMemoryLeaseStore


def _env_first(*names: str, default: str | None = None) -> str | None:
    """
    Return the first non-empty environment variable in `names`.

    Args:
        *names: Environment variable names to check in order.
        default: Value returned if no non-empty variable is found.
    """
    for name in names:
        raw = os.getenv(name)
        if raw is None:
            continue
        value = raw.strip()
        if value:
            return value
    return default


def _redis_url_from_env() -> str:
    url = _env_first("LEASEGATE_REDIS_URL")
    if url:
        return url
    host = _env_first("LEASEGATE_REDIS_HOST", default="localhost") or "localhost"
    port = _env_first("LEASEGATE_REDIS_PORT", default="6379") or "6379"
    db = _env_first("LEASEGATE_REDIS_DB", default="0") or "0"
    password = _env_first("LEASEGATE_REDIS_PASSWORD", default="") or ""
    if password:
        return f"redis://:{password}@{host}:{port}/{db}"
    return f"redis://{host}:{port}/{db}"


def create_lease_store_from_env(*, redis_client: Any | None = None) -> LeaseStore:
    """
    Create a lease store backend from `LEASEGATE_STORE_*` environment variables.

    Backends:
    - `inmemory` (default)
    - `redis`

    Redis resolution:
    - Uses the provided `redis_client` when supplied.
    - Otherwise builds a client from `LEASEGATE_REDIS_URL`.
    - If no URL is set, falls back to host/port/db/password variables.
    """
    backend = os.getenv("LEASEGATE_STORE_BACKEND", "inmemory").strip().lower()

    if backend in ("mem", "memory", "inmemory", "in_memory"):
        return InMemoryLeaseStore()

    if backend in ("redis",):
        from .redis_store import RedisLeaseStore

        prefix = _env_first("LEASEGATE_REDIS_PREFIX", default="leasegate") or "leasegate"
        if redis_client is not None:
            return RedisLeaseStore(redis_client, prefix=prefix)

        try:
            import redis.asyncio as redis
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "Redis lease store backend requires `redis` to be installed."
            ) from exc

        client = redis.Redis.from_url(_redis_url_from_env())
        return RedisLeaseStore(client, prefix=prefix, owns_client=True)

    raise ValueError(f"Unknown LEASEGATE_STORE_BACKEND: {backend}")
