"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Lease store backends.
"""

from .factory import create_lease_store_from_env
from .memory import InMemoryLeaseStore

__all__ = [
    "InMemoryLeaseStore",
    "RedisLeaseStore",
    "create_lease_store_from_env",
]


# Lazy import for Redis store
def __getattr__(name: str):
    """Lazily expose optional store backends that require extra dependencies."""
    if name == "RedisLeaseStore":
        from .redis_store import RedisLeaseStore

        return RedisLeaseStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
