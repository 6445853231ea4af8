"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Lease store types and abstract base.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

LeaseToken = str


@dataclass(frozen=True, slots=True)
class ObjectRef:
    """
    Address of one leasable object in a store.

    Attributes:
        scope: Namespace (container) the object lives in.
        key: Object name inside the scope.
    """

    scope: str
    key: str

    @property
    def path(self) -> str:
        """Human-readable ``scope/key`` path."""
        return f"{self.scope}/{self.key}"


def require_non_empty(name: str, value: str) -> str:
    """Return ``value`` unchanged, raising ``ValueError`` when empty or blank."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value


def validate_scope_and_key(scope: str, key: str) -> None:
    """Reject empty or blank scope/key values."""
    require_non_empty("scope", scope)
    require_non_empty("key", key)


# ---------------------------------------------------------------------------
# Store abstract base
# ---------------------------------------------------------------------------


class LeaseStore(ABC):
    """
    Object store exposing short, exclusive per-object leases.

    Implementations enforce mutual exclusion: while one token holds the lease
    on an object, ``acquire_lease`` on that object fails for everyone else.
    """

    @abstractmethod
    async def ensure_container(self, scope: str) -> None:
        """Create the namespace for ``scope`` when it does not exist yet."""
        ...

    @abstractmethod
    async def ensure_object(self, scope: str, key: str) -> ObjectRef:
        """
        Create an empty object when absent.

        Returns:
            Reference to the object, whether or not it was created by this call.
        """
        ...

    @abstractmethod
    async def acquire_lease(self, ref: ObjectRef, duration_s: float) -> LeaseToken:
        """
        Acquire an exclusive lease on one object.

        Args:
            ref: Object to lease.
            duration_s: Lease duration; the store frees the lease afterwards.

        Returns:
            Opaque lease token.

        Raises:
            LeaseConflictError: Another token currently holds the lease.
            ObjectNotFoundError: The object (or its container) is missing.
            StoreUnavailableError: The store failed.
        """
        ...

    @abstractmethod
    async def release_lease(self, ref: ObjectRef, token: LeaseToken) -> None:
        """
        Release a held lease.

        Raises:
            LeaseLostError: The token no longer holds the lease.
        """
        ...

    @abstractmethod
    async def read_payload(
        self,
        ref: ObjectRef,
        *,
        token: LeaseToken | None = None,
    ) -> bytes:
        """
        Read the object payload.

        When ``token`` is given the read fails with ``LeaseLostError`` unless
        that token still holds the lease.
        """
        ...

    @abstractmethod
    async def write_payload(
        self,
        ref: ObjectRef,
        data: bytes,
        *,
        token: LeaseToken,
    ) -> None:
        """
        Overwrite the object payload under a held lease.

        Raises:
            LeaseLostError: The token no longer holds the lease.
        """
        ...

    @abstractmethod
    async def delete_if_exists(
        self,
        ref: ObjectRef,
        *,
        token: LeaseToken | None = None,
    ) -> bool:
        """
        Delete an object that is unleased or leased by ``token``.

        Deleting under the caller's own lease drops the lease with the object.

        Returns:
            ``True`` when an object was deleted.

        Raises:
            LeaseConflictError: Someone else currently holds a lease on the object.
        """
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None
