from __future__ import annotations

import asyncio

import pytest

from leasegate import (
    InMemoryLeaseStore,
    LeaseConflictError,
    LeaseLostError,
    ObjectNotFoundError,
    ObjectRef,
    StoreUnavailableError,
)


def run_async(coro):
    return asyncio.run(coro)


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_ensure_object_requires_container_and_is_idempotent():
    async def scenario() -> None:
        store = InMemoryLeaseStore()
        with pytest.raises(ObjectNotFoundError):
            await store.ensure_object("demo", "k")

        await store.ensure_container("demo")
        await store.ensure_container("demo")
        ref = await store.ensure_object("demo", "k")
        assert ref == ObjectRef("demo", "k")
        assert ref.path == "demo/k"

        token = await store.acquire_lease(ref, 15)
        await store.write_payload(ref, b"payload", token=token)
        again = await store.ensure_object("demo", "k")
        assert again == ref
        assert store.payload(ref) == b"payload"
        assert store.object_count == 1

    run_async(scenario())


def test_lease_is_exclusive_until_released_or_expired():
    async def scenario() -> None:
        clock = _FakeClock()
        store = InMemoryLeaseStore(clock=clock)
        await store.ensure_container("demo")
        ref = await store.ensure_object("demo", "k")

        token = await store.acquire_lease(ref, 15)
        with pytest.raises(LeaseConflictError):
            await store.acquire_lease(ref, 15)

        await store.release_lease(ref, token)
        token2 = await store.acquire_lease(ref, 15)

        clock.now += 15
        token3 = await store.acquire_lease(ref, 15)
        assert len({token, token2, token3}) == 3

        with pytest.raises(LeaseLostError):
            await store.release_lease(ref, token2)
        with pytest.raises(LeaseLostError):
            await store.write_payload(ref, b"x", token=token2)
        with pytest.raises(LeaseLostError):
            await store.read_payload(ref, token=token2)
        assert await store.read_payload(ref) == b""

    run_async(scenario())


def test_delete_refuses_leased_objects():
    async def scenario() -> None:
        store = InMemoryLeaseStore()
        await store.ensure_container("demo")
        ref = await store.ensure_object("demo", "k")
        token = await store.acquire_lease(ref, 15)

        with pytest.raises(LeaseConflictError):
            await store.delete_if_exists(ref)

        await store.release_lease(ref, token)
        assert await store.delete_if_exists(ref) is True
        assert await store.delete_if_exists(ref) is False
        with pytest.raises(ObjectNotFoundError):
            await store.acquire_lease(ref, 15)
        with pytest.raises(ObjectNotFoundError):
            await store.release_lease(ref, token)

    run_async(scenario())


def test_fail_next_injects_one_error():
    async def scenario() -> None:
        store = InMemoryLeaseStore()
        store.fail_next("ensure_container", StoreUnavailableError("down"))
        with pytest.raises(StoreUnavailableError):
            await store.ensure_container("demo")
        await store.ensure_container("demo")

    run_async(scenario())

    with pytest.raises(ValueError, match="Unknown lease store operation"):
        InMemoryLeaseStore().fail_next("explode", RuntimeError())


def test_invalid_arguments_are_rejected():
    with pytest.raises(ValueError):
        InMemoryLeaseStore(latency_s=-1)

    async def scenario() -> None:
        store = InMemoryLeaseStore()
        await store.ensure_container("demo")
        ref = await store.ensure_object("demo", "k")
        with pytest.raises(ValueError):
            await store.acquire_lease(ref, 0)

    run_async(scenario())


def test_holder_can_delete_under_its_own_lease():
    async def scenario() -> None:
        store = InMemoryLeaseStore()
        await store.ensure_container("demo")
        ref = await store.ensure_object("demo", "k")
        token = await store.acquire_lease(ref, 15)

        with pytest.raises(LeaseConflictError):
            await store.delete_if_exists(ref, token="someone-else")
        assert await store.delete_if_exists(ref, token=token) is True
        assert not store.exists(ref)
        with pytest.raises(ObjectNotFoundError):
            await store.release_lease(ref, token)

        recreated = await store.ensure_object("demo", "k")
        assert await store.read_payload(recreated) == b""
        assert await store.acquire_lease(recreated, 15)

    run_async(scenario())
