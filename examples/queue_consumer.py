"""
queue_consumer.py: gate a slow job behind bursty queue delivery.

An ``asyncio.Queue`` plays the message broker. Several messages for the same
order arrive while its sync job is running; the gate runs the job once, then
re-enqueues a single follow-up message for everything that arrived meanwhile.

Usage:
    python examples/queue_consumer.py
    LEASEGATE_STORE_BACKEND=redis LEASEGATE_REDIS_URL=redis://localhost:6379/0 \
        python examples/queue_consumer.py
"""

import asyncio
import logging

from leasegate import CoalescingGate, GatedConsumer, GateSettings, create_lease_store_from_env


async def sync_order(order_id: str) -> None:
    print(f"syncing order {order_id} ...")
    await asyncio.sleep(1.0)
    print(f"order {order_id} synced")


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    queue: asyncio.Queue[str] = asyncio.Queue()
    store = create_lease_store_from_env()
    gate = CoalescingGate(store, "orders", settings=GateSettings.from_env())
    consumer = GatedConsumer(
        gate,
        handler=sync_order,
        enqueue=queue.put,
        key_for=lambda order_id: order_id,
    )

    async def worker() -> None:
        while True:
            order_id = await queue.get()
            try:
                await consumer.handle(order_id)
            finally:
                queue.task_done()

    workers = [asyncio.create_task(worker()) for _ in range(4)]
    for _ in range(6):
        await queue.put("order-42")
        await asyncio.sleep(0.1)

    await queue.join()
    for task in workers:
        task.cancel()
    await asyncio.gather(*workers, return_exceptions=True)
    await store.close()


if __name__ == "__main__":
    asyncio.run(main())
