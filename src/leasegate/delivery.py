"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Queue consumer glue: run a message handler behind a coalescing gate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from .gate import CoalescingGate, GateOutcome
from .types import require_non_empty

logger = logging.getLogger("leasegate.delivery")

M = TypeVar("M")

# Handler and enqueue callbacks may be sync or async.
MessageCallback = Callable[[M], Any]


class GatedConsumer(Generic[M]):
    """
    Consumer that de-duplicates bursty at-least-once delivery.

    Every received message is mapped to a unit-of-work key. The handler runs
    under the gate for that key; the re-trigger puts the same message back on
    the queue through ``enqueue``.

    Args:
        gate: Gate that owns the scope of the consumed messages.
        handler: Protected logic, called with the received message.
        enqueue: Re-adds a message to the delivery system.
        key_for: Maps a message to its unit-of-work key.
    """

    def __init__(
        self,
        gate: CoalescingGate,
        *,
        handler: MessageCallback[M],
        enqueue: MessageCallback[M],
        key_for: Callable[[M], str],
    ) -> None:
        self._gate = gate
        self._handler = handler
        self._enqueue = enqueue
        self._key_for = key_for

    @property
    def gate(self) -> CoalescingGate:
        return self._gate

    async def handle(self, message: M) -> GateOutcome:
        """
        Process one delivered message.

        Errors are logged and re-raised so the delivery system can redeliver.
        """
        key = require_non_empty("key", self._key_for(message))
        logger.info("Message received (scope=%s, key=%s)", self._gate.scope, key)
        try:
            outcome = await self._gate.run_under_lock(
                key,
                lambda: self._handler(message),
                lambda: self._enqueue(message),
            )
        except Exception:
            logger.exception(
                "Gated handling failed (scope=%s, key=%s)", self._gate.scope, key
            )
            raise
        logger.info(
            "Message done (scope=%s, key=%s, decision=%s, retriggered=%s)",
            self._gate.scope,
            key,
            outcome.decision.value,
            outcome.retriggered,
        )
        return outcome
