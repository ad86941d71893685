"""In-process "ledger changed" notifications.

Collaborators (websocket bridges, poll caches) subscribe and decide how to fan the events
out; the ledger only guarantees an event follows every committed mutation.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, AsyncIterator
from uuid import UUID

from loguru import logger


@dataclass(frozen=True)
class LedgerChanged:
    account_id: UUID
    kind: str
    balance: int | None = None
    reference_id: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> dict[str, Any]:
        return {
            "accountId": str(self.account_id),
            "kind": self.kind,
            "balance": self.balance,
            "referenceId": self.reference_id,
            "occurredAt": self.occurred_at.isoformat(),
        }


class LedgerEventBus:
    """Fan committed ledger changes out to bounded subscriber queues."""

    def __init__(self, *, max_queue_size: int = 256) -> None:
        self._lock = Lock()
        self._subscribers: set[asyncio.Queue[LedgerChanged]] = set()
        self._max_queue_size = max_queue_size

    def subscribe(self) -> asyncio.Queue[LedgerChanged]:
        queue: asyncio.Queue[LedgerChanged] = asyncio.Queue(maxsize=self._max_queue_size)
        with self._lock:
            self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[LedgerChanged]) -> None:
        with self._lock:
            self._subscribers.discard(queue)

    @asynccontextmanager
    async def subscription(self) -> AsyncIterator[asyncio.Queue[LedgerChanged]]:
        queue = self.subscribe()
        try:
            yield queue
        finally:
            self.unsubscribe(queue)

    def publish(self, event: LedgerChanged) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "Dropping ledger event for slow subscriber",
                    account_id=str(event.account_id),
                    kind=event.kind,
                )

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def reset(self) -> None:
        with self._lock:
            self._subscribers.clear()


_BUS = LedgerEventBus()


def get_ledger_event_bus() -> LedgerEventBus:
    return _BUS


__all__ = ["LedgerChanged", "LedgerEventBus", "get_ledger_event_bus"]
