"""
Persist Queue - per-order single-flight writes to the backend.

Mutations never wait on the network. Each mutation marks its order dirty
and, when no write for that order is in flight, starts one. A write always
reads the order's latest snapshot, so mutations issued during a flight
coalesce into exactly one follow-up write. At most one write per order is
ever in flight, which keeps backend writes in mutation order.

Failures are reported, never rolled back: the order is marked UNSYNCED,
the notifier is called, and the next mutation retries with fresh state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum

from pos_kernel.exceptions import ReconciliationError
from pos_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.sync")

FlushFn = Callable[[str], Awaitable[None]]
Notifier = Callable[[str, ReconciliationError], None]


class SyncState(str, Enum):
    """Whether the backend has the order's latest snapshot."""

    SYNCED = "synced"
    SYNCING = "syncing"
    UNSYNCED = "unsynced"


class PersistQueue:
    """
    Single-flight write scheduler keyed by order id.

    Args:
        flush: Coroutine that writes the current snapshot of one order
        notifier: Called with (order_id, error) when a write fails

    ``schedule()`` must be called from a running event loop.
    """

    def __init__(self, flush: FlushFn, notifier: Notifier | None = None):
        self._flush = flush
        self._notifier = notifier
        self._dirty: set[str] = set()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._states: dict[str, SyncState] = {}

    def schedule(self, order_id: str) -> None:
        """Mark ``order_id`` dirty and start a flight if none is running."""
        self._dirty.add(order_id)
        self._states[order_id] = SyncState.SYNCING
        if order_id in self._tasks:
            logger.debug("persist_coalesced", extra={"order_id": order_id})
            return
        loop = asyncio.get_running_loop()
        self._tasks[order_id] = loop.create_task(
            self._run(order_id), name=f"persist:{order_id}"
        )

    async def _run(self, order_id: str) -> None:
        try:
            while order_id in self._dirty:
                self._dirty.discard(order_id)
                with LogContext.bind(order_id=order_id):
                    try:
                        await self._flush(order_id)
                    except ReconciliationError as exc:
                        logger.warning(
                            "persist_failed",
                            extra={"order_id": order_id, "error_code": exc.code, "error": str(exc)},
                        )
                        if order_id not in self._dirty and order_id in self._states:
                            self._states[order_id] = SyncState.UNSYNCED
                        if self._notifier is not None:
                            self._notifier(order_id, exc)
                        continue
                if order_id not in self._dirty and order_id in self._states:
                    self._states[order_id] = SyncState.SYNCED
        finally:
            self._tasks.pop(order_id, None)

    async def wait_idle(self, order_id: str) -> None:
        """Wait until no write for ``order_id`` is in flight or pending."""
        while (task := self._tasks.get(order_id)) is not None:
            await task

    async def drain(self) -> None:
        """Wait for every outstanding write to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()))

    def state(self, order_id: str) -> SyncState:
        return self._states.get(order_id, SyncState.UNSYNCED)

    def mark_synced(self, order_id: str) -> None:
        """Record that the backend already has this snapshot (loaded orders)."""
        self._states[order_id] = SyncState.SYNCED

    def forget(self, order_id: str) -> None:
        """Drop all bookkeeping for a removed order."""
        self._dirty.discard(order_id)
        self._states.pop(order_id, None)

    def is_busy(self, order_id: str) -> bool:
        return order_id in self._tasks
