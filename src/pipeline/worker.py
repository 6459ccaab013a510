# src/pipeline/worker.py — v1
"""Worker pool: the explicit task abstraction that runs items.

Triggers and retries submit item ids to an asyncio.Queue. Each worker takes
the item's lease before running it, so an item is driven by exactly one task,
and a crashed worker leaves a lease that expires and shows up as orphaned.
An id submitted again while this pool is still running it is queued once more
when the running worker lets go of it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scriptconveyor.pipeline.orchestrator import PipelineOrchestrator
    from scriptconveyor.storage.base_item_store import BaseItemStore

logger = logging.getLogger(__name__)


class PipelineWorkerPool:
    """Fixed number of asyncio workers draining a queue of item ids.

    Args:
        orchestrator: Runs one item to completion, failure or cancel.
        items: Item store holding the leases.
        concurrency: Number of worker tasks.
        lease_ttl_s: Lease duration, renewed by the orchestrator per stage.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        items: BaseItemStore,
        concurrency: int = 2,
        lease_ttl_s: float = 1800.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._orchestrator = orchestrator
        self._items = items
        self._concurrency = concurrency
        self._lease_ttl_s = lease_ttl_s
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []
        self._in_flight: set[str] = set()
        self._rerun: set[str] = set()
        self._pool_id = uuid.uuid4().hex[:8]

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def submit(self, item_id: str) -> None:
        """Queue an item; returns immediately."""
        await self._queue.put(item_id)
        logger.debug("Queued item %s (%d waiting)", item_id, self._queue.qsize())

    def start(self) -> None:
        if self._tasks:
            return
        for n in range(self._concurrency):
            worker_id = f"{self._pool_id}-{n}"
            self._tasks.append(asyncio.create_task(self._worker(worker_id), name=worker_id))
        logger.info("Started %d pipeline workers", self._concurrency)

    async def join(self) -> None:
        """Wait until every submitted item has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel the workers. Items mid-run are left processing, as orphans."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Stopped pipeline workers")

    async def _worker(self, worker_id: str) -> None:
        while True:
            item_id = await self._queue.get()
            try:
                await self._process(item_id, worker_id)
            finally:
                self._queue.task_done()

    async def _process(self, item_id: str, worker_id: str) -> None:
        if item_id in self._in_flight:
            # Resubmitted (e.g. retried) while one of our workers still holds it.
            logger.info("Item %s is still running here, re-queueing after it", item_id)
            self._rerun.add(item_id)
            return
        if not await self._items.acquire_lease(item_id, worker_id, self._lease_ttl_s):
            logger.info("Item %s is leased by another worker, skipping", item_id)
            return
        self._in_flight.add(item_id)
        try:
            await self._orchestrator.run(item_id, worker_id=worker_id)
        except Exception:
            logger.exception("Unexpected error while running item %s", item_id)
        finally:
            await self._items.release_lease(item_id, worker_id)
            self._in_flight.discard(item_id)
            if item_id in self._rerun:
                self._rerun.discard(item_id)
                self._queue.put_nowait(item_id)
