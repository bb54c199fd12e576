"""Single-worker write queue serializing load-mutate-save cycles on the store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from hitcounter.models import Store
from hitcounter.store import JsonCounterStore

logger = logging.getLogger("hitcounter.writer")

T = TypeVar("T")


@dataclass(slots=True)
class _PendingMutation:
    mutation: Callable[[Store], Any]
    future: asyncio.Future[Any]
    label: str


class WriteSerializer:
    """
    Owns the only path that mutates the persisted store.

    Mutations run strictly one at a time in submission order. Each one loads
    the latest saved document, applies the callable, and saves the result
    before the next mutation starts. A failed cycle is logged and reported to
    its caller; the worker keeps draining the queue.
    """

    def __init__(self, store: JsonCounterStore) -> None:
        self._store = store
        self._queue: asyncio.Queue[_PendingMutation] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self.completed_count = 0
        self.failed_count = 0

    @property
    def pending_count(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def _ensure_worker(self) -> asyncio.Queue[_PendingMutation]:
        loop = asyncio.get_running_loop()
        if (
            self._queue is None
            or self._worker is None
            or self._worker.done()
            or self._loop is not loop
        ):
            self._loop = loop
            self._queue = asyncio.Queue()
            self._worker = loop.create_task(self._run(self._queue))
        return self._queue

    async def enqueue(self, mutation: Callable[[Store], T], *, label: str = "mutation") -> T:
        """Queue a mutation and wait until its result has been persisted."""

        queue = self._ensure_worker()
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        await queue.put(_PendingMutation(mutation=mutation, future=future, label=label))
        return await future

    def _apply(self, mutation: Callable[[Store], Any]) -> Any:
        store = self._store.load()
        result = mutation(store)
        self._store.save(store)
        return result

    async def _run(self, queue: asyncio.Queue[_PendingMutation]) -> None:
        while True:
            item = await queue.get()
            try:
                result = await asyncio.to_thread(self._apply, item.mutation)
            except Exception as exc:
                self.failed_count += 1
                logger.exception("counter_write_failed label=%s error=%s", item.label, exc)
                if not item.future.done():
                    item.future.set_exception(exc)
            else:
                self.completed_count += 1
                if not item.future.done():
                    item.future.set_result(result)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued mutation has been processed."""

        if self._queue is None or self._loop is not asyncio.get_running_loop():
            return
        await self._queue.join()

    async def close(self) -> None:
        await self.drain()
        worker = self._worker
        owned_by_this_loop = self._loop is asyncio.get_running_loop()
        self._worker = None
        self._queue = None
        self._loop = None
        if worker is None or worker.done() or not owned_by_this_loop:
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
