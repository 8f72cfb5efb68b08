"""Single-flight FIFO queue feeding the dispatcher."""
import asyncio
from typing import Awaitable, Callable, Optional

from feedback_triage.logging_conf import logger
from feedback_triage.queue.models import WorkItem

Handler = Callable[[WorkItem], Awaitable[None]]

# Marks the end of the stream for the worker
_CLOSE = object()


class SequentialQueue:
    """
    Ordered buffer of work items drained by one worker task.

    At most one item is handled at any instant; `processing` is True while it is.
    A failing item is logged and skipped so the queue keeps moving.
    """

    def __init__(self, handler: Handler):
        self.handler = handler
        self.processing = False
        self.closed = False
        self._items: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start the worker task if it is not already running."""
        if self._worker is not None and not self._worker.done():
            return
        self.closed = False
        self._worker = asyncio.get_running_loop().create_task(self._run(), name="sequential-queue")
        logger.info("Queue worker started")

    def enqueue(self, item: WorkItem) -> None:
        """Append an item; restarts the worker if it has exited."""
        if self.closed:
            logger.warning(f"Queue closed, dropping {item.category.value} {item.key}")
            return
        self._items.put_nowait(item)
        logger.info(f"Queued {item.category.value} {item.key} (queue size: {self.size()})")
        self.start()

    def size(self) -> int:
        return self._items.qsize()

    async def join(self) -> None:
        """Wait until every queued item has been handled."""
        await self._items.join()

    async def close(self) -> None:
        """Handle everything already queued, then let the worker exit."""
        if self.closed:
            return
        self.closed = True
        self._items.put_nowait(_CLOSE)
        if self._worker is not None:
            await self._worker

    async def stop(self) -> None:
        """Cancel the worker now; queued items are dropped."""
        self.closed = True
        dropped = self.size()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        while not self._items.empty():
            self._items.get_nowait()
            self._items.task_done()
        if dropped:
            logger.warning(f"Queue stopped with {dropped} unprocessed items")
        logger.info("Queue worker stopped")

    async def _run(self) -> None:
        """Main worker loop."""
        while True:
            item = await self._items.get()
            try:
                if item is _CLOSE:
                    break
                await self._handle(item)
            finally:
                self._items.task_done()
        logger.info("Queue worker exited")

    async def _handle(self, item: WorkItem) -> None:
        self.processing = True
        try:
            await self.handler(item)
        except Exception as e:
            logger.error(f"Error processing queued {item.category.value} message {item.key}: {e}", exc_info=True)
        finally:
            self.processing = False
