"""
Per-channel work queue.
Jobs of the same channel run one at a time in submission order; different
channels run concurrently.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Tuple, TypeVar

from relaybot.core.logging import get_logger

logger = get_logger("services.channel_queue")

T = TypeVar("T")
Job = Callable[[], Awaitable[Any]]


class ChannelQueue:
    """
    One FIFO queue and worker task per channel with pending work.

    A worker is started by the first job submitted to an idle channel and
    exits once its queue is drained.
    """

    def __init__(self) -> None:
        self._queues: Dict[str, asyncio.Queue[Tuple[Job, asyncio.Future]]] = {}
        self._workers: Dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def channel_count(self) -> int:
        """Channels with a live worker (pending or running jobs)."""
        return len(self._workers)

    async def submit(self, channel_id: str, job: Callable[[], Awaitable[T]]) -> T:
        """Queue a job on the channel's worker and wait for its result."""
        if self._closed:
            raise RuntimeError("Channel queue is closed")
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue_for(channel_id).put_nowait((job, future))
        return await future

    def _queue_for(self, channel_id: str) -> asyncio.Queue:
        queue = self._queues.get(channel_id)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[channel_id] = queue
            self._workers[channel_id] = asyncio.create_task(
                self._worker(channel_id, queue), name=f"channel-{channel_id}"
            )
            logger.debug(f"Started worker for channel {channel_id}")
        return queue

    async def _worker(self, channel_id: str, queue: asyncio.Queue) -> None:
        """Run queued jobs until the queue is empty, then retire."""
        while True:
            job, future = queue.get_nowait()
            try:
                if not future.cancelled():
                    result = await job()
                    if not future.done():
                        future.set_result(result)
            except Exception as e:
                logger.debug(f"Job in channel {channel_id} failed: {e}")
                if not future.done():
                    future.set_exception(e)
            finally:
                queue.task_done()

            # Check and removal must not be separated by an await
            if queue.empty():
                if self._queues.get(channel_id) is queue:
                    del self._queues[channel_id]
                    del self._workers[channel_id]
                logger.debug(f"Retired worker for channel {channel_id}")
                return

    async def close(self) -> None:
        """Stop every worker; queued jobs that have not started are dropped."""
        self._closed = True
        for task in self._workers.values():
            task.cancel()
        await asyncio.gather(*self._workers.values(), return_exceptions=True)
        for queue in self._queues.values():
            while not queue.empty():
                _, future = queue.get_nowait()
                if not future.done():
                    future.cancel()
        self._workers.clear()
        self._queues.clear()
