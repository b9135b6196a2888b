"""
In-process delivery queue.

Submitted jobs are handed to the simulator's batch delivery on a background
task: each batch waits for the previous one to finish plus the batch pause,
and every job inside a batch sleeps a random jitter before it is delivered.
At most `max_in_flight` deliveries run at once across all submissions.
Each job gets its own future which resolves once, with that job's result or
exception; one job failing never affects another.
"""
import asyncio
import random
from typing import Awaitable, Callable, List, Optional, Sequence, Set

from crm_platform.lib.logging import get_logger
from crm_platform.lib.settings import settings
from crm_platform.services.delivery_simulator import DeliveryJob, DeliveryResult, DeliverySimulator

logger = get_logger(__name__)


class DeliveryQueue:
    """Fire-and-forget scheduling of delivery jobs on the running event loop."""

    def __init__(
        self,
        simulator: DeliverySimulator,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter_ms: Optional[int] = None,
        max_in_flight: Optional[int] = None,
    ):
        self.simulator = simulator
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.jitter_ms = settings.dispatch_jitter_ms if jitter_ms is None else jitter_ms
        self.max_in_flight = max_in_flight or settings.delivery_batch_size
        self._slots = asyncio.Semaphore(self.max_in_flight)
        self._futures: Set[asyncio.Future] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Jobs submitted but not yet resolved."""
        return len(self._futures)

    def submit(self, job: DeliveryJob) -> "asyncio.Future[DeliveryResult]":
        """Schedule one job; must be called from a running event loop."""
        return self.submit_many([job])[0]

    def submit_many(self, jobs: Sequence[DeliveryJob]) -> List["asyncio.Future[DeliveryResult]"]:
        """
        Schedule jobs for batched delivery; must be called from a running event loop.

        Args:
            jobs: Delivery jobs, released in simulator-sized batches

        Returns:
            One future per job, in the same order, resolving to its DeliveryResult
        """
        if not jobs:
            return []

        loop = asyncio.get_running_loop()
        futures = [loop.create_future() for _ in jobs]
        for future in futures:
            self._futures.add(future)
            future.add_done_callback(self._on_done)

        by_message = {job.message_id: future for job, future in zip(jobs, futures)}

        async def deliver(job: DeliveryJob) -> Optional[DeliveryResult]:
            return await self._deliver(job, by_message[job.message_id])

        def release(task: asyncio.Task) -> None:
            self._tasks.discard(task)
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Delivery batch aborted: {task.exception()!r}")
            for future in futures:
                if not future.done():
                    future.cancel()

        task = asyncio.create_task(self.simulator.deliver_batch(list(jobs), deliver=deliver))
        self._tasks.add(task)
        task.add_done_callback(release)

        if len(jobs) > self.simulator.batch_size:
            batches = (len(jobs) - 1) // self.simulator.batch_size + 1
            logger.info(f"Queued {len(jobs)} deliveries in {batches} batches")
        return futures

    async def drain(self) -> None:
        """Wait until every submitted job has resolved."""
        while self._tasks or self._futures:
            await asyncio.gather(*self._tasks, *self._futures, return_exceptions=True)

    async def _deliver(self, job: DeliveryJob, future: asyncio.Future) -> Optional[DeliveryResult]:
        try:
            if self.jitter_ms:
                await self.sleep(self.rng.uniform(0, self.jitter_ms) / 1000)
            async with self._slots:
                result = await self.simulator.deliver(job)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            if not future.done():
                future.set_exception(e)
            return None

        if not future.done():
            future.set_result(result)
        return result

    def _on_done(self, future: asyncio.Future) -> None:
        self._futures.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Delivery job failed: {error!r}", exc_info=error)
