"""
Keyed expiry scheduler driven by a single background task.

One min-heap holds every armed expiry; the runner task sleeps until the
earliest one is due, pops it and awaits the callback. Each key has at most
one live job: scheduling a key again replaces its previous job, and
cancelled or replaced jobs are skipped lazily when they reach the top of the
heap. Rebuilding the schedule after a restart is therefore just a series of
``schedule`` calls.
"""

from __future__ import annotations

import asyncio
import heapq
from typing import Awaitable, Callable, Dict, Hashable, Tuple

from modguard.util.logger import get_logger
from modguard.util.time_utils import epoch_ms

logger = get_logger("expiry_scheduler")

ExpiryCallback = Callable[[Hashable, int], Awaitable[None]]


class ExpiryScheduler:
    """
    Central scheduler for keyed, one-shot expiries.

    Attributes:
        heap (list): Min-heap of ``(run_at_ms, job_id, key)`` tuples.
        pending_keys (Dict): Maps each key to its live ``(job_id, run_at_ms)``.
        counter (int): Monotonically increasing job id.
        runner_task (asyncio.Task | None): Background task processing the heap.
        condition (asyncio.Condition): Wakes the runner when the heap changes.
    """

    def __init__(
        self,
        callback: ExpiryCallback,
        *,
        clock: Callable[[], int] = epoch_ms,
        name: str = "modguard-expiry-scheduler",
    ) -> None:
        self.callback = callback
        self.clock = clock
        self.name = name
        self.heap: list[tuple[int, int, Hashable]] = []
        self.pending_keys: Dict[Hashable, Tuple[int, int]] = {}
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()

    def ensure_runner(self) -> None:
        """Create the background runner task if it is not already running."""
        loop = asyncio.get_running_loop()
        if self.runner_task is None or self.runner_task.done():
            self.runner_task = loop.create_task(self.run(), name=self.name)

    async def schedule(self, key: Hashable, run_at_ms: int) -> None:
        """
        Arm (or re-arm) the expiry for ``key`` at an absolute epoch time.

        An already-armed job for the same key is superseded. Due or overdue
        times fire on the runner's next pass.
        """
        async with self.condition:
            self.ensure_runner()
            self.counter += 1
            job_id = self.counter
            heapq.heappush(self.heap, (run_at_ms, job_id, key))
            self.pending_keys[key] = (job_id, run_at_ms)
            self.condition.notify_all()

    async def cancel(self, key: Hashable) -> bool:
        """
        Disarm the expiry for ``key``.

        Returns:
            bool: True if a live job existed, False otherwise.
        """
        async with self.condition:
            if self.pending_keys.pop(key, None) is None:
                return False
            self.condition.notify_all()
            return True

    async def wake(self) -> None:
        """Force the runner to re-check the heap against the clock."""
        async with self.condition:
            self.condition.notify_all()

    def scheduled_at(self, key: Hashable) -> int | None:
        job = self.pending_keys.get(key)
        return job[1] if job else None

    def pending(self) -> Dict[Hashable, int]:
        """Snapshot of armed keys and their run times."""
        return {key: run_at for key, (_, run_at) in self.pending_keys.items()}

    async def shutdown(self) -> None:
        """Stop the runner and drop every armed job. Safe to call repeatedly."""
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.pending_keys.clear()
            self.condition.notify_all()

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    def _is_live(self, job_id: int, key: Hashable) -> bool:
        job = self.pending_keys.get(key)
        return job is not None and job[0] == job_id

    async def run(self) -> None:
        """Pop due jobs and await the callback for each, until shut down."""
        while True:
            async with self.condition:
                # Drop superseded or cancelled jobs at the top of the heap
                while self.heap and not self._is_live(self.heap[0][1], self.heap[0][2]):
                    heapq.heappop(self.heap)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at, _, _ = self.heap[0]
                delay_ms = run_at - self.clock()

                if delay_ms > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay_ms / 1000)
                    except asyncio.TimeoutError:
                        pass
                    continue

                run_at, _, key = heapq.heappop(self.heap)
                self.pending_keys.pop(key, None)

            try:
                await self.callback(key, run_at)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("[EXPIRY SCHEDULER] Expiry callback failed for %s: %s", key, exc)
