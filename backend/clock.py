"""
Time sources for the print queue.

`SystemClock` is used by the running service. `ManualClock` keeps virtual
time so the processor, retry scheduler and status monitor can be driven
deterministically: sleepers only wake when `advance()` moves time past
their deadline.
"""

import asyncio
import heapq
import itertools
import time
from typing import List, Tuple


async def _settle(rounds: int = 20):
    """Let woken tasks run until they block again"""
    for _ in range(rounds):
        await asyncio.sleep(0)


class SystemClock:
    """Wall-clock time backed by asyncio.sleep"""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float):
        await asyncio.sleep(max(0.0, seconds))


class ManualClock:
    """Virtual clock advanced explicitly by the caller"""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._sleepers: List[Tuple[float, int, asyncio.Future]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    @property
    def pending_sleepers(self) -> int:
        return len([s for s in self._sleepers if not s[2].done()])

    async def sleep(self, seconds: float):
        if seconds <= 0:
            await asyncio.sleep(0)
            return

        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self._now + seconds, next(self._seq), future))
        await future

    async def advance(self, seconds: float):
        """Move time forward, waking sleepers in deadline order"""
        target = self._now + seconds
        await _settle()

        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            self._now = max(self._now, deadline)
            if not future.done():
                future.set_result(None)
            await _settle()

        self._now = target
        await _settle()
