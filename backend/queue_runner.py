"""
Periodic workers for the print queue.

Three independent loops share one event loop: the processor tick, the
retry scheduler tick and the printer status monitor. Each tick runs to
completion before its loop sleeps again.
"""

import asyncio
import inspect
import logging
from typing import Callable, List, Optional

from clock import SystemClock
from health_probe import StatusMonitor
from print_queue import Config, PrintQueueService

logger = logging.getLogger("queue_runner")


class PrintQueueRunner:

    def __init__(self, service: PrintQueueService, monitor: Optional[StatusMonitor] = None, clock=None,
                 process_interval: float = Config.PROCESS_INTERVAL,
                 retry_interval: float = Config.RETRY_INTERVAL,
                 monitor_interval: float = Config.MONITOR_INTERVAL):
        self.service = service
        self.monitor = monitor
        self.clock = clock or service.clock or SystemClock()
        self.process_interval = process_interval
        self.retry_interval = retry_interval
        self.monitor_interval = monitor_interval
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def _every(self, name: str, interval: float, tick: Callable):
        while True:
            await self.clock.sleep(interval)
            try:
                result = tick()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{name} tick failed: {e}", exc_info=True)

    def start(self):
        """Schedule the loops on the running event loop"""
        if self.running:
            return

        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._every("processor", self.process_interval, self.service.process_next)),
            loop.create_task(self._every("retry_scheduler", self.retry_interval, self.service.retry_failed_jobs)),
        ]
        if self.monitor is not None:
            self._tasks.append(
                loop.create_task(self._every("status_monitor", self.monitor_interval, self.monitor.check_printers))
            )
        logger.info(
            f"Print queue workers started (process={self.process_interval}s, "
            f"retry={self.retry_interval}s, monitor={self.monitor_interval}s)"
        )

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Print queue workers stopped")
