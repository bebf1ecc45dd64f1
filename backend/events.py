"""
Job event delivery: observer interface, SSE fan-out and webhook push
"""

from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional
import asyncio
import logging

import httpx

logger = logging.getLogger("print_events")


class PrintJobObserver:
    """
    Receives print job lifecycle events from the queue service.
    Methods may be plain functions or coroutines.
    """

    def on_job_update(self, job):
        """Called on every status transition"""
        pass

    def on_print_complete(self, job_id: str):
        pass

    def on_print_error(self, job_id: str, error: str):
        pass


class CallbackObserver(PrintJobObserver):
    """Adapts bare `on_print_complete` / `on_print_error` callables"""

    def __init__(self, on_print_complete: Optional[Callable] = None,
                 on_print_error: Optional[Callable] = None):
        self._on_complete = on_print_complete
        self._on_error = on_print_error

    def on_print_complete(self, job_id):
        if self._on_complete:
            return self._on_complete(job_id)

    def on_print_error(self, job_id, error):
        if self._on_error:
            return self._on_error(job_id, error)


class JobEventBroadcaster(PrintJobObserver):
    """Manages Server-Sent Events subscribers for real-time job updates"""

    def __init__(self):
        self.connections: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self._lock: Optional[asyncio.Lock] = None

    @property
    def lock(self) -> asyncio.Lock:
        # Bound to the loop that first uses it
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def connect(self, client_id: str) -> asyncio.Queue:
        queue = asyncio.Queue()
        async with self.lock:
            self.connections[client_id].append(queue)
        logger.info(f"✅ SSE connected: {client_id}")
        return queue

    async def disconnect(self, client_id: str, queue: asyncio.Queue):
        async with self.lock:
            if client_id in self.connections:
                if queue in self.connections[client_id]:
                    self.connections[client_id].remove(queue)
                if not self.connections[client_id]:
                    del self.connections[client_id]
        logger.info(f"❌ SSE disconnected: {client_id}")

    async def publish(self, event_type: str, data: dict):
        async with self.lock:
            queues = [q for qs in self.connections.values() for q in qs]

        message = {
            "event": event_type,
            "data": data,
            "timestamp": datetime.now().isoformat()
        }

        for queue in queues:
            await queue.put(message)

    async def on_job_update(self, job):
        await self.publish("job_update", job.to_dict())

    async def on_print_complete(self, job_id):
        await self.publish("print_complete", {"job_id": job_id})

    async def on_print_error(self, job_id, error):
        await self.publish("print_error", {"job_id": job_id, "error": error})


class WebhookNotifier(PrintJobObserver):
    """Pushes completion and failure events to an external URL"""

    def __init__(self, webhook_url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport
        self._pending = set()

    async def send(self, job_id: str, status: str, message: Optional[str] = None) -> bool:
        payload = {
            "job_id": job_id,
            "status": status,
            "message": message,
            "timestamp": datetime.now().isoformat()
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"❌ Webhook error for {job_id}: {e}")
            return False

        if response.is_success:
            logger.info(f"✅ Webhook sent for {job_id}: {status}")
            return True

        logger.warning(f"⚠️ Webhook failed for {job_id}: {response.status_code}")
        return False

    def _dispatch(self, job_id: str, status: str, message: Optional[str] = None):
        """Deliver in the background; callers do not wait for the endpoint"""
        task = asyncio.get_running_loop().create_task(self.send(job_id, status, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def flush(self):
        """Wait for deliveries still in flight"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def on_print_complete(self, job_id):
        self._dispatch(job_id, "completed")

    def on_print_error(self, job_id, error):
        self._dispatch(job_id, "failed", error)
