"""
Print Queue Service
===================
In-memory print job queue for the bill printers:
- FIFO queue of print jobs with a single in-flight job
- Processor tick that submits the next pending job
- Retry scheduler with exponential backoff
- Observer notifications for completed and failed jobs
"""

import asyncio
import inspect
import json
import logging
import os
import random
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from clock import SystemClock
from events import PrintJobObserver
from exceptions import (
    JobNotFoundError, PrinterUnavailableError, SubmissionError, ValidationError
)
from models import PrintJobStatus, PrintJobType, PrintPriority, PrinterStatusEnum
from printer_registry import PrinterConfig, PrinterRegistry

load_dotenv()

# ============================================================================
# CONFIGURATION
# ============================================================================

class Config:
    """Centralized configuration management"""

    MAX_RETRIES = int(os.getenv("PRINT_MAX_RETRIES", "3"))
    RETRY_BASE_SECONDS = float(os.getenv("PRINT_RETRY_BASE_SECONDS", "5"))

    PROCESS_INTERVAL = float(os.getenv("PRINT_PROCESS_INTERVAL", "3"))
    RETRY_INTERVAL = float(os.getenv("PRINT_RETRY_INTERVAL", "5"))
    MONITOR_INTERVAL = float(os.getenv("PRINT_MONITOR_INTERVAL", "10"))

    SIMULATED_DELAY = float(os.getenv("PRINT_SIMULATED_DELAY", "2"))
    FAILURE_RATE = float(os.getenv("PRINT_FAILURE_RATE", "0"))

    PRINTER_PROBE = os.getenv("PRINTER_PROBE", "static")  # static|random|http
    PRINTER_AGENT_URL = os.getenv("PRINTER_AGENT_URL", "http://localhost:8001")
    STATUS_CHANGE_PROBABILITY = 0.1
    TEST_SUCCESS_RATE = 0.8

    WEBHOOK_URL = os.getenv("PRINT_WEBHOOK_URL")
    LOG_DIR = os.getenv("LOG_DIR", "logs")

    DEFAULT_LIST_LIMIT = 50

# ============================================================================
# LOGGING
# ============================================================================

class StructuredLogger:
    """Structured logging for print job lifecycle events"""

    def __init__(self, name="print_queue"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_event(self, event_type, data, level="info"):
        """Log structured event"""
        log_entry = {
            'timestamp': datetime.now().isoformat(),
            'event': event_type,
            'data': data
        }

        log_func = getattr(self.logger, level)
        log_func(json.dumps(log_entry, default=str))

    def log_transition(self, job, event_type, level="info"):
        self.log_event(event_type, {
            'job_id': job.id,
            'type': job.type.value,
            'status': job.status.value,
            'printer_id': job.printer_id,
            'retry_count': job.retry_count
        }, level=level)

    def log_error(self, error_type, details):
        self.log_event('error', {
            'error_type': error_type,
            'details': str(details)
        }, level='error')

logger = StructuredLogger()

# ============================================================================
# JOBS
# ============================================================================

@dataclass
class PrintJob:
    """One unit of print work"""
    id: str
    type: PrintJobType
    data: Any
    priority: PrintPriority
    created_at: float
    status: PrintJobStatus = PrintJobStatus.PENDING
    completed_at: Optional[float] = None
    printer_id: Optional[str] = None
    error: Optional[str] = None
    retry_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "data": self.data,
            "priority": self.priority.value,
            "status": self.status.value,
            "created_at": datetime.fromtimestamp(self.created_at).isoformat(),
            "completed_at": datetime.fromtimestamp(self.completed_at).isoformat() if self.completed_at is not None else None,
            "printer_id": self.printer_id,
            "error": self.error,
            "retry_count": self.retry_count,
        }


def generate_job_id(prefix: str = "job") -> str:
    """Generate unique job ID"""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _coerce(enum_cls, value, label):
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {label}. Must be one of: {choices}")

# ============================================================================
# SUBMISSION
# ============================================================================

class PrintSubmitter:
    """Sends one job to one printer; raises SubmissionError on failure"""

    async def submit(self, job: PrintJob, printer: Optional[PrinterConfig]):
        raise NotImplementedError


class SimulatedSubmitter(PrintSubmitter):
    """
    Stand-in for printer I/O: waits a fixed delay, then succeeds unless the
    printer is not online or the configured failure rate hits.
    """

    def __init__(self, clock=None, delay: float = Config.SIMULATED_DELAY,
                 failure_rate: float = Config.FAILURE_RATE, rng: Optional[random.Random] = None):
        self.clock = clock or SystemClock()
        self.delay = delay
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    async def submit(self, job, printer):
        if printer is not None and printer.status != PrinterStatusEnum.ONLINE:
            raise PrinterUnavailableError(printer.id, printer.status.value)

        await self.clock.sleep(self.delay)

        if self.failure_rate and self.rng.random() < self.failure_rate:
            raise SubmissionError()

# ============================================================================
# QUEUE SERVICE
# ============================================================================

class PrintQueueService:
    """
    Owns the print queue and drives jobs through
    pending -> printing -> completed | pending (retry) | failed.
    """

    def __init__(self, registry: Optional[PrinterRegistry] = None, submitter: Optional[PrintSubmitter] = None,
                 clock=None, max_retries: int = Config.MAX_RETRIES,
                 base_delay: float = Config.RETRY_BASE_SECONDS):
        self.registry = registry if registry is not None else PrinterRegistry()
        self.clock = clock or SystemClock()
        self.submitter = submitter or SimulatedSubmitter(clock=self.clock)
        self.max_retries = max_retries
        self.base_delay = base_delay

        self._jobs: List[PrintJob] = []
        self._index: Dict[str, PrintJob] = {}
        self._observers: List[PrintJobObserver] = []
        self._background = set()

    # ---------- observers ----------

    def subscribe(self, observer: PrintJobObserver):
        self._observers.append(observer)

    def unsubscribe(self, observer: PrintJobObserver):
        if observer in self._observers:
            self._observers.remove(observer)

    async def _notify(self, method: str, *args):
        for observer in list(self._observers):
            try:
                result = getattr(observer, method)(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.log_error(f'observer_{method}_failed', e)

    def _notify_soon(self, method: str, *args):
        """Fire observer hooks from synchronous operations"""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        for observer in list(self._observers):
            try:
                result = getattr(observer, method)(*args)
            except Exception as e:
                logger.log_error(f'observer_{method}_failed', e)
                continue

            if not inspect.isawaitable(result):
                continue
            if loop is None:
                # Nowhere to run it outside an event loop
                if inspect.iscoroutine(result):
                    result.close()
                continue

            task = loop.create_task(result)
            self._background.add(task)
            task.add_done_callback(self._background_done)

    def _background_done(self, task):
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.log_error('observer_task_failed', task.exception())

    # ---------- queue ----------

    def enqueue(self, job_type, data, priority=PrintPriority.NORMAL, printer_id: Optional[str] = None) -> str:
        """Append a job to the end of the queue and return its id"""
        job = PrintJob(
            id=generate_job_id(),
            type=_coerce(PrintJobType, job_type, "print job type"),
            data=data,
            priority=_coerce(PrintPriority, priority, "priority"),
            created_at=self.clock.now(),
            printer_id=printer_id,
        )
        return self._append(job)

    def enqueue_test_page(self, printer_id: str) -> str:
        """Queue a zero-value test receipt for one printer"""
        printer = self.registry.get_printer(printer_id)
        if not printer.is_enabled:
            raise ValidationError("Printer is not available or disabled")

        job = PrintJob(
            id=generate_job_id("test"),
            type=PrintJobType.RECEIPT,
            data={
                "id": "TEST_RECEIPT",
                "createdAt": datetime.fromtimestamp(self.clock.now()).isoformat(),
                "user": {"name": "System Test"},
                "totalAmount": 0.0,
                "taxAmount": 0.0,
                "discount": 0.0,
                "paymentMethod": "test",
                "saleItems": [
                    {"product": {"name": "Test Print"}, "quantity": 1, "unitPrice": 0.0, "totalPrice": 0.0}
                ],
            },
            priority=PrintPriority.NORMAL,
            created_at=self.clock.now(),
            printer_id=printer_id,
        )
        logger.log_event('test_page_queued', {'printer_id': printer_id, 'printer_name': printer.name})
        return self._append(job)

    def _append(self, job: PrintJob) -> str:
        self._jobs.append(job)
        self._index[job.id] = job
        logger.log_transition(job, 'job_queued')
        self._notify_soon('on_job_update', job)
        return job.id

    def get_job(self, job_id: str) -> PrintJob:
        job = self._index.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self, status=None) -> List[PrintJob]:
        if status is None:
            return list(self._jobs)
        status = _coerce(PrintJobStatus, status, "status")
        return [job for job in self._jobs if job.status == status]

    def page_jobs(self, status=None, limit: int = Config.DEFAULT_LIST_LIMIT, offset: int = 0) -> Dict[str, Any]:
        if limit < 0 or offset < 0:
            raise ValidationError("limit and offset must be non-negative")
        jobs = self.list_jobs(status)
        return {
            "jobs": jobs[offset:offset + limit],
            "total": len(jobs),
            "limit": limit,
            "offset": offset,
        }

    @property
    def is_printing(self) -> bool:
        return any(job.status == PrintJobStatus.PRINTING for job in self._jobs)

    def clear_queue(self) -> int:
        """Drop every job, in-flight included"""
        count = len(self._jobs)
        self._jobs = []
        self._index = {}
        logger.log_event('queue_cleared', {'removed': count})
        return count

    def retry_all_failed(self) -> int:
        """Manual override: requeue every failed job with a fresh retry budget"""
        retried = 0
        for job in self._jobs:
            if job.status == PrintJobStatus.FAILED:
                job.status = PrintJobStatus.PENDING
                job.retry_count = 0
                job.error = None
                retried += 1
                logger.log_transition(job, 'job_manual_retry')
                self._notify_soon('on_job_update', job)
        return retried

    # ---------- processor ----------

    def _resolve_printer(self, job: PrintJob) -> Optional[PrinterConfig]:
        printer = self.registry.find(job.printer_id)
        if printer is None:
            printer = self.registry.default_printer()
        return printer

    async def process_next(self) -> Optional[PrintJob]:
        """Processor tick: submit the first pending job unless one is printing"""
        if self.is_printing:
            return None

        job = next((j for j in self._jobs if j.status == PrintJobStatus.PENDING), None)
        if job is None:
            return None

        printer = self._resolve_printer(job)
        if printer is not None:
            job.printer_id = printer.id
        job.status = PrintJobStatus.PRINTING
        logger.log_transition(job, 'job_printing')
        await self._notify('on_job_update', job)

        error = None
        backoff = False
        try:
            await self.submitter.submit(job, printer)
        except PrinterUnavailableError as e:
            error, backoff = str(e), True
        except SubmissionError as e:
            error = str(e)
        except Exception as e:
            logger.log_error('submitter_crashed', e)
            error = str(SubmissionError())

        if self._index.get(job.id) is not job:
            logger.log_event('job_discarded', {'job_id': job.id, 'reason': 'queue cleared while printing'}, level='warning')
            return job

        if error is None:
            await self._complete(job, printer)
        else:
            await self._fail(job, error, backoff)
        return job

    async def _complete(self, job: PrintJob, printer: Optional[PrinterConfig]):
        job.status = PrintJobStatus.COMPLETED
        job.completed_at = self.clock.now()
        job.error = None
        if printer is not None:
            printer.last_used = datetime.now()
        logger.log_transition(job, 'job_completed')
        await self._notify('on_job_update', job)
        await self._notify('on_print_complete', job.id)

    async def _fail(self, job: PrintJob, error: str, backoff: bool):
        job.retry_count += 1
        job.error = error

        if job.retry_count < self.max_retries and not backoff:
            job.status = PrintJobStatus.PENDING
            logger.log_transition(job, 'job_retry', level='warning')
            await self._notify('on_job_update', job)
            return

        job.status = PrintJobStatus.FAILED
        logger.log_transition(job, 'job_failed', level='error')
        await self._notify('on_job_update', job)
        await self._notify('on_print_error', job.id, error)

    # ---------- retry scheduler ----------

    def backoff_delay(self, retry_count: int) -> float:
        return (2 ** retry_count) * self.base_delay

    def retry_failed_jobs(self) -> List[str]:
        """
        Retry scheduler tick. Waits are measured from job creation, so
        repeated failures do not push the next attempt further out.
        """
        now = self.clock.now()
        requeued = []
        for job in self._jobs:
            if job.status != PrintJobStatus.FAILED or job.retry_count >= self.max_retries:
                continue
            if now - job.created_at >= self.backoff_delay(job.retry_count):
                job.status = PrintJobStatus.PENDING
                requeued.append(job.id)
                logger.log_transition(job, 'job_backoff_elapsed')
                self._notify_soon('on_job_update', job)
        return requeued

    # ---------- reporting ----------

    def stats(self) -> Dict[str, int]:
        counts = {status: 0 for status in PrintJobStatus}
        for job in self._jobs:
            counts[job.status] += 1

        printers = self.registry.list_printers()
        return {
            "total_jobs": len(self._jobs),
            "pending_jobs": counts[PrintJobStatus.PENDING],
            "printing_jobs": counts[PrintJobStatus.PRINTING],
            "completed_jobs": counts[PrintJobStatus.COMPLETED],
            "failed_jobs": counts[PrintJobStatus.FAILED],
            "online_printers": len([p for p in printers if p.status == PrinterStatusEnum.ONLINE and p.is_enabled]),
            "total_printers": len(printers),
        }
