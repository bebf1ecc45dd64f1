"""
Bill Printer Service API
Printer registry, print queue with retry/backoff and live job events
"""
from fastapi import FastAPI, HTTPException, Depends, status
from fastapi.responses import StreamingResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Optional, Any
from datetime import datetime
from sqlalchemy import text
from sqlalchemy.orm import Session
import uuid
import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
import os
import asyncio
import json

from database import get_db, get_db_context, init_db
from models import (
    PrinterType, PrinterConnectionType, PaperSize, PrintJobType, PrintPriority, PrinterStatusEnum
)
from exceptions import JobNotFoundError, PrinterNotFoundError, ValidationError
from clock import SystemClock
from documents import render_document
from events import JobEventBroadcaster, WebhookNotifier
from health_probe import StatusMonitor, build_probe
from init_database import seed_default_printers
from print_queue import Config, PrintQueueService
from printer_registry import (
    PrinterConfig, generate_printer_id, load_registry, save_registry, delete_printer_record
)
from queue_runner import PrintQueueRunner

# ==================== Logging Setup ====================

logger = logging.getLogger("bill_printer_service")
logger.setLevel(logging.INFO)

os.makedirs(Config.LOG_DIR, exist_ok=True)

file_handler = RotatingFileHandler(
    os.path.join(Config.LOG_DIR, "bill_printer_service.log"), maxBytes=10*1024*1024, backupCount=5
)
console_handler = logging.StreamHandler()

formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
file_handler.setFormatter(formatter)
console_handler.setFormatter(formatter)

logger.addHandler(file_handler)
logger.addHandler(console_handler)

# ==================== Request Models ====================

class PrinterCreate(BaseModel):
    """Request to configure a printer"""
    name: str = Field(min_length=1, max_length=255)
    type: PrinterType
    connection: PrinterConnectionType
    paper_size: PaperSize
    ip_address: Optional[str] = None
    port: Optional[int] = Field(default=None, gt=0, le=65535)
    is_default: bool = False
    is_enabled: bool = True

class PrinterUpdate(PrinterCreate):
    """Full printer edit; omitted flags keep their current value"""
    is_default: Optional[bool] = None
    is_enabled: Optional[bool] = None

class PrinterEnabledRequest(BaseModel):
    enabled: bool

class PrinterTestRequest(BaseModel):
    printer_id: str
    test_type: str = Field(default="connection", pattern="^(connection|print)$")

class PrintJobRequest(BaseModel):
    """Request to queue a document"""
    type: str
    data: Any = None
    priority: str = "normal"
    printer_id: Optional[str] = None

# ==================== Global State ====================

print_service: Optional[PrintQueueService] = None
status_monitor: Optional[StatusMonitor] = None
queue_runner: Optional[PrintQueueRunner] = None
broadcaster = JobEventBroadcaster()

# ==================== Lifespan Management ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the registry, queue and workers on startup"""
    global print_service, status_monitor, queue_runner

    logger.info("🚀 Starting Bill Printer Service...")

    try:
        init_db()
        with get_db_context() as db:
            added = seed_default_printers(db)
            if added:
                logger.info(f"✅ Seeded {added} default printers")
            registry = load_registry(db)
    except Exception as e:
        logger.error(f"❌ Database init failed: {e}")
        raise

    clock = SystemClock()
    print_service = PrintQueueService(registry, clock=clock)
    print_service.subscribe(broadcaster)
    webhook_notifier = None
    if Config.WEBHOOK_URL:
        webhook_notifier = WebhookNotifier(Config.WEBHOOK_URL)
        print_service.subscribe(webhook_notifier)
        logger.info(f"📨 Job webhooks enabled: {Config.WEBHOOK_URL}")

    status_monitor = StatusMonitor(registry, build_probe(Config.PRINTER_PROBE))
    queue_runner = PrintQueueRunner(print_service, status_monitor, clock=clock)
    queue_runner.start()

    for printer in registry.list_printers():
        logger.info(f"  🖨️ {printer.id}: {printer.name} ({printer.status.value}{', default' if printer.is_default else ''})")

    yield

    logger.info("🛑 Shutting down Bill Printer Service...")
    await queue_runner.stop()
    if webhook_notifier is not None:
        await webhook_notifier.flush()

# ==================== FastAPI App ====================

app = FastAPI(
    title="Bill Printer Service",
    version="1.0",
    description="Printer registry and print queue for the POS back-office",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== Dependencies ====================

def get_print_service() -> PrintQueueService:
    if print_service is None:
        raise HTTPException(status_code=503, detail="Print service not initialized")
    return print_service

def get_status_monitor() -> StatusMonitor:
    if status_monitor is None:
        raise HTTPException(status_code=503, detail="Status monitor not initialized")
    return status_monitor

def get_broadcaster() -> JobEventBroadcaster:
    return broadcaster

# ==================== Printers ====================

@app.get("/printers")
async def list_printers(service: PrintQueueService = Depends(get_print_service)):
    """Get all configured printers"""
    return [p.to_dict() for p in service.registry.list_printers()]

@app.post("/printers", status_code=status.HTTP_201_CREATED)
async def create_printer(
    request: PrinterCreate,
    service: PrintQueueService = Depends(get_print_service),
    db: Session = Depends(get_db)
):
    """Configure a new printer; status stays offline until tested"""
    printer = PrinterConfig(
        id=generate_printer_id(),
        name=request.name,
        type=request.type,
        connection=request.connection,
        paper_size=request.paper_size,
        ip_address=request.ip_address,
        port=request.port,
        is_default=request.is_default,
        is_enabled=request.is_enabled,
        status=PrinterStatusEnum.OFFLINE,
    )

    try:
        service.registry.add_printer(printer)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    save_registry(db, service.registry)
    return printer.to_dict()

@app.post("/printers/test")
async def test_printer(
    request: PrinterTestRequest,
    service: PrintQueueService = Depends(get_print_service),
    monitor: StatusMonitor = Depends(get_status_monitor),
    db: Session = Depends(get_db)
):
    """Test a printer's connection, or send it a test page"""
    try:
        if request.test_type == "print":
            job_id = service.enqueue_test_page(request.printer_id)
            return {"success": True, "message": "Test page queued", "job_id": job_id}

        printer = await monitor.test_printer(request.printer_id)
    except PrinterNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    save_registry(db, service.registry)
    success = printer.status == PrinterStatusEnum.ONLINE
    return {
        "success": success,
        "message": "Printer test completed successfully" if success else "Printer test failed",
        "details": {
            "printer_id": printer.id,
            "test_type": request.test_type,
            "timestamp": datetime.now().isoformat(),
            "status": printer.status.value
        }
    }

@app.get("/printers/{printer_id}")
async def get_printer(printer_id: str, service: PrintQueueService = Depends(get_print_service)):
    """Get specific printer details"""
    try:
        return service.registry.get_printer(printer_id).to_dict()
    except PrinterNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@app.put("/printers/{printer_id}")
async def update_printer(
    printer_id: str,
    request: PrinterUpdate,
    service: PrintQueueService = Depends(get_print_service),
    db: Session = Depends(get_db)
):
    """Replace a printer's configuration"""
    fields = request.model_dump(exclude={"is_default", "is_enabled"})
    if request.is_enabled is not None:
        fields["is_enabled"] = request.is_enabled
    if request.is_default is not None:
        fields["is_default"] = request.is_default

    try:
        printer = service.registry.update_printer(printer_id, **fields)
    except PrinterNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    save_registry(db, service.registry)
    return printer.to_dict()

@app.delete("/printers/{printer_id}")
async def delete_printer(
    printer_id: str,
    service: PrintQueueService = Depends(get_print_service),
    db: Session = Depends(get_db)
):
    """Remove a printer; the default moves to the first enabled printer left"""
    try:
        service.registry.remove_printer(printer_id)
    except PrinterNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    delete_printer_record(db, printer_id)
    save_registry(db, service.registry)
    default = service.registry.default_printer()
    return {
        "message": "Printer deleted successfully",
        "default_printer_id": default.id if default else None
    }

@app.post("/printers/{printer_id}/enabled")
async def set_printer_enabled(
    printer_id: str,
    request: PrinterEnabledRequest,
    service: PrintQueueService = Depends(get_print_service),
    db: Session = Depends(get_db)
):
    """Enable or disable a printer"""
    try:
        printer = service.registry.set_enabled(printer_id, request.enabled)
    except PrinterNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    save_registry(db, service.registry)
    return printer.to_dict()

@app.post("/printers/{printer_id}/default")
async def set_default_printer(
    printer_id: str,
    service: PrintQueueService = Depends(get_print_service),
    db: Session = Depends(get_db)
):
    """Make a printer the default"""
    if not service.registry.set_default(printer_id):
        raise HTTPException(status_code=404, detail=f"Printer {printer_id} not found")

    save_registry(db, service.registry)
    return service.registry.get_printer(printer_id).to_dict()

# ==================== Print Jobs ====================

@app.get("/print-jobs")
async def list_print_jobs(
    status: Optional[str] = None,
    limit: int = Config.DEFAULT_LIST_LIMIT,
    offset: int = 0,
    service: PrintQueueService = Depends(get_print_service)
):
    """Get queued print jobs, optionally filtered by status"""
    try:
        page = service.page_jobs(status=status, limit=limit, offset=offset)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    page["jobs"] = [job.to_dict() for job in page["jobs"]]
    return page

@app.post("/print-jobs", status_code=status.HTTP_201_CREATED)
async def create_print_job(request: PrintJobRequest, service: PrintQueueService = Depends(get_print_service)):
    """Queue a document for printing"""
    if request.data is None:
        raise HTTPException(status_code=400, detail="Missing required field: data")

    if request.printer_id is not None and request.printer_id not in service.registry:
        raise HTTPException(status_code=404, detail=f"Printer {request.printer_id} not found")

    try:
        job_id = service.enqueue(request.type, request.data, request.priority, printer_id=request.printer_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Print job {job_id} queued ({request.type}, {request.priority})")
    return service.get_job(job_id).to_dict()

@app.delete("/print-jobs")
async def clear_print_queue(service: PrintQueueService = Depends(get_print_service)):
    """Remove every job from the queue"""
    removed = service.clear_queue()
    return {"message": "Print queue cleared", "removed": removed}

@app.post("/print-jobs/retry-failed")
async def retry_failed_print_jobs(service: PrintQueueService = Depends(get_print_service)):
    """Requeue all failed jobs, skipping backoff"""
    retried = service.retry_all_failed()
    return {"message": "Failed print jobs have been requeued", "retried": retried}

@app.get("/print-jobs/stats")
async def print_job_stats(service: PrintQueueService = Depends(get_print_service)):
    """Job counts by status and printer availability"""
    return service.stats()

@app.get("/print-jobs/stream")
async def stream_print_jobs(events: JobEventBroadcaster = Depends(get_broadcaster)):
    """SSE endpoint for real-time job updates"""
    client_id = uuid.uuid4().hex
    queue = await events.connect(client_id)

    async def event_generator():
        try:
            yield f"data: {json.dumps({'event': 'connected', 'client_id': client_id})}\n\n"

            while True:
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield f"data: {json.dumps(message, default=str)}\n\n"
                except asyncio.TimeoutError:
                    yield f"data: {json.dumps({'event': 'heartbeat'})}\n\n"
        finally:
            await events.disconnect(client_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"
        }
    )

@app.get("/print-jobs/{job_id}")
async def get_print_job(job_id: str, service: PrintQueueService = Depends(get_print_service)):
    """Get status of a specific print job"""
    try:
        return service.get_job(job_id).to_dict()
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

@app.get("/print-jobs/{job_id}/preview", response_class=PlainTextResponse)
async def preview_print_job(job_id: str, service: PrintQueueService = Depends(get_print_service)):
    """Render a job as it would be printed on its printer's paper"""
    try:
        job = service.get_job(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    printer = service.registry.find(job.printer_id) or service.registry.default_printer()
    paper_size = printer.paper_size if printer else PaperSize.MM80
    return render_document(job.type, job.data, paper_size)

# ==================== System ====================

@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    try:
        db.execute(text("SELECT 1"))
        db_healthy = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_healthy = False

    service_healthy = print_service is not None
    workers_healthy = queue_runner is not None and queue_runner.running

    overall_healthy = db_healthy and service_healthy and workers_healthy

    return {
        "status": "healthy" if overall_healthy else "degraded",
        "timestamp": datetime.now().isoformat(),
        "components": {
            "database": "healthy" if db_healthy else "unhealthy",
            "print_queue": "healthy" if service_healthy else "unhealthy",
            "workers": "healthy" if workers_healthy else "unhealthy"
        },
        "version": "1.0"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
