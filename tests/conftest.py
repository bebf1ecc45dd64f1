import asyncio
import os
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="billprint-logs-"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clock import ManualClock
from database import Base
from events import PrintJobObserver
from exceptions import SubmissionError
from models import PrinterType, PrinterConnectionType, PaperSize, PrinterStatusEnum
from print_queue import PrintQueueService, PrintSubmitter, SimulatedSubmitter
from printer_registry import PrinterConfig, PrinterRegistry

START_TIME = 1_700_000_000.0


def run(coro):
    """Drive one async scenario to completion"""
    return asyncio.run(coro)


class RecordingObserver(PrintJobObserver):
    def __init__(self):
        self.completed = []
        self.errors = []
        self.updates = []

    def on_job_update(self, job):
        self.updates.append((job.id, job.status.value))

    def on_print_complete(self, job_id):
        self.completed.append(job_id)

    def on_print_error(self, job_id, error):
        self.errors.append((job_id, error))


class ScriptedSubmitter(PrintSubmitter):
    """Plays back a fixed list of outcomes: None succeeds, an exception is raised"""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def submit(self, job, printer):
        self.calls.append((job.id, printer.id if printer else None))
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if outcome is not None:
            raise outcome


def failures(count):
    return [SubmissionError() for _ in range(count)]


def make_printers():
    return [
        PrinterConfig(
            id="1", name="Main Receipt Printer", type=PrinterType.THERMAL,
            connection=PrinterConnectionType.USB, paper_size=PaperSize.MM80,
            is_default=True, status=PrinterStatusEnum.ONLINE,
        ),
        PrinterConfig(
            id="2", name="Kitchen Printer", type=PrinterType.THERMAL,
            connection=PrinterConnectionType.NETWORK, paper_size=PaperSize.MM58,
            ip_address="192.168.1.100", port=9100, status=PrinterStatusEnum.ONLINE,
        ),
        PrinterConfig(
            id="3", name="Invoice Printer", type=PrinterType.LASER,
            connection=PrinterConnectionType.NETWORK, paper_size=PaperSize.A4,
            ip_address="192.168.1.101", port=9100, status=PrinterStatusEnum.ONLINE,
        ),
    ]


@pytest.fixture
def clock():
    return ManualClock(start=START_TIME)


@pytest.fixture
def registry():
    return PrinterRegistry(make_printers())


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def service(registry, clock, observer):
    svc = PrintQueueService(registry, submitter=SimulatedSubmitter(clock=clock, delay=0), clock=clock)
    svc.subscribe(observer)
    return svc


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
