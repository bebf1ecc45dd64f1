import pytest

from conftest import START_TIME, ScriptedSubmitter, failures, run
from models import PrintJobStatus, PrinterStatusEnum
from print_queue import PrintQueueService


def parked_job(service, retry_count):
    """A failed job as the retry scheduler would find it"""
    job = service.get_job(service.enqueue("receipt", {}))
    job.status = PrintJobStatus.FAILED
    job.retry_count = retry_count
    job.error = "Failed to print document"
    return job


@pytest.mark.parametrize("retry_count, delay", [(0, 5), (1, 10), (2, 20)])
def test_backoff_doubles_per_attempt(service, retry_count, delay):
    assert service.backoff_delay(retry_count) == delay


def test_backoff_uses_configured_base(registry, clock):
    service = PrintQueueService(registry, clock=clock, base_delay=2)
    assert service.backoff_delay(3) == 16


def test_job_waits_out_its_backoff(service, clock):
    job = parked_job(service, 0)

    run(clock.advance(4.9))
    assert service.retry_failed_jobs() == []
    assert job.status == PrintJobStatus.FAILED

    run(clock.advance(0.1))
    assert service.retry_failed_jobs() == [job.id]
    assert job.status == PrintJobStatus.PENDING
    assert job.retry_count == 0


def test_backoff_measured_from_creation(service, clock):
    run(clock.advance(30))
    job = parked_job(service, 2)

    run(clock.advance(19))
    assert service.retry_failed_jobs() == []

    run(clock.advance(1))
    assert service.retry_failed_jobs() == [job.id]


def test_exhausted_jobs_stay_failed(service, clock):
    job = parked_job(service, 3)

    run(clock.advance(3600))

    assert service.retry_failed_jobs() == []
    assert job.status == PrintJobStatus.FAILED
    assert job.retry_count == 3


def test_requeue_keeps_retry_count(service, clock):
    job = parked_job(service, 2)
    run(clock.advance(20))

    service.retry_failed_jobs()

    assert job.retry_count == 2
    assert job.error == "Failed to print document"


def test_completed_and_pending_jobs_are_untouched(service, clock):
    service.enqueue("receipt", {})
    waiting_id = service.enqueue("receipt", {})
    done = run(service.process_next())
    run(clock.advance(60))

    assert service.retry_failed_jobs() == []
    assert done.status == PrintJobStatus.COMPLETED
    assert service.get_job(waiting_id).status == PrintJobStatus.PENDING


def test_offline_printer_job_recovers_after_backoff(service, registry, clock, observer):
    registry.set_status("1", PrinterStatusEnum.OFFLINE)
    job_id = service.enqueue("receipt", {"id": "sale-9"})

    run(service.process_next())
    assert service.get_job(job_id).status == PrintJobStatus.FAILED

    registry.set_status("1", PrinterStatusEnum.ONLINE)
    run(clock.advance(9))
    assert service.retry_failed_jobs() == []

    run(clock.advance(1))
    assert service.retry_failed_jobs() == [job_id]

    job = run(service.process_next())
    assert job.status == PrintJobStatus.COMPLETED
    assert job.retry_count == 1
    assert observer.completed == [job_id]
    assert observer.errors == [(job_id, "Printer 1 is offline")]


def test_job_gives_up_after_max_attempts_through_scheduler(registry, clock):
    registry.set_status("1", PrinterStatusEnum.OFFLINE)
    service = PrintQueueService(registry, submitter=None, clock=clock)
    job_id = service.enqueue("receipt", {})

    for _ in range(3):
        run(service.process_next())
        run(clock.advance(60))
        service.retry_failed_jobs()

    job = service.get_job(job_id)
    assert job.status == PrintJobStatus.FAILED
    assert job.retry_count == 3


def test_max_retries_is_configurable(registry, clock):
    service = PrintQueueService(
        registry, submitter=ScriptedSubmitter(failures(5)), clock=clock, max_retries=5
    )
    job_id = service.enqueue("receipt", {})

    for _ in range(4):
        run(service.process_next())
    assert service.get_job(job_id).status == PrintJobStatus.PENDING

    run(service.process_next())
    assert service.get_job(job_id).status == PrintJobStatus.FAILED
    assert service.get_job(job_id).retry_count == 5
    assert clock.now() == START_TIME
