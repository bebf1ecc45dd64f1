from conftest import START_TIME, run
from health_probe import StaticHealthProbe, StatusMonitor
from models import PrintJobStatus, PrinterStatusEnum
from print_queue import PrintQueueService, SimulatedSubmitter
from queue_runner import PrintQueueRunner


def test_processor_ticks_on_interval(service, clock):
    runner = PrintQueueRunner(service, clock=clock, process_interval=3, retry_interval=5)

    async def scenario():
        job_id = service.enqueue("receipt", {"id": "sale-1"})
        runner.start()
        assert runner.running

        await clock.advance(2.9)
        assert service.get_job(job_id).status == PrintJobStatus.PENDING

        await clock.advance(0.1)
        assert service.get_job(job_id).status == PrintJobStatus.COMPLETED
        assert service.get_job(job_id).completed_at == START_TIME + 3

        await runner.stop()

    run(scenario())
    assert not runner.running


def test_next_tick_waits_for_slow_print(registry, clock):
    service = PrintQueueService(registry, submitter=SimulatedSubmitter(clock=clock, delay=2), clock=clock)
    runner = PrintQueueRunner(service, clock=clock, process_interval=3, retry_interval=60)

    async def scenario():
        first = service.enqueue("receipt", {})
        second = service.enqueue("receipt", {})
        runner.start()

        await clock.advance(3)
        assert service.get_job(first).status == PrintJobStatus.PRINTING

        await clock.advance(2)
        assert service.get_job(first).status == PrintJobStatus.COMPLETED
        assert service.get_job(second).status == PrintJobStatus.PENDING

        # the loop sleeps a full interval after the print finishes
        await clock.advance(2.9)
        assert service.get_job(second).status == PrintJobStatus.PENDING

        await clock.advance(0.1)
        assert service.get_job(second).status == PrintJobStatus.PRINTING

        await clock.advance(2)
        assert service.get_job(second).completed_at == START_TIME + 10
        await runner.stop()

    run(scenario())


def test_retry_loop_requeues_after_backoff(service, registry, clock, observer):
    runner = PrintQueueRunner(service, clock=clock, process_interval=3, retry_interval=5)
    registry.set_status("1", PrinterStatusEnum.OFFLINE)

    async def scenario():
        job_id = service.enqueue("receipt", {})
        runner.start()

        await clock.advance(3)
        job = service.get_job(job_id)
        assert job.status == PrintJobStatus.FAILED
        assert job.retry_count == 1

        registry.set_status("1", PrinterStatusEnum.ONLINE)

        # backoff for one failure is 10s from creation; retry ticks at 5 and 10
        await clock.advance(6)
        assert job.status == PrintJobStatus.FAILED

        await clock.advance(2)
        assert job.status == PrintJobStatus.PENDING

        await clock.advance(1)
        assert job.status == PrintJobStatus.COMPLETED
        await runner.stop()
        return job_id

    job_id = run(scenario())
    assert observer.completed == [job_id]


def test_failing_tick_does_not_stop_loop(service, clock):
    calls = []

    class FlakyProbe(StaticHealthProbe):
        async def check(self, printer):
            calls.append(printer.id)
            raise RuntimeError("probe exploded")

    monitor = StatusMonitor(service.registry, FlakyProbe())
    runner = PrintQueueRunner(
        service, monitor=monitor, clock=clock, process_interval=3, retry_interval=5, monitor_interval=10
    )

    async def scenario():
        runner.start()
        await clock.advance(10)
        await clock.advance(10)
        still_running = runner.running
        await runner.stop()
        return still_running

    assert run(scenario()) is True
    assert calls == ["1", "1"]


def test_monitor_loop_refreshes_statuses(service, registry, clock):
    class DownProbe(StaticHealthProbe):
        async def check(self, printer):
            return PrinterStatusEnum.OFFLINE if printer.id == "2" else printer.status

    runner = PrintQueueRunner(
        service, monitor=StatusMonitor(registry, DownProbe()), clock=clock, monitor_interval=10
    )

    async def scenario():
        runner.start()
        await clock.advance(9)
        assert registry.get_printer("2").status == PrinterStatusEnum.ONLINE
        await clock.advance(1)
        assert registry.get_printer("2").status == PrinterStatusEnum.OFFLINE
        await runner.stop()

    run(scenario())


def test_stop_cancels_every_loop(service, clock):
    runner = PrintQueueRunner(service, monitor=StatusMonitor(service.registry), clock=clock)

    async def scenario():
        runner.start()
        await clock.advance(0)
        assert clock.pending_sleepers == 3

        await runner.stop()
        assert clock.pending_sleepers == 0

        job_id = service.enqueue("receipt", {})
        await clock.advance(60)
        return job_id

    job_id = run(scenario())
    assert service.get_job(job_id).status == PrintJobStatus.PENDING
    assert not runner.running


def test_start_twice_is_a_no_op(service, clock):
    runner = PrintQueueRunner(service, clock=clock)

    async def scenario():
        runner.start()
        tasks = list(runner._tasks)
        runner.start()
        same = runner._tasks == tasks
        await runner.stop()
        return same

    assert run(scenario()) is True
