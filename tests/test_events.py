import asyncio
import json

import httpx

from conftest import ScriptedSubmitter, failures, run
from events import CallbackObserver, JobEventBroadcaster, WebhookNotifier
from exceptions import SubmissionError
from models import PrinterStatusEnum
from print_queue import PrintQueueService


def test_callback_observer_receives_completion(registry, clock):
    completed, errors = [], []
    service = PrintQueueService(registry, submitter=ScriptedSubmitter([None]), clock=clock)
    service.subscribe(CallbackObserver(
        on_print_complete=completed.append,
        on_print_error=lambda job_id, error: errors.append((job_id, error)),
    ))
    job_id = service.enqueue("receipt", {})

    run(service.process_next())

    assert completed == [job_id]
    assert errors == []


def test_callback_observer_without_callbacks_is_silent(registry, clock):
    service = PrintQueueService(registry, submitter=ScriptedSubmitter(failures(3)), clock=clock)
    service.subscribe(CallbackObserver())
    service.enqueue("receipt", {})

    for _ in range(3):
        run(service.process_next())

    assert service.stats()["failed_jobs"] == 1


def test_broadcaster_fans_out_to_every_client():
    broadcaster = JobEventBroadcaster()

    async def scenario():
        first = await broadcaster.connect("dashboard")
        second = await broadcaster.connect("kitchen")
        await broadcaster.publish("print_complete", {"job_id": "job_1"})
        return first.get_nowait(), second.get_nowait()

    a, b = run(scenario())

    assert a["event"] == b["event"] == "print_complete"
    assert a["data"] == {"job_id": "job_1"}
    assert "timestamp" in a


def test_broadcaster_disconnect_removes_client():
    broadcaster = JobEventBroadcaster()

    async def scenario():
        queue = await broadcaster.connect("dashboard")
        await broadcaster.disconnect("dashboard", queue)
        await broadcaster.publish("print_error", {"job_id": "job_1"})
        return queue

    queue = run(scenario())

    assert queue.empty()
    assert "dashboard" not in broadcaster.connections


def test_broadcaster_streams_job_lifecycle(registry, clock):
    broadcaster = JobEventBroadcaster()
    service = PrintQueueService(registry, submitter=ScriptedSubmitter([None]), clock=clock)
    service.subscribe(broadcaster)

    async def scenario():
        queue = await broadcaster.connect("dashboard")
        job_id = service.enqueue("receipt", {"id": "sale-1"})
        await asyncio.sleep(0)
        await service.process_next()
        await asyncio.sleep(0)

        events = []
        while not queue.empty():
            events.append(queue.get_nowait())
        return job_id, events

    job_id, events = run(scenario())

    assert [e["event"] for e in events] == [
        "job_update", "job_update", "job_update", "print_complete"
    ]
    assert [e["data"].get("status") for e in events[:3]] == ["pending", "printing", "completed"]
    assert events[-1]["data"] == {"job_id": job_id}


def test_broadcaster_reports_failures(registry, clock):
    registry.set_status("1", PrinterStatusEnum.ERROR)
    broadcaster = JobEventBroadcaster()
    service = PrintQueueService(registry, clock=clock)
    service.subscribe(broadcaster)

    async def scenario():
        queue = await broadcaster.connect("dashboard")
        job_id = service.enqueue("receipt", {})
        await asyncio.sleep(0)
        await service.process_next()
        await asyncio.sleep(0)
        events = []
        while not queue.empty():
            events.append(queue.get_nowait())
        return job_id, events

    job_id, events = run(scenario())

    assert events[-1] == {
        "event": "print_error",
        "data": {"job_id": job_id, "error": "Printer 1 is error"},
        "timestamp": events[-1]["timestamp"],
    }


def test_webhook_posts_job_status():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    notifier = WebhookNotifier("http://hooks.local/print", transport=httpx.MockTransport(handler))

    async def scenario():
        assert await notifier.send("job_1", "completed") is True
        notifier.on_print_error("job_2", "Failed to print document")
        await notifier.flush()

    run(scenario())

    assert seen[0]["job_id"] == "job_1"
    assert seen[0]["status"] == "completed"
    assert seen[1]["status"] == "failed"
    assert seen[1]["message"] == "Failed to print document"


def test_webhook_reports_rejected_delivery():
    notifier = WebhookNotifier(
        "http://hooks.local/print",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    assert run(notifier.send("job_1", "completed")) is False


def test_webhook_swallows_network_errors():
    def handler(request):
        raise httpx.ConnectError("no route to host")

    notifier = WebhookNotifier("http://hooks.local/print", transport=httpx.MockTransport(handler))

    assert run(notifier.send("job_1", "failed", str(SubmissionError()))) is False


def test_slow_webhook_does_not_hold_up_processing(registry, clock):
    seen = []

    async def scenario():
        released = asyncio.Event()

        async def handler(request):
            await released.wait()
            seen.append(json.loads(request.content)["job_id"])
            return httpx.Response(200)

        notifier = WebhookNotifier("http://hooks.local/print", transport=httpx.MockTransport(handler))
        service = PrintQueueService(registry, submitter=ScriptedSubmitter([None]), clock=clock)
        service.subscribe(notifier)
        job_id = service.enqueue("receipt", {})

        job = await service.process_next()
        assert job.status.value == "completed"
        assert seen == []

        released.set()
        await notifier.flush()
        return job_id

    job_id = run(scenario())
    assert seen == [job_id]


def test_broadcaster_lock_belongs_to_serving_loop():
    broadcaster = JobEventBroadcaster()
    assert broadcaster._lock is None

    async def scenario():
        queue = await broadcaster.connect("dashboard")
        await broadcaster.publish("print_complete", {"job_id": "job_1"})
        return queue.get_nowait()

    assert run(scenario())["event"] == "print_complete"
    assert broadcaster._lock is not None
