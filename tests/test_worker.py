import uuid

import pytest

from conftest import FakeToolchain, make_zip
from schemas.job_models import JobState
from services.build_pipeline import BuildPipeline
from services.result_sink import ObjectStoreResultSink, QueueResultSink
from worker import BuildWorker


@pytest.fixture
def pipeline(settings, object_store):
    return BuildPipeline(settings, object_store, ObjectStoreResultSink(object_store, "dll"), FakeToolchain())


@pytest.fixture
def worker(settings, submission_queue, pipeline):
    return BuildWorker(settings, submission_queue, pipeline)


def _enqueue_job(object_store, submission_queue, files=None) -> str:
    key = str(uuid.uuid4())
    object_store.put_payload(key, make_zip(files or {"App.csproj": b"<Project />"}))
    submission_queue.send(key)
    return key


def test_poll_once_processes_and_acknowledges(worker, object_store, submission_queue, sqs_client):
    key = _enqueue_job(object_store, submission_queue)

    outcome = worker.poll_once()

    assert outcome.state == JobState.PUBLISHED
    assert object_store.exists(f"{key}.dll")
    assert sqs_client.in_flight == {}
    assert len(sqs_client.deleted) == 1
    assert worker.jobs_processed == 1


def test_abandoned_job_is_still_acknowledged(worker, object_store, submission_queue, sqs_client):
    _enqueue_job(object_store, submission_queue, {"notes.txt": b"nothing to build"})

    outcome = worker.poll_once()

    assert outcome.state == JobState.NO_PROJECT_FOUND
    assert sqs_client.in_flight == {}


def test_empty_queue_returns_none(worker):
    assert worker.poll_once() is None
    assert worker.jobs_processed == 0


def test_invalid_key_is_dropped(worker, submission_queue, sqs_client, pipeline, monkeypatch):
    calls = []
    monkeypatch.setattr(pipeline, "run", lambda key: calls.append(key))
    submission_queue.send("../../etc/passwd")

    assert worker.poll_once() is None
    assert calls == []
    assert len(sqs_client.deleted) == 1


def test_receive_error_does_not_stop_worker(worker, object_store, submission_queue, sqs_client):
    key = _enqueue_job(object_store, submission_queue)
    sqs_client.fail_receive = 1

    assert worker.poll_once() is None
    outcome = worker.poll_once()

    assert outcome.correlation_key == key


def test_unexpected_error_leaves_message_for_redelivery(worker, object_store, submission_queue, sqs_client, pipeline, monkeypatch):
    _enqueue_job(object_store, submission_queue)

    def boom(key):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(pipeline, "run", boom)

    assert worker.poll_once() is None
    assert len(sqs_client.in_flight) == 1
    assert sqs_client.deleted == []


def test_run_forever_drains_current_job_then_stops(worker, object_store, submission_queue, pipeline, monkeypatch):
    keys = [_enqueue_job(object_store, submission_queue) for _ in range(3)]
    real_run = pipeline.run
    processed = []

    def run_then_stop(key):
        outcome = real_run(key)
        processed.append(key)
        worker.request_stop()
        return outcome

    monkeypatch.setattr(pipeline, "run", run_then_stop)
    worker.run_forever()

    assert processed == keys[:1]
    assert object_store.exists(f"{keys[0]}.dll")
    assert not object_store.exists(f"{keys[1]}.dll")


def test_close_releases_submission_and_completion_queues(settings, object_store, submission_queue, completion_queue):
    pipeline = BuildPipeline(settings, object_store, QueueResultSink(completion_queue), FakeToolchain())
    worker = BuildWorker(settings, submission_queue, pipeline)

    worker.close()

    for queue in (submission_queue, completion_queue):
        with pytest.raises(RuntimeError):
            queue.send("after-close")
