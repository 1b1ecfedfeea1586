# app/worker.py
"""
Long-running build worker.

Receives one correlation key at a time from the submission queue, runs the
build pipeline and acknowledges the message. Run several processes against
the same queue to scale out.

    python worker.py
"""
import signal
import threading
import time
from typing import Optional

from core.config import Settings, settings
from core.errors import BuildDispatchError, TransportError
from core.logger import logger
from integrations.object_store import ObjectStore
from integrations.sqs_client import JobQueue, QueueMessage
from services.build_pipeline import BuildPipeline, JobOutcome
from services.correlation import parse_correlation_key
from services.result_sink import build_result_sink
from services.toolchain import CommandToolchain


class BuildWorker:
    def __init__(self, config: Settings, submission_queue: JobQueue, pipeline: BuildPipeline):
        self.submission_queue = submission_queue
        self.pipeline = pipeline
        self.error_backoff = config.WORKER_ERROR_BACKOFF_SECONDS
        self.stop_event = threading.Event()
        self.jobs_processed = 0

    def request_stop(self, *_args) -> None:
        if not self.stop_event.is_set():
            logger.info("Shutdown requested, finishing current job")
        self.stop_event.set()

    def poll_once(self) -> Optional[JobOutcome]:
        """
        Receive and process at most one message. Consume errors are logged and
        swallowed so the loop keeps going.
        """
        try:
            message = self.submission_queue.receive()
        except TransportError as e:
            logger.error(f"Error occurred: {e.message}")
            self.stop_event.wait(self.error_backoff)
            return None

        if message is None:
            return None
        return self.handle(message)

    def handle(self, message: QueueMessage) -> Optional[JobOutcome]:
        logger.info(
            f"Consumed message '{message.body}' id={message.message_id} "
            f"receive_count={message.receive_count}"
        )
        key = parse_correlation_key(message.body)
        if key is None:
            logger.error(f"Dropping message with invalid correlation key: {message.body!r}")
            self._ack(message)
            return None

        try:
            outcome = self.pipeline.run(key)
        except BuildDispatchError as e:
            logger.error(f"[{key}] job failed: {e.message}")
            outcome = None
        except Exception:
            # Left unacknowledged; the broker redelivers after the visibility timeout.
            logger.exception(f"[{key}] unexpected error, message will be redelivered")
            return None

        self._ack(message)
        self.jobs_processed += 1
        return outcome

    def _ack(self, message: QueueMessage) -> None:
        try:
            self.submission_queue.ack(message)
        except TransportError as e:
            logger.error(f"Failed to acknowledge message {message.message_id}: {e.message}")

    def close(self) -> None:
        self.submission_queue.close()
        self.pipeline.result_sink.close()

    def run_forever(self) -> None:
        logger.info(f"Worker listening on {self.submission_queue.queue_url}")
        while not self.stop_event.is_set():
            self.poll_once()
        logger.info(f"Worker stopped after {self.jobs_processed} jobs")


def create_worker(config: Optional[Settings] = None) -> BuildWorker:
    config = config or settings
    object_store = ObjectStore(config)
    submission_queue = JobQueue(config, config.SUBMISSION_QUEUE_URL)
    pipeline = BuildPipeline(
        config,
        object_store=object_store,
        result_sink=build_result_sink(config, object_store),
        toolchain=CommandToolchain(config.BUILD_COMMAND, timeout_seconds=config.BUILD_TIMEOUT_SECONDS),
    )
    return BuildWorker(config, submission_queue, pipeline)


def main() -> None:
    worker = create_worker()
    signal.signal(signal.SIGINT, worker.request_stop)
    signal.signal(signal.SIGTERM, worker.request_stop)
    started = time.monotonic()
    try:
        worker.run_forever()
    finally:
        worker.close()
        logger.info(f"Worker uptime {time.monotonic() - started:.0f}s")


if __name__ == "__main__":
    main()
