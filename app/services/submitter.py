# services/submitter.py
"""
Job intake: store the payload, enqueue its correlation key and, in sync
mode, wait for the worker's result to show up in the bucket.

Storage Structure in the bucket:
- Payload: {key} -> raw zip bytes (deleted by the worker after download)
- Result:  {key}.{RESULT_SUFFIX} -> artifact bytes (deleted on retrieval)
"""

import time
from typing import Callable, Optional

from core.config import Settings
from core.errors import EmptyPayloadError, ResultTimeoutError
from core.logger import logger
from integrations.object_store import ObjectStore
from integrations.sqs_client import JobQueue
from services.correlation import new_correlation_key
from services.result_sink import result_key


class Submitter:
    """
    Hands a payload to the worker pool.

    `clock` and `sleep` are injectable so the poll deadline can be exercised
    without real waiting.
    """

    def __init__(
        self,
        config: Settings,
        object_store: ObjectStore,
        submission_queue: JobQueue,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.object_store = object_store
        self.submission_queue = submission_queue
        self.mode = config.SUBMIT_MODE
        self.result_sink = config.RESULT_SINK
        self.result_suffix = config.RESULT_SUFFIX
        self.warmup_seconds = config.RESULT_WARMUP_SECONDS
        self.poll_interval = config.RESULT_POLL_INTERVAL_SECONDS
        self.timeout_seconds = config.RESULT_TIMEOUT_SECONDS
        self._clock = clock
        self._sleep = sleep

    # ========================================================================
    # INTAKE
    # ========================================================================

    def submit(self, payload: bytes) -> str:
        """
        Store the payload and enqueue a job for it.

        Returns:
            str: the correlation key for the new job

        Raises:
            EmptyPayloadError: payload has no bytes
            StorageError: bucket could not be created or written
            TransportError: the broker rejected the job message
        """
        if not payload:
            raise EmptyPayloadError()

        key = new_correlation_key()
        self.object_store.ensure_bucket()
        self.object_store.put_payload(key, payload)
        logger.info(f"Stored payload {key} ({len(payload)} bytes)")

        msg_id = self.submission_queue.send(key)
        if msg_id is None:
            logger.warning(f"Job {key} enqueue unconfirmed; it may never be built")
        else:
            logger.info(f"Enqueued job {key} msg_id={msg_id}")
        return key

    # ========================================================================
    # RESULT RETRIEVAL
    # ========================================================================

    def fetch_result(self, key: str) -> Optional[bytes]:
        """
        One-shot retrieval. Returns the artifact and deletes it, or None if the
        result is not there (not built yet, abandoned, or already taken).
        """
        name = result_key(key, self.result_suffix)
        if not self.object_store.exists(name):
            return None
        artifact = self.object_store.get_bytes(name)
        self.object_store.delete(name)
        logger.info(f"Retrieved and deleted result {name} ({len(artifact)} bytes)")
        return artifact

    def wait_for_result(self, key: str) -> bytes:
        """
        Poll the bucket for the job's result until the timeout elapses.

        The timeout is measured from the end of the warm-up sleep. The last
        check happens at or after the deadline, and the loop never sleeps past
        it, so a miss is reported no later than deadline + one poll interval.
        """
        if self.warmup_seconds > 0:
            self._sleep(self.warmup_seconds)

        deadline = self._clock() + self.timeout_seconds
        attempts = 0
        while True:
            attempts += 1
            artifact = self.fetch_result(key)
            if artifact is not None:
                logger.info(f"Result for {key} found after {attempts} checks")
                return artifact

            now = self._clock()
            if now >= deadline:
                logger.warning(f"Timed out waiting for {key} after {attempts} checks")
                raise ResultTimeoutError(key, self.timeout_seconds)
            self._sleep(min(self.poll_interval, deadline - now))

    def submit_and_wait(self, payload: bytes) -> tuple:
        """Sync mode: returns (correlation key, artifact bytes)."""
        key = self.submit(payload)
        return key, self.wait_for_result(key)
