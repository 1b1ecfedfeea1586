# services/result_sink.py
"""
Result sinks: how a finished artifact travels back to the caller.

- ObjectStoreResultSink uploads the bytes as <key>.<suffix>; the submitter
  polls for that object and deletes it on retrieval.
- QueueResultSink embeds the bytes, base64 encoded, in a completion-queue
  message tagged with the correlation key. SQS caps a message at 256 KB,
  so artifacts above roughly 192 KB cannot travel this way.

The deployment picks one with RESULT_SINK.
"""
import base64
from abc import ABC, abstractmethod

from core.config import Settings
from core.logger import logger
from integrations.object_store import ObjectStore
from integrations.sqs_client import MAX_MESSAGE_BYTES, JobQueue


def result_key(correlation_key: str, suffix: str) -> str:
    return f"{correlation_key}.{suffix}"


class ResultSink(ABC):
    name = "abstract"

    @abstractmethod
    def publish(self, correlation_key: str, artifact: bytes) -> None:
        ...

    def close(self) -> None:
        pass


class ObjectStoreResultSink(ResultSink):
    name = "object_store"

    def __init__(self, object_store: ObjectStore, suffix: str):
        self.object_store = object_store
        self.suffix = suffix

    def publish(self, correlation_key: str, artifact: bytes) -> None:
        key = result_key(correlation_key, self.suffix)
        self.object_store.put_bytes(key, artifact)
        logger.info(f"Published result {key} ({len(artifact)} bytes)")


class QueueResultSink(ResultSink):
    name = "queue"

    def __init__(self, completion_queue: JobQueue):
        self.completion_queue = completion_queue

    def publish(self, correlation_key: str, artifact: bytes) -> None:
        body = base64.b64encode(artifact).decode("ascii")
        if len(body) > MAX_MESSAGE_BYTES:
            logger.error(
                f"Artifact for {correlation_key} is {len(artifact)} bytes ({len(body)} encoded), "
                f"too large for a completion message; use RESULT_SINK=object_store"
            )
        self.completion_queue.send(body, key=correlation_key)
        logger.info(f"Produced completion message for {correlation_key} ({len(artifact)} bytes)")

    def close(self) -> None:
        self.completion_queue.close()


def build_result_sink(config: Settings, object_store: ObjectStore, completion_queue: JobQueue = None) -> ResultSink:
    if config.RESULT_SINK == "queue":
        if completion_queue is None:
            completion_queue = JobQueue(config, config.COMPLETION_QUEUE_URL)
        return QueueResultSink(completion_queue)
    return ObjectStoreResultSink(object_store, config.RESULT_SUFFIX)
