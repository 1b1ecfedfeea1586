# app/integrations/sqs_client.py
import concurrent.futures
from dataclasses import dataclass, field
from typing import Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from core.aws_client import get_sqs_client
from core.config import Settings
from core.errors import TransportError
from core.logger import logger

CORRELATION_KEY_ATTRIBUTE = "correlation_key"

# SQS limit for body plus message attributes
MAX_MESSAGE_BYTES = 256 * 1024


@dataclass
class QueueMessage:
    body: str
    receipt_handle: str
    message_id: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    receive_count: int = 1


class JobQueue:
    """
    One SQS queue. Every worker receiving from the same queue shares its
    messages; an unacknowledged message becomes visible again after the
    visibility timeout, so delivery is at-least-once.
    """

    def __init__(self, config: Settings, queue_url: str, client=None):
        self.queue_url = queue_url
        self.flush_timeout = config.QUEUE_FLUSH_TIMEOUT_SECONDS
        self.wait_seconds = config.WORKER_WAIT_SECONDS
        self.visibility_timeout = config.WORKER_VISIBILITY_TIMEOUT
        self.client = client if client is not None else get_sqs_client(config)
        self._sender = concurrent.futures.ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="sqs-send"
        )

    def send(self, body: str, *, key: Optional[str] = None) -> Optional[str]:
        """
        Send a message and wait up to the flush deadline for the broker's
        acknowledgment. Returns the message id, or None when the deadline
        passed first; in that case the message may be lost.
        """
        params = {"QueueUrl": self.queue_url, "MessageBody": body}
        if key is not None:
            params["MessageAttributes"] = {
                CORRELATION_KEY_ATTRIBUTE: {"DataType": "String", "StringValue": key},
            }

        size = len(body.encode("utf-8"))
        if key is not None:
            size += len(CORRELATION_KEY_ATTRIBUTE) + len("String") + len(key.encode("utf-8"))
        if size > MAX_MESSAGE_BYTES:
            raise TransportError(
                f"Message of {size} bytes exceeds the {MAX_MESSAGE_BYTES} byte SQS limit for {self.queue_url}",
                correlation_key=key,
            )

        future = self._sender.submit(self.client.send_message, **params)
        try:
            resp = future.result(timeout=self.flush_timeout)
        except concurrent.futures.TimeoutError:
            logger.warning(
                "SQS send not acknowledged within %.1fs, message may be lost queue=%s key=%s",
                self.flush_timeout, self.queue_url, key,
            )
            return None
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"Failed to send to {self.queue_url}: {e}", correlation_key=key) from e

        msg_id = resp.get("MessageId", "")
        logger.info("SQS publish ok queue=%s key=%s msg_id=%s", self.queue_url, key, msg_id)
        return msg_id

    def receive(self) -> Optional[QueueMessage]:
        """Long-poll for a single message. Returns None when the wait ends empty."""
        try:
            resp = self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=self.wait_seconds,
                VisibilityTimeout=self.visibility_timeout,
                MessageAttributeNames=["All"],
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"Failed to receive from {self.queue_url}: {e}") from e

        messages = resp.get("Messages") or []
        if not messages:
            return None

        raw = messages[0]
        attributes = {
            name: value.get("StringValue", "")
            for name, value in (raw.get("MessageAttributes") or {}).items()
        }
        return QueueMessage(
            body=raw.get("Body", ""),
            receipt_handle=raw["ReceiptHandle"],
            message_id=raw.get("MessageId", ""),
            attributes=attributes,
            receive_count=int((raw.get("Attributes") or {}).get("ApproximateReceiveCount", 1)),
        )

    def ack(self, message: QueueMessage) -> None:
        """Delete a processed message so it is never redelivered."""
        try:
            self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle)
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"Failed to acknowledge {message.message_id}: {e}") from e

    def ping(self) -> bool:
        try:
            self.client.get_queue_attributes(QueueUrl=self.queue_url, AttributeNames=["QueueArn"])
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"SQS health check failed for {self.queue_url}: {e}")
            return False

    def close(self) -> None:
        self._sender.shutdown(wait=False)
