"""Shared pytest fixtures for the build dispatch tests.

The object store and queue are replaced by in-memory stand-ins that speak
the subset of the boto3 client API the integrations use, so ObjectStore and
JobQueue run unmodified against them.
"""

import io
import sys
import threading
import uuid
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from botocore.exceptions import ClientError

# Add app/ to Python path for imports
APP_ROOT = Path(__file__).parent.parent / "app"
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from core.config import Settings  # noqa: E402
from integrations.object_store import ObjectStore  # noqa: E402
from integrations.sqs_client import JobQueue  # noqa: E402
from services.toolchain import BuildOutcome  # noqa: E402


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class _Body:
    def __init__(self, data: bytes):
        self._data = data

    def read(self) -> bytes:
        return self._data


class FakeS3Client:
    """Thread-safe in-memory bucket store."""

    def __init__(self):
        self.buckets: Dict[str, Dict[str, bytes]] = {}
        self.acls: Dict[str, str] = {}
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def _bucket(self, name: str, operation: str) -> Dict[str, bytes]:
        if name not in self.buckets:
            raise _client_error("NoSuchBucket", operation)
        return self.buckets[name]

    def head_bucket(self, Bucket):
        self.calls.append("head_bucket")
        if Bucket not in self.buckets:
            raise _client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket):
        self.calls.append("create_bucket")
        with self._lock:
            if Bucket in self.buckets:
                raise _client_error("BucketAlreadyOwnedByYou", "CreateBucket")
            self.buckets[Bucket] = {}
        return {}

    def put_object(self, Bucket, Key, Body, ACL=None):
        self.calls.append("put_object")
        with self._lock:
            self._bucket(Bucket, "PutObject")[Key] = bytes(Body)
            if ACL:
                self.acls[Key] = ACL
        return {"ETag": "etag"}

    def head_object(self, Bucket, Key):
        self.calls.append("head_object")
        if Key not in self._bucket(Bucket, "HeadObject"):
            raise _client_error("404", "HeadObject")
        return {"ContentLength": len(self.buckets[Bucket][Key])}

    def get_object(self, Bucket, Key):
        self.calls.append("get_object")
        objects = self._bucket(Bucket, "GetObject")
        if Key not in objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": _Body(objects[Key])}

    def download_file(self, Bucket, Key, Filename):
        self.calls.append("download_file")
        objects = self._bucket(Bucket, "HeadObject")
        if Key not in objects:
            raise _client_error("404", "HeadObject")
        Path(Filename).write_bytes(objects[Key])

    def delete_object(self, Bucket, Key):
        self.calls.append("delete_object")
        with self._lock:
            self._bucket(Bucket, "DeleteObject").pop(Key, None)
        return {}


class FakeSQSClient:
    """In-memory queues keyed by URL; delete_message acknowledges."""

    def __init__(self):
        self.queues: Dict[str, List[dict]] = {}
        self.in_flight: Dict[str, dict] = {}
        self.deleted: List[str] = []
        self.fail_receive = 0
        self.fail_send = False

    def send_message(self, QueueUrl, MessageBody, MessageAttributes=None):
        if self.fail_send:
            raise _client_error("AWS.SimpleQueueService.NonExistentQueue", "SendMessage")
        message_id = str(uuid.uuid4())
        self.queues.setdefault(QueueUrl, []).append({
            "MessageId": message_id,
            "Body": MessageBody,
            "MessageAttributes": MessageAttributes or {},
        })
        return {"MessageId": message_id}

    def receive_message(self, QueueUrl, **kwargs):
        if self.fail_receive:
            self.fail_receive -= 1
            raise _client_error("ServiceUnavailable", "ReceiveMessage")
        pending = self.queues.get(QueueUrl) or []
        if not pending:
            return {}
        raw = pending.pop(0)
        handle = f"rh-{raw['MessageId']}"
        self.in_flight[handle] = raw
        return {"Messages": [{
            "MessageId": raw["MessageId"],
            "ReceiptHandle": handle,
            "Body": raw["Body"],
            "MessageAttributes": raw["MessageAttributes"],
            "Attributes": {"ApproximateReceiveCount": "1"},
        }]}

    def delete_message(self, QueueUrl, ReceiptHandle):
        self.in_flight.pop(ReceiptHandle, None)
        self.deleted.append(ReceiptHandle)
        return {}

    def get_queue_attributes(self, QueueUrl, AttributeNames):
        return {"Attributes": {"QueueArn": f"arn:aws:sqs:::{QueueUrl}"}}


class FakeToolchain:
    """
    Pretends to build: writes `artifact` next to the manifest under
    bin/<name>.dll.patched unless `artifact` is None.
    """

    def __init__(self, artifact: Optional[bytes] = b"\x4d\x5a compiled", returncode: int = 0):
        self.artifact = artifact
        self.returncode = returncode
        self.built: List[Path] = []

    def build(self, manifest_path: Path) -> BuildOutcome:
        self.built.append(manifest_path)
        if self.artifact is not None:
            out_dir = manifest_path.parent / "bin" / "Debug"
            out_dir.mkdir(parents=True, exist_ok=True)
            (out_dir / f"{manifest_path.stem}.dll.patched").write_bytes(self.artifact)
        return BuildOutcome(returncode=self.returncode, diagnostics="Build succeeded.\n")


def make_zip(files: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides) -> Settings:
        values = {
            "S3_BUCKET_NAME": "test-bucket",
            "SUBMISSION_QUEUE_URL": "http://sqs.local/000/build",
            "COMPLETION_QUEUE_URL": "http://sqs.local/000/build-complete",
            "SCRATCH_ROOT": str(tmp_path / "scratch"),
            "RESULT_WARMUP_SECONDS": 0,
            "RESULT_POLL_INTERVAL_SECONDS": 1,
            "RESULT_TIMEOUT_SECONDS": 5,
            "WORKER_WAIT_SECONDS": 0,
            "WORKER_ERROR_BACKOFF_SECONDS": 0,
            "QUEUE_FLUSH_TIMEOUT_SECONDS": 2,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def sqs_client() -> FakeSQSClient:
    return FakeSQSClient()


@pytest.fixture
def object_store(settings, s3_client) -> ObjectStore:
    store = ObjectStore(settings, client=s3_client)
    store.ensure_bucket()
    return store


@pytest.fixture
def submission_queue(settings, sqs_client):
    queue = JobQueue(settings, settings.SUBMISSION_QUEUE_URL, client=sqs_client)
    yield queue
    queue.close()


@pytest.fixture
def completion_queue(settings, sqs_client):
    queue = JobQueue(settings, settings.COMPLETION_QUEUE_URL, client=sqs_client)
    yield queue
    queue.close()


@pytest.fixture
def scratch_dir(settings) -> Path:
    return Path(settings.SCRATCH_ROOT)
