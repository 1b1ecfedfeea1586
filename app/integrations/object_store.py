# app/integrations/object_store.py
"""
Thin wrapper over the S3 client used for payloads and results.

All keys live in one bucket; isolation between jobs comes from the
correlation key alone.
"""
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from core.aws_client import get_s3_client
from core.config import Settings
from core.errors import StorageError
from core.logger import logger

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES


class ObjectStore:
    def __init__(self, config: Settings, client=None):
        self.bucket = config.S3_BUCKET_NAME
        self.payload_acl = config.S3_PAYLOAD_ACL
        self.client = client if client is not None else get_s3_client(config)

    def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as e:
            if not _is_not_found(e):
                raise StorageError(f"Cannot access bucket {self.bucket}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Cannot access bucket {self.bucket}: {e}") from e

        try:
            self.client.create_bucket(Bucket=self.bucket)
            logger.info(f"Created bucket {self.bucket}")
        except ClientError as e:
            # Another submitter won the race
            code = e.response.get("Error", {}).get("Code")
            if code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                raise StorageError(f"Cannot create bucket {self.bucket}: {e}") from e

    def put_bytes(self, key: str, body: bytes, acl: Optional[str] = None) -> None:
        params = {"Bucket": self.bucket, "Key": key, "Body": body}
        if acl:
            params["ACL"] = acl
        try:
            self.client.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to write {key}: {e}", correlation_key=key) from e
        logger.debug(f"Wrote s3://{self.bucket}/{key} ({len(body)} bytes)")

    def put_payload(self, key: str, body: bytes) -> None:
        self.put_bytes(key, body, acl=self.payload_acl)

    def download_file(self, key: str, path: str) -> None:
        try:
            self.client.download_file(self.bucket, key, path)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to download {key}: {e}", correlation_key=key) from e

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise StorageError(f"Failed to check {key}: {e}", correlation_key=key) from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to check {key}: {e}", correlation_key=key) from e

    def get_bytes(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to read {key}: {e}", correlation_key=key) from e

    def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to delete {key}: {e}", correlation_key=key) from e
        logger.debug(f"Deleted s3://{self.bucket}/{key}")

    def ping(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Object store health check failed: {e}")
            return False
