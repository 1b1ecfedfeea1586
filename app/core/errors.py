# core/errors.py
"""
Exception hierarchy for the build dispatch service.

Transport and storage failures wrap the underlying botocore errors so that
callers never need to import botocore to handle them. Pipeline abandonment
errors are raised inside the worker only; they end a job without a result.
"""

from typing import Optional


class BuildDispatchError(Exception):
    """Base exception for all build dispatch errors."""

    def __init__(self, message: str, correlation_key: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.correlation_key = correlation_key


class TransportError(BuildDispatchError):
    """Broker unreachable, send rejected or receive failed."""


class StorageError(BuildDispatchError):
    """Object store access failed (missing object, access denied, ...)."""


class EmptyPayloadError(BuildDispatchError):
    """Submitted archive contained no bytes."""

    def __init__(self) -> None:
        super().__init__("Please upload a file.")


class ResultTimeoutError(BuildDispatchError):
    """No result appeared before the poll deadline."""

    def __init__(self, correlation_key: str, timeout_seconds: float) -> None:
        super().__init__(
            f"No result for {correlation_key} within {timeout_seconds:g}s",
            correlation_key=correlation_key,
        )
        self.timeout_seconds = timeout_seconds


class ExtractionError(BuildDispatchError):
    """Payload is not a readable zip archive or tries to escape its directory."""


class PipelineAbandoned(BuildDispatchError):
    """Job ended without a publishable result. Never reported to the caller."""


class NoProjectFoundError(PipelineAbandoned):
    def __init__(self, correlation_key: str, extension: str) -> None:
        super().__init__(f"No {extension} file found", correlation_key=correlation_key)


class NoArtifactFoundError(PipelineAbandoned):
    def __init__(self, correlation_key: str, pattern: str) -> None:
        super().__init__(f"No artifact matching {pattern} found", correlation_key=correlation_key)


class BuildFailedError(PipelineAbandoned):
    def __init__(self, correlation_key: str, returncode: int) -> None:
        super().__init__(
            f"Build exited with status {returncode}",
            correlation_key=correlation_key,
        )
        self.returncode = returncode
