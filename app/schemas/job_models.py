# app/schemas/job_models.py
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    """Build pipeline states. Every job ends in CLEANED."""
    RECEIVED = "received"
    DOWNLOADED = "downloaded"
    EXTRACTED = "extracted"
    PROJECT_LOCATED = "project_located"
    BUILT = "built"
    ARTIFACT_LOCATED = "artifact_located"
    PUBLISHED = "published"
    CLEANED = "cleaned"

    # Terminal branches, all routed through CLEANED
    PAYLOAD_MISSING = "payload_missing"
    EXTRACTION_FAILED = "extraction_failed"
    NO_PROJECT_FOUND = "no_project_found"
    BUILD_FAILED = "build_failed"
    NO_ARTIFACT_FOUND = "no_artifact_found"
    PUBLISH_FAILED = "publish_failed"


class SubmitMode(str, Enum):
    ASYNC = "async"
    SYNC = "sync"


class SubmitResponse(BaseModel):
    """Returned by the upload endpoint in async mode."""
    model_config = ConfigDict(populate_by_name=True)

    correlation_key: str = Field(..., alias="correlationKey")


class ArtifactResponse(BaseModel):
    """Build artifact, base64 encoded so it travels inside JSON."""
    model_config = ConfigDict(populate_by_name=True)

    correlation_key: str = Field(..., alias="correlationKey")
    artifact: str = Field(..., description="Base64-encoded artifact bytes")
    size_bytes: int = Field(..., alias="sizeBytes")


class HealthResponse(BaseModel):
    status: str = "healthy"
    message: str = "Build dispatch service is operational"
    submit_mode: SubmitMode
    object_store_status: Optional[str] = None
    submission_queue_status: Optional[str] = None
