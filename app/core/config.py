# core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator
from typing import Literal, Optional


class Settings(BaseSettings):
    """
    Centralized application configuration.
    Shared by the HTTP front end and the build worker; every component
    receives an instance through its constructor.
    """

    # ------------------------------------------------------------
    # Project / Runtime
    # ------------------------------------------------------------
    PROJECT_NAME: str = "Build Dispatch Service"
    DEBUG: bool = False
    ENABLE_CORS: bool = True

    # HTTP / API
    FRONTEND_ENDPOINT: str = ""
    BACKEND_ENDPOINT: str = ""
    RATE_LIMIT_MIN: str = "30"

    # ------------------------------------------------------------
    # Object Store (S3 / MinIO)
    # ------------------------------------------------------------
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_SESSION_TOKEN: Optional[str] = None

    S3_ENDPOINT_URL: Optional[str] = Field(
        default=None,
        description="Custom S3 endpoint, e.g. 'http://localhost:9000' for MinIO",
    )
    S3_BUCKET_NAME: str = "my-bucket"
    S3_PAYLOAD_ACL: Optional[str] = Field(
        default="public-read",
        description="Canned ACL applied to uploaded payloads (None to skip)",
    )
    RESULT_SUFFIX: str = Field(
        default="dll",
        description="Suffix of the result object: <correlation key>.<suffix>",
    )

    # ------------------------------------------------------------
    # Messaging (SQS)
    # ------------------------------------------------------------
    SQS_ENDPOINT_URL: Optional[str] = None
    SQS_REGION: str = "us-east-1"
    SUBMISSION_QUEUE_URL: str = "http://localhost:9324/000000000000/build"
    COMPLETION_QUEUE_URL: str = "http://localhost:9324/000000000000/build-complete"

    """
    Upper bound on how long a submitter waits for the broker to acknowledge
    an enqueue. Past this deadline the message may be lost.
    """
    QUEUE_FLUSH_TIMEOUT_SECONDS: float = 10.0

    # Long-polling and redelivery settings for the worker's receive loop
    WORKER_WAIT_SECONDS: int = Field(default=20, ge=0, le=20)
    WORKER_VISIBILITY_TIMEOUT: int = 900
    WORKER_ERROR_BACKOFF_SECONDS: float = 1.0

    # ------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------
    SUBMIT_MODE: Literal["async", "sync"] = "sync"
    RESULT_WARMUP_SECONDS: float = 6.0
    RESULT_POLL_INTERVAL_SECONDS: float = Field(default=1.0, gt=0)
    RESULT_TIMEOUT_SECONDS: float = 60.0

    # ------------------------------------------------------------
    # Build Worker
    # ------------------------------------------------------------
    RESULT_SINK: Literal["object_store", "queue"] = Field(
        default="object_store",
        description=(
            "Where finished artifacts go. 'queue' sends them base64 encoded in a "
            "completion message, limited by SQS to 256 KB (about 192 KB of artifact), "
            "and only suits async callers that consume COMPLETION_QUEUE_URL"
        ),
    )
    SCRATCH_ROOT: Optional[str] = Field(
        default=None,
        description="Directory for per-job scratch space (defaults to the system temp dir)",
    )
    MANIFEST_EXTENSION: str = ".csproj"
    ARTIFACT_PATTERN: str = "*.dll.patched"
    BUILD_COMMAND: str = "dotnet build"
    BUILD_TIMEOUT_SECONDS: float = 600.0

    """
    When enabled a non-zero toolchain exit ends the job in BUILD_FAILED.
    Otherwise success is inferred from artifact presence alone.
    """
    FAIL_ON_BUILD_ERROR: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def check_mode_and_sink(self) -> "Settings":
        # Sync callers poll the bucket, so results must land there.
        if self.SUBMIT_MODE == "sync" and self.RESULT_SINK == "queue":
            raise ValueError("SUBMIT_MODE=sync requires RESULT_SINK=object_store")
        return self


settings = Settings()
