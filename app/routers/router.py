# routers/router.py
"""
FastAPI Router for build submission and result retrieval
"""

import base64
from functools import lru_cache

from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Request,
    Response,
    UploadFile,
    status
)
from fastapi.responses import JSONResponse

from core.config import settings
from core.errors import (
    EmptyPayloadError,
    ResultTimeoutError,
    StorageError,
    TransportError,
)
from core.logger import logger
from core.rate_limiter import limit_param, limiter
from integrations.object_store import ObjectStore
from integrations.sqs_client import JobQueue
from schemas.job_models import (
    ArtifactResponse,
    HealthResponse,
    SubmitMode,
    SubmitResponse,
)
from services.correlation import parse_correlation_key
from services.submitter import Submitter


# ============================================================================
# ROUTER CONFIGURATION
# ============================================================================

router = APIRouter(
    prefix="/api",
    tags=["Build"],
    responses={
        429: {"description": "Too Many Requests"},
        500: {"description": "Internal Server Error"}
    }
)


@lru_cache(maxsize=1)
def get_submitter() -> Submitter:
    """Process-wide submitter; override in tests via dependency_overrides."""
    return Submitter(
        settings,
        object_store=ObjectStore(settings),
        submission_queue=JobQueue(settings, settings.SUBMISSION_QUEUE_URL),
    )


def _artifact_response(key: str, artifact: bytes) -> ArtifactResponse:
    return ArtifactResponse(
        correlation_key=key,
        artifact=base64.b64encode(artifact).decode("ascii"),
        size_bytes=len(artifact),
    )


# ============================================================================
# HEALTH CHECK ENDPOINTS
# ============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Service Health Check",
    description="Validates object store and queue connectivity"
)
def check_health(submitter: Submitter = Depends(get_submitter)) -> HealthResponse:
    health_status = HealthResponse(submit_mode=SubmitMode(submitter.mode))

    if submitter.object_store.ping():
        health_status.object_store_status = "connected"
    else:
        health_status.object_store_status = "error"
        health_status.status = "degraded"

    if submitter.submission_queue.ping():
        health_status.submission_queue_status = "connected"
    else:
        health_status.submission_queue_status = "error"
        health_status.status = "degraded"

    return health_status


# ============================================================================
# BUILD ENDPOINTS
# ============================================================================

@router.post(
    "/build",
    status_code=status.HTTP_200_OK,
    summary="Submit Build",
    description="Upload a zip archive; returns the correlation key (async) or the built artifact (sync)",
    responses={
        202: {"model": SubmitResponse},
        200: {"model": ArtifactResponse},
        400: {"description": "Empty upload"},
        504: {"description": "Build result did not arrive in time"},
    }
)
@limiter.limit(limit_param)
def submit_build(
    request: Request,
    response: Response,
    file: UploadFile = File(...),
    submitter: Submitter = Depends(get_submitter)
):
    """
    Runs synchronously in the threadpool: sync mode blocks until the worker
    publishes or the poll deadline passes.
    """
    payload = file.file.read()

    try:
        key = submitter.submit(payload)
    except EmptyPayloadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except StorageError as e:
        logger.exception(f"Payload upload failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {e.message}"
        )
    except TransportError as e:
        logger.exception(f"Job enqueue failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to enqueue build: {e.message}"
        )

    response.headers["x-correlation-key"] = key
    logger.info(f"Build submitted: key={key}, file={file.filename}, bytes={len(payload)}")

    if submitter.mode == SubmitMode.ASYNC.value:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=SubmitResponse(correlation_key=key).model_dump(by_alias=True),
            headers={"x-correlation-key": key},
        )

    try:
        artifact = submitter.wait_for_result(key)
    except ResultTimeoutError:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Operation timed out. Please try again later."
        )
    except StorageError as e:
        logger.exception(f"Result retrieval failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {e.message}"
        )

    return _artifact_response(key, artifact).model_dump(by_alias=True)


@router.get(
    "/build/{correlation_key}/result",
    response_model=ArtifactResponse,
    response_model_by_alias=True,
    summary="Retrieve Build Result",
    description="One-shot retrieval of a finished artifact; the result is deleted once returned",
    responses={
        404: {"description": "Result not available"},
        409: {"description": "Results are delivered on the completion queue"},
    }
)
@limiter.limit(limit_param)
def get_build_result(
    request: Request,
    correlation_key: str,
    submitter: Submitter = Depends(get_submitter)
) -> ArtifactResponse:
    key = parse_correlation_key(correlation_key)
    if key is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid correlation key")

    if submitter.result_sink == "queue":
        # Results travel on the completion queue and never reach the bucket
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Results are delivered on the completion queue, not through this endpoint"
        )

    try:
        artifact = submitter.fetch_result(key)
    except StorageError as e:
        logger.exception(f"Result retrieval failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {e.message}"
        )

    if artifact is None:
        # Not built yet, abandoned, or already retrieved; the protocol cannot tell these apart
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Result not available")

    return _artifact_response(key, artifact)
