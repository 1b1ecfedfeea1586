from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.aws_client import validate_aws_credentials
from core.config import settings
from core.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles application startup: reports the submit mode and whether
    credentials are configured. Clients are created lazily on first request.
    """
    validate_aws_credentials(settings)
    logger.info(
        f"Lifespan startup: mode={settings.SUBMIT_MODE}, bucket={settings.S3_BUCKET_NAME}, "
        f"queue={settings.SUBMISSION_QUEUE_URL}"
    )
    yield
    logger.info("Lifespan shutdown.")
