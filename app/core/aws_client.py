# core/aws_client.py
"""
Centralized AWS client factory to ensure proper credential handling.
This module creates S3 and SQS clients with explicit credential and endpoint
configuration so the same code talks to AWS or to local stand-ins (MinIO,
ElasticMQ).
"""
import os
from typing import Optional

import boto3
from botocore.config import Config

from core.config import Settings, settings
from core.logger import logger


def _credentials(config: Settings) -> dict:
    # Settings (which loads from .env) win over the process environment
    return {
        "aws_access_key_id": config.AWS_ACCESS_KEY_ID or os.getenv("AWS_ACCESS_KEY_ID"),
        "aws_secret_access_key": config.AWS_SECRET_ACCESS_KEY or os.getenv("AWS_SECRET_ACCESS_KEY"),
        "aws_session_token": config.AWS_SESSION_TOKEN or os.getenv("AWS_SESSION_TOKEN"),
    }


def get_s3_client(config: Optional[Settings] = None):
    """Get S3 client with proper credentials and path-style addressing."""
    config = config or settings
    try:
        client = boto3.client(
            "s3",
            region_name=config.AWS_REGION,
            endpoint_url=config.S3_ENDPOINT_URL,
            config=Config(s3={"addressing_style": "path"}),
            **_credentials(config),
        )
        logger.info(f"S3 client initialized (endpoint={config.S3_ENDPOINT_URL or 'aws'})")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize S3 client: {str(e)}")
        raise


def get_sqs_client(config: Optional[Settings] = None):
    """
    Get SQS client with proper credentials.
    Connect/read timeouts are bounded by the enqueue flush deadline, except
    that reads must outlast the worker's long-poll wait.
    """
    config = config or settings
    try:
        flush = config.QUEUE_FLUSH_TIMEOUT_SECONDS
        client = boto3.client(
            "sqs",
            region_name=config.SQS_REGION,
            endpoint_url=config.SQS_ENDPOINT_URL,
            config=Config(
                connect_timeout=flush,
                read_timeout=max(flush, config.WORKER_WAIT_SECONDS + 5),
                retries={"max_attempts": 2},
            ),
            **_credentials(config),
        )
        logger.info(f"SQS client initialized (endpoint={config.SQS_ENDPOINT_URL or 'aws'})")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize SQS client: {str(e)}")
        raise


def validate_aws_credentials(config: Optional[Settings] = None) -> bool:
    """Validate that AWS credentials are properly configured."""
    creds = _credentials(config or settings)

    if not creds["aws_access_key_id"] or not creds["aws_secret_access_key"]:
        logger.warning("Missing AWS credentials in both settings and environment variables")
        logger.info("AWS credentials not found. Make sure to set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY in .env file, "
                    "or configure AWS CLI with 'aws configure'")
        return False

    logger.info("AWS credentials found and validated")
    return True
