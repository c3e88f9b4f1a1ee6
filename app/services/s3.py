# app/services/s3.py
import logging
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, NoCredentialsError

from app.config import settings
from app.core.errors import ExternalServiceError, ServiceUnavailableError

logger = logging.getLogger(__name__)

_DOUBLE_SLASH = re.compile(r"([^:]/)/+")


@lru_cache(maxsize=1)
def get_s3_client():
    """Lazy singleton S3 client."""
    cfg = Config(
        region_name=settings.AWS_REGION,
        retries={"max_attempts": 5, "mode": "standard"},
        connect_timeout=3,
        read_timeout=10,
        s3={"addressing_style": "path" if settings.S3_FORCE_PATH_STYLE else "auto"},
    )
    client = boto3.client("s3", endpoint_url=settings.S3_ENDPOINT_URL, config=cfg)
    logger.info("S3 client initialized region=%s bucket=%s", settings.AWS_REGION, settings.S3_BUCKET)
    return client


def get_bucket() -> str:
    if not settings.S3_BUCKET:
        raise ServiceUnavailableError("Object storage is not configured")
    return settings.S3_BUCKET


def _base_url() -> str:
    if settings.S3_BASE_URL:
        return settings.S3_BASE_URL.rstrip("/")
    bucket = get_bucket()
    if settings.S3_ENDPOINT_URL:
        return f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{bucket}"
    return f"https://{bucket}.s3.{settings.AWS_REGION}.amazonaws.com"


def build_public_url(key: str) -> str:
    return _DOUBLE_SLASH.sub(r"\1", f"{_base_url()}/{key.lstrip('/')}")


def create_presigned_post(
    key: str,
    content_type: str,
    *,
    max_bytes: int,
    conditions: Optional[List[Any]] = None,
    expires_in: Optional[int] = None,
) -> Dict[str, Any]:
    """Browser form upload; S3 enforces size and content type."""
    s3 = get_s3_client()
    bucket = get_bucket()

    try:
        return s3.generate_presigned_post(
            Bucket=bucket,
            Key=key,
            Fields={"Content-Type": content_type},
            Conditions=[["content-length-range", 1, max_bytes], *(conditions or [])],
            ExpiresIn=expires_in or settings.PRESIGN_EXPIRES_SECONDS,
        )
    except (BotoCoreError, NoCredentialsError) as e:
        logger.error("presigned post failed key=%s: %s", key, e)
        raise ExternalServiceError("S3", "Unable to generate upload URL") from e


def create_presigned_put(
    key: str,
    content_type: str,
    *,
    expires_in: Optional[int] = None,
) -> str:
    s3 = get_s3_client()
    bucket = get_bucket()

    try:
        return s3.generate_presigned_url(
            ClientMethod="put_object",
            Params={"Bucket": bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in or settings.PRESIGN_EXPIRES_SECONDS,
            HttpMethod="PUT",
        )
    except (BotoCoreError, NoCredentialsError) as e:
        logger.error("presigned put failed key=%s: %s", key, e)
        raise ExternalServiceError("S3", "Unable to generate upload URL") from e


def check_configuration() -> str:
    """Bucket is configured and a client can be built; no network call."""
    get_s3_client()
    return get_bucket()
