# src/utils/s3.py
import logging
import os
import uuid
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from src.config import get_config

logger = logging.getLogger(__name__)

settings = get_config(os.getenv("ENV", "prod"))

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

_s3_client = None


def _client():
    global _s3_client
    if _s3_client is None and settings.IS_AWS:
        _s3_client = boto3.client(
            "s3",
            region_name=settings.AWS_REGION or "us-east-1",
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )
    return _s3_client


def profile_image_key(user_id: str, content_type: str) -> str:
    """Object key for a therapist's profile image: ``<user_id>/<uuid>.<ext>``."""
    ext = ALLOWED_IMAGE_TYPES.get(content_type)
    if ext is None:
        raise ValueError(f"Unsupported image type: {content_type}")
    return f"{user_id}/{uuid.uuid4().hex}.{ext}"


def public_url(object_key: str) -> str:
    region = settings.AWS_REGION or "us-east-1"
    return f"https://{settings.PROFILE_BUCKET}.s3.{region}.amazonaws.com/{object_key}"


def create_profile_image_upload(
    user_id: str, content_type: str, expiration: int = 900
) -> Optional[dict]:
    """
    Presigned PUT for a profile image upload.

    Returns ``{"upload_url", "object_key", "public_url"}`` or None when S3 is
    not configured or signing fails. Raises ValueError for unsupported types.
    """
    object_key = profile_image_key(user_id, content_type)

    client = _client()
    if client is None:
        logger.warning(f"⚠️ S3 is disabled (IS_AWS={settings.IS_AWS})")
        return None

    try:
        url = client.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": settings.PROFILE_BUCKET,
                "Key": object_key,
                "ContentType": content_type,
            },
            ExpiresIn=expiration,
        )
    except ClientError as e:
        logger.error(f"❌ S3 error presigning {object_key}: {e.response['Error']['Code']}")
        return None

    logger.info(f"✅ Generated upload URL for {object_key}")
    return {
        "upload_url": url,
        "object_key": object_key,
        "public_url": public_url(object_key),
    }
