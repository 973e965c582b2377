"""
S3/R2 storage helpers for generated media.

Provider output that arrives as raw bytes is stored under:
  stories/{story_id}/{filename}

and served from R2_PUBLIC_URL.
"""

import os
import asyncio
import logging

import boto3
from botocore.config import Config as BotoConfig

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

R2_PUBLIC_URL = os.getenv("R2_PUBLIC_URL", "")
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID", "")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID", "")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY", "")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "assets")


def is_configured() -> bool:
    return bool(R2_ACCOUNT_ID and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY and R2_PUBLIC_URL)


def story_media_key(story_id: str, filename: str) -> str:
    """S3 key for a generated media file."""
    return f"stories/{story_id}/{filename}"


def public_url(key: str) -> str:
    return f"{R2_PUBLIC_URL.rstrip('/')}/{key}"


def _put_object(key: str, data: bytes, content_type: str):
    s3 = boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=BotoConfig(signature_version="s3v4"),
        region_name="auto",
    )
    s3.put_object(
        Bucket=R2_BUCKET_NAME,
        Key=key,
        Body=data,
        ContentType=content_type,
    )


async def upload_to_r2(key: str, data: bytes, content_type: str = "video/mp4") -> str:
    """Upload bytes to R2 and return the public URL of the object."""
    if not is_configured():
        raise RuntimeError("R2 storage is not configured (R2_ACCOUNT_ID / keys / R2_PUBLIC_URL)")
    try:
        await asyncio.to_thread(_put_object, key, data, content_type)
    except Exception as e:
        logger.error(f"R2 upload failed for key={key}: {e}")
        raise

    url = public_url(key)
    logger.info(f"Uploaded to R2: {url}")
    return url


async def upload_story_media(
    story_id: str, filename: str, data: bytes, content_type: str = "video/mp4"
) -> str:
    """Upload a generated media file for a story."""
    return await upload_to_r2(story_media_key(story_id, filename), data, content_type)
