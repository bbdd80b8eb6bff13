# app/services/cloudflare_r2.py
import asyncio
import logging
import uuid
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.exceptions import AssetUploadError
from app.services.launch_validation import ALLOWED_IMAGE_TYPES

logger = logging.getLogger(__name__)

R2_ENDPOINT = "https://{account_id}.r2.cloudflarestorage.com"


def build_r2_client():
    """S3-compatible client pointed at the account's R2 endpoint"""
    if not (settings.CLOUDFLARE_R2_ACCESS_KEY_ID and settings.CLOUDFLARE_R2_SECRET_ACCESS_KEY):
        raise AssetUploadError("Cloudflare R2 credentials are not configured")

    logger.info(f"🪣 Creating R2 client (account {settings.CLOUDFLARE_R2_ACCOUNT_ID})")
    return boto3.client(
        "s3",
        endpoint_url=R2_ENDPOINT.format(account_id=settings.CLOUDFLARE_R2_ACCOUNT_ID),
        aws_access_key_id=settings.CLOUDFLARE_R2_ACCESS_KEY_ID,
        aws_secret_access_key=settings.CLOUDFLARE_R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4", s3={"addressing_style": "virtual"}),
    )


class CloudflareR2Service:
    """Asset store that keeps token images in an R2 bucket"""

    def __init__(self, s3_client=None, bucket_name: Optional[str] = None, public_url: Optional[str] = None):
        self.bucket_name = bucket_name or settings.CLOUDFLARE_R2_BUCKET_NAME
        self.public_url = (public_url if public_url is not None else settings.CLOUDFLARE_R2_PUBLIC_URL).rstrip("/")
        self.s3_client = s3_client

    async def upload(self, data: bytes, content_type: str = "image/png", folder: str = "tokens") -> str:
        if not data:
            raise AssetUploadError("No image data to upload")
        if self.s3_client is None:
            self.s3_client = build_r2_client()

        key = f"{folder}/{uuid.uuid4().hex}.{ALLOWED_IMAGE_TYPES.get(content_type, 'png')}"
        logger.info(f"📤 Uploading image ({len(data)} bytes) to {self.bucket_name}/{key}")

        try:
            # Blocking call, run in a worker thread. R2 takes no ACL parameter.
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "Unknown")
            logger.error(f"❌ R2 rejected upload of {key}: {code} ({error.get('Message', 'no message')})")
            if code == "NoSuchBucket":
                logger.error(f"Bucket {self.bucket_name!r} does not exist")
            elif code == "AccessDenied":
                logger.error("R2 token lacks Object Write permission")
            raise AssetUploadError(f"R2 upload failed: {code}") from e
        except BotoCoreError as e:
            logger.error(f"❌ R2 upload of {key} failed: {e}", exc_info=True)
            raise AssetUploadError(f"R2 upload failed: {e}") from e

        url = f"{self.public_url}/{key}"
        logger.info(f"✅ Image stored at {url}")
        return url
