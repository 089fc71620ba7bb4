"""
VFurniture — storage/s3.py
─────────────────────────────────────────────────────────────────
AWS S3 image storage for catalog and review images.

What it does:
  1. Takes raw bytes (multipart upload / data: URI) or a remote URL
  2. Uploads to the bucket under <folder>/<yyyy>/<mm>/<id>.<ext>
  3. Returns (public_url, key) — key doubles as the publicId

.env:
  AWS_ACCESS_KEY_ID=your_access_key
  AWS_SECRET_ACCESS_KEY=your_secret_key
  AWS_S3_BUCKET=vfurniture-images
  AWS_REGION=ap-south-1
  AWS_CDN_URL=                  # Optional CloudFront URL
─────────────────────────────────────────────────────────────────
"""

import asyncio
import ipaddress
import logging
import socket
from datetime import datetime, timezone
from typing import Optional, Tuple
from urllib.parse import urlsplit

import boto3
import httpx
from botocore.exceptions import ClientError, NoCredentialsError

from vfurniture.core.config import Config, cfg
from vfurniture.core.database import new_id

logger = logging.getLogger("vfurniture.s3")

# content-type → extension
IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg":  "jpg",
    "image/png":  "png",
    "image/webp": "webp",
    "image/gif":  "gif",
    "image/avif": "avif",
}

MAX_IMAGE_BYTES = 10 * 1024 * 1024


# ─────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────
class S3Error(Exception):
    """Base S3 exception."""

class S3UploadError(S3Error):
    """Upload failed."""

class S3DownloadError(S3Error):
    """Could not fetch image from source URL."""

class S3NotConfiguredError(S3Error):
    """AWS credentials missing in .env"""


# ─────────────────────────────────────────────
# S3 Client
# ─────────────────────────────────────────────
def _get_client(config: Config):
    if not config.s3_ready:
        raise S3NotConfiguredError(
            "AWS credentials missing! "
            "Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY in .env"
        )

    return boto3.client(
        "s3",
        region_name           = config.AWS_REGION,
        aws_access_key_id     = config.AWS_ACCESS_KEY_ID,
        aws_secret_access_key = config.AWS_SECRET_ACCESS_KEY,
    )


# ─────────────────────────────────────────────
# Keys & URLs
# ─────────────────────────────────────────────
def make_key(folder: str, extension: str, object_id: Optional[str] = None) -> str:
    """
    furniture-store/2025/01/Xk2v9QpLm3aB.webp
    """
    now    = datetime.now(timezone.utc)
    folder = folder.strip("/") or cfg.UPLOAD_FOLDER
    return f"{folder}/{now:%Y}/{now:%m}/{object_id or new_id()}.{extension.lstrip('.')}"


def make_public_url(key: str, config: Config = cfg) -> str:
    if config.AWS_CDN_URL:
        return f"{config.AWS_CDN_URL}/{key}"
    return f"https://{config.AWS_S3_BUCKET}.s3.{config.AWS_REGION}.amazonaws.com/{key}"


def extension_for(content_type: str) -> Optional[str]:
    return IMAGE_TYPES.get((content_type or "").split(";")[0].strip().lower())


# ─────────────────────────────────────────────
# Download
# ─────────────────────────────────────────────
MAX_REDIRECTS = 5


def make_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=30, follow_redirects=False)


async def resolve_host(host: str) -> set:
    loop  = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return {info[4][0] for info in infos}


def is_public_address(address: str) -> bool:
    ip = ipaddress.ip_address(address)
    return ip.is_global and not ip.is_multicast


async def check_public_url(url: str):
    """
    Reject anything but http(s) URLs whose host resolves only to public addresses.
    Loopback, private, link-local (cloud metadata) and reserved ranges are refused.
    """
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise S3DownloadError(f"Unsupported image URL: {url}")

    try:
        addresses = await resolve_host(parts.hostname)
    except (OSError, UnicodeError) as e:
        raise S3DownloadError(f"Cannot resolve {parts.hostname}: {e}")

    if not addresses or not all(is_public_address(a) for a in addresses):
        logger.warning(f"Blocked image download from non-public host {parts.hostname}")
        raise S3DownloadError(f"Image host {parts.hostname} is not allowed")


async def _read_capped(resp: httpx.Response) -> bytes:
    declared = resp.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > MAX_IMAGE_BYTES:
        raise S3DownloadError("File too large (max 10 MB)")

    chunks, size = [], 0
    async for chunk in resp.aiter_bytes():
        size += len(chunk)
        if size > MAX_IMAGE_BYTES:
            raise S3DownloadError("File too large (max 10 MB)")
        chunks.append(chunk)
    return b"".join(chunks)


async def download_image(url: str) -> Tuple[bytes, str]:
    """
    Fetch a remote image. Every redirect hop is re-checked against
    check_public_url and the body is streamed up to MAX_IMAGE_BYTES.

    Returns:
        (image_bytes, content_type)

    Raises:
        S3DownloadError
    """
    source = url
    try:
        async with make_http_client() as client:
            for _ in range(MAX_REDIRECTS + 1):
                await check_public_url(url)
                async with client.stream("GET", url) as resp:
                    if resp.is_redirect:
                        url = str(resp.url.join(resp.headers["location"]))
                        continue
                    if resp.status_code != 200:
                        raise S3DownloadError(
                            f"Failed to download image from {source} (status {resp.status_code})"
                        )
                    content_type = resp.headers.get("content-type", "image/png").split(";")[0]
                    return await _read_capped(resp), content_type
    except httpx.HTTPError as e:
        raise S3DownloadError(f"Failed to download image from {source}: {e}")

    raise S3DownloadError(f"Too many redirects for {source}")


# ─────────────────────────────────────────────
# Upload
# ─────────────────────────────────────────────
def upload_bytes(
    data:         bytes,
    folder:       str,
    content_type: str,
    config:       Config = cfg,
) -> Tuple[str, str]:
    """
    Upload raw bytes.

    Returns:
        (public_url, key)

    Raises:
        S3NotConfiguredError, S3UploadError
    """
    extension = extension_for(content_type) or "bin"
    key       = make_key(folder, extension)
    client    = _get_client(config)

    try:
        client.put_object(
            Bucket       = config.AWS_S3_BUCKET,
            Key          = key,
            Body         = data,
            ContentType  = content_type,
            ACL          = "public-read",
            CacheControl = "public, max-age=31536000, immutable",
            Metadata     = {"source": "vfurniture-upload"},
        )
    except NoCredentialsError:
        raise S3NotConfiguredError("Invalid AWS credentials")
    except ClientError as e:
        error_code = e.response["Error"]["Code"]
        raise S3UploadError(f"S3 upload failed [{error_code}]: {e}")

    logger.info(f"✓ Uploaded to S3: {key} ({len(data)} bytes)")
    return make_public_url(key, config), key


def check_s3_connection(config: Config = cfg) -> dict:
    """Startup probe — logged, never fatal."""
    try:
        client = _get_client(config)
        client.head_bucket(Bucket=config.AWS_S3_BUCKET)
        return {"ok": True, "bucket": config.AWS_S3_BUCKET, "region": config.AWS_REGION}
    except S3NotConfiguredError as e:
        return {"ok": False, "error": str(e)}
    except ClientError as e:
        error_code = e.response["Error"]["Code"]
        if error_code == "404":
            return {"ok": False, "error": f"Bucket '{config.AWS_S3_BUCKET}' does not exist"}
        if error_code == "403":
            return {"ok": False, "error": "Access denied — check IAM permissions"}
        return {"ok": False, "error": str(e)}
