"""
VFurniture — upload.py
─────────────────────────────────────────────────────────────────
POST /api/upload — image upload to S3.

Two request shapes:
  multipart/form-data   file=<binary>, folder=<optional>
  application/json      {"image": "data:image/png;base64,…" | "https://…",
                         "folder": "furniture-store"}

Response: {"url": <public url>, "publicId": <object key>}
─────────────────────────────────────────────────────────────────
"""

import base64
import binascii
import logging
import re
from typing import Tuple

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from vfurniture.core.config import Config
from vfurniture.core.errors import Internal, ValidationError
from vfurniture.core.security import get_config
from vfurniture.storage import s3

logger = logging.getLogger("vfurniture.upload")

router = APIRouter(prefix="/api", tags=["upload"])

DATA_URI_RE = re.compile(r"^data:(?P<type>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)


def decode_data_uri(value: str) -> Tuple[bytes, str]:
    match = DATA_URI_RE.match(value.strip())
    if not match:
        raise ValidationError("Image must be a base64 data URI or an http(s) URL")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image data is not valid base64")
    return data, match.group("type")


async def _store(data: bytes, folder: str, content_type: str, config: Config) -> dict:
    if not data:
        raise ValidationError("Empty file")
    if len(data) > s3.MAX_IMAGE_BYTES:
        raise ValidationError("File too large (max 10 MB)")
    if not s3.extension_for(content_type):
        raise ValidationError(f"Unsupported file type: {content_type}")

    try:
        url, key = await run_in_threadpool(s3.upload_bytes, data, folder, content_type, config)
    except s3.S3Error as e:
        logger.error(f"Upload failed: {e}")
        raise Internal(str(e))

    return {"url": url, "publicId": key}


@router.post("/upload")
async def upload_image(request: Request, config: Config = Depends(get_config)):
    content_type = request.headers.get("content-type", "")

    if "multipart/form-data" in content_type:
        form   = await request.form()
        file   = form.get("file")
        folder = form.get("folder") or config.UPLOAD_FOLDER

        if file is None or isinstance(file, str):
            logger.warning("No file provided in form data")
            raise ValidationError("No file provided")

        data = await file.read()
        return await _store(data, str(folder), file.content_type or "", config)

    if "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")

        image  = body.get("image") if isinstance(body, dict) else None
        folder = body.get("folder") if isinstance(body, dict) else None
        if not image or not folder or not isinstance(image, str):
            raise ValidationError("Missing image or folder in JSON")

        if image.startswith(("http://", "https://")):
            try:
                data, image_type = await s3.download_image(image)
            except s3.S3DownloadError as e:
                raise ValidationError(str(e))
        else:
            data, image_type = decode_data_uri(image)

        return await _store(data, str(folder), image_type, config)

    logger.warning(f"Unsupported Content-Type: {content_type!r}")
    raise ValidationError("Unsupported Content-Type")
