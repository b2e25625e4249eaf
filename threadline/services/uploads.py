"""Image upload: local directory storage or an external image host."""

import asyncio
import base64
import binascii
import hashlib
import re
from datetime import datetime
from pathlib import Path

import httpx

from ..constants import ResCode
from ..utils.logging import get_logger

logger = get_logger("threadline.services.uploads")

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[\w=-]+)*;base64,(?P<data>.*)$", re.S)

SMMS_UPLOAD_URL = "https://sm.ms/api/v2/upload"

ALLOWED_IMAGE_TYPES = {"png", "jpeg", "gif", "webp"}


class UploadError(Exception):
    pass


def decode_data_uri(photo: str, max_bytes: int | None = None) -> tuple[str, bytes]:
    """Split a base64 image data URI into its mime type and raw bytes.

    Only png, jpeg, gif and webp are accepted, and the decoded image must fit
    in ``max_bytes`` when given.
    """
    match = _DATA_URI.match(photo or "")
    if not match:
        raise UploadError("Image is not a base64 data URI")
    mime = (match.group("mime") or "").lower()
    kind, _, subtype = mime.partition("/")
    if kind != "image" or subtype not in ALLOWED_IMAGE_TYPES:
        raise UploadError(f"Unsupported image type {mime or 'unknown'}")
    try:
        data = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise UploadError(f"Image data is not valid base64: {exc}") from exc
    if max_bytes is not None and len(data) > max_bytes:
        raise UploadError(f"Image is larger than {max_bytes} bytes")
    return mime, data


def image_name(photo: str, mime: str) -> str:
    name = hashlib.md5(photo.encode("utf-8")).hexdigest()
    subtype = mime.split("/", 1)[1].strip() if "/" in mime else ""
    return f"{name}.{subtype}" if subtype else name


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def store_locally(
    photo: str,
    upload_dir: str,
    public_url: str,
    now: datetime | None = None,
    max_bytes: int | None = None,
) -> dict:
    """Write the image to ``upload_dir/YYYY/MM/<md5>.<ext>``."""
    mime, data = decode_data_uri(photo, max_bytes)
    now = now or datetime.now()
    relative = f"{now.year}/{now.month:02d}/{image_name(photo, mime)}"
    await asyncio.get_running_loop().run_in_executor(
        None, _write_file, Path(upload_dir) / relative, data
    )
    return {
        "name": relative.rsplit("/", 1)[1],
        "size": len(data),
        "url": f"{public_url.rstrip('/')}/{relative}",
    }


async def upload_to_host(
    photo: str,
    file_name: str | None,
    config: dict,
    timeout: float = 10.0,
    max_bytes: int | None = None,
) -> dict:
    """Upload to the host selected by ``IMAGE_CDN`` (``smms`` or ``lskypro``)."""
    cdn = config.get("IMAGE_CDN")
    token = config.get("IMAGE_CDN_TOKEN")
    if not cdn or not token:
        raise UploadError("Image upload service is not configured")

    mime, data = decode_data_uri(photo, max_bytes)
    name = file_name or image_name(photo, mime)
    async with httpx.AsyncClient(timeout=timeout) as client:
        if cdn == "smms":
            response = await client.post(
                SMMS_UPLOAD_URL,
                files={"smfile": (name, data, mime)},
                headers={"Authorization": token},
            )
            result = response.json()
            if not result.get("success"):
                raise UploadError(result.get("message") or "sm.ms upload failed")
            return result["data"]
        if cdn == "lskypro":
            base_url = str(config.get("IMAGE_CDN_URL") or "").rstrip("/")
            if not base_url:
                raise UploadError("IMAGE_CDN_URL is required for Lsky Pro")
            response = await client.post(
                f"{base_url}/api/v1/upload",
                files={"file": (name, data, mime)},
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
            result = response.json()
            if not result.get("status"):
                raise UploadError(result.get("message") or "Lsky Pro upload failed")
            return {**result["data"], "url": result["data"]["links"]["url"]}
    raise UploadError(f"Unsupported image host {cdn}")


async def upload_image(event: dict, config: dict, settings) -> dict:
    photo = event.get("photo") or ""
    try:
        if settings.upload_public_url:
            data = await store_locally(
                photo, settings.upload_dir, settings.upload_public_url, max_bytes=settings.upload_max_bytes
            )
        else:
            data = await upload_to_host(
                photo, event.get("fileName"), config, settings.http_timeout, settings.upload_max_bytes
            )
    except (UploadError, httpx.HTTPError, ValueError, KeyError, OSError) as exc:
        logger.error("image_upload_failed", error=str(exc))
        return {"code": ResCode.UPLOAD_FAILED, "err": str(exc)}
    logger.info("image_uploaded", url=data.get("url"))
    return {"code": ResCode.SUCCESS, "data": data}
