"""Image upload handling for task attachments.

Accepts a single JPEG/PNG file up to MAX_IMAGE_BYTES, writes it under
UPLOAD_DIR as ``<epoch-ms>-<original name>`` and returns the public
``/uploads/<name>`` reference stored on the task.
"""

from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path
from typing import BinaryIO, Protocol

logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(os.environ.get("UPLOAD_DIR", "uploads"))
MAX_IMAGE_BYTES = int(os.environ.get("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))
PUBLIC_PREFIX = "/uploads"

_ALLOWED = re.compile(r"jpeg|jpg|png")
_CHUNK = 64 * 1024


class UploadRejected(Exception):
    """The file was refused (type or size). Surfaced to clients as a processing failure."""


class IncomingFile(Protocol):
    filename: str | None
    content_type: str | None
    file: BinaryIO


def _safe_name(filename: str) -> str:
    base = Path(filename).name
    return re.sub(r"[^A-Za-z0-9._-]", "_", base) or "image"


def check_file_type(filename: str | None, content_type: str | None) -> None:
    """Both the extension and the MIME type must name an allowed image type."""
    ext = Path(filename or "").suffix.lower()
    if not (ext and _ALLOWED.search(ext) and _ALLOWED.search((content_type or "").lower())):
        raise UploadRejected("Only JPEG/PNG images are allowed")


def save_image(upload: IncomingFile) -> str:
    """Validate and store *upload*; return its public path."""
    check_file_type(upload.filename, upload.content_type)
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    name = f"{int(time.time() * 1000)}-{_safe_name(upload.filename or '')}"
    target = UPLOAD_DIR / name
    written = 0
    try:
        with open(target, "wb") as out:
            while True:
                chunk = upload.file.read(_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if written > MAX_IMAGE_BYTES:
                    raise UploadRejected(f"File too large (limit {MAX_IMAGE_BYTES} bytes)")
                out.write(chunk)
    except BaseException:
        target.unlink(missing_ok=True)
        raise
    logger.info("Stored upload %s (%d bytes)", name, written)
    return f"{PUBLIC_PREFIX}/{name}"


def remove_image(public_path: str | None) -> None:
    """Delete a previously stored image given its public path. Missing files are ignored."""
    if not public_path or not public_path.startswith(PUBLIC_PREFIX + "/"):
        return
    (UPLOAD_DIR / Path(public_path).name).unlink(missing_ok=True)
