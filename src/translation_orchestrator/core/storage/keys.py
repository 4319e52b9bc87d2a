"""Key layout of uploaded inputs."""

import posixpath
import re
import time
from typing import Optional

UPLOAD_TIMESTAMP = re.compile(r"^\d+-")


def build_upload_key(filename: str, prefix: str = "uploads/",
                     now_ms: Optional[int] = None) -> str:
    """
    Build the key an upload is written to: `<prefix><epoch-ms>-<filename>`.

    Args:
        filename: Name of the file the user selected
        prefix: Input prefix in the bucket
        now_ms: Timestamp override in milliseconds

    Returns:
        Object key for the upload
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    name = posixpath.basename(filename.replace("\\", "/")).strip()
    if not name:
        raise ValueError("Filename must not be empty")
    return f"{prefix}{now_ms}-{name}"


def basename(key: str) -> str:
    return posixpath.basename(key)


def original_filename(key: str) -> str:
    """Filename the user uploaded, without the upload timestamp."""
    return UPLOAD_TIMESTAMP.sub("", basename(key), count=1)
