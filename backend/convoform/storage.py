"""Local file storage for uploaded background visuals.

Files are written under ``VISUALS_DIR`` at ``{form_id}/{unique_id}.{ext}``
and served from ``VISUALS_BASE_URL`` (the app mounts the directory as
static files).

Usage::

    from convoform.storage import VisualStorage

    stored = await VisualStorage().upload(
        form_id="abc-123",
        filename="beach.jpg",
        data=file_bytes,
        content_type="image/jpeg",
        kind="image",
    )
"""

import asyncio
import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from convoform.config import settings

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image": ("image/jpeg", "image/png", "image/gif", "image/webp"),
    "video": ("video/mp4", "video/webm", "video/quicktime"),
}
DEFAULT_EXTENSIONS = {"image": "jpg", "video": "mp4"}


class VisualValidationError(ValueError):
    """The upload was rejected before anything was stored."""


@dataclass
class StoredVisual:
    kind: str
    url: str
    storage_path: str


class VisualStorage:
    """Writes visuals to the local filesystem."""

    def __init__(
        self,
        root: Optional[str] = None,
        base_url: Optional[str] = None,
        max_size_bytes: Optional[int] = None,
    ) -> None:
        self.root = root or settings.visuals_dir
        self.base_url = (base_url or settings.visuals_base_url).rstrip("/")
        self.max_size_bytes = max_size_bytes or settings.max_visual_size_bytes

    def _storage_path(self, form_id: str, filename: str, kind: str) -> str:
        """Build a unique path: {form_id}/{millis}_{hex}.{ext}."""
        ext = filename.rsplit(".", 1)[-1] if "." in filename else ""
        ext = ext.lower() or DEFAULT_EXTENSIONS[kind]
        unique = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:5]}"
        safe_form = form_id.replace("/", "_").replace("\\", "_")
        return f"{safe_form}/{unique}.{ext}"

    def validate(self, kind: str, content_type: str, size: int) -> None:
        """Raise VisualValidationError for a bad kind, type or size."""
        allowed = ALLOWED_CONTENT_TYPES.get(kind)
        if allowed is None:
            raise VisualValidationError("Missing file or kind")
        if content_type not in allowed:
            raise VisualValidationError(f"Invalid file type. Allowed: {', '.join(allowed)}")
        if size > self.max_size_bytes:
            raise VisualValidationError(
                f"File size {size} bytes exceeds maximum of "
                f"{self.max_size_bytes} bytes ({self.max_size_bytes // (1024 * 1024)} MB)"
            )

    async def upload(
        self,
        form_id: str,
        filename: str,
        data: bytes,
        content_type: str,
        kind: str,
    ) -> StoredVisual:
        self.validate(kind, content_type, len(data))
        storage_path = self._storage_path(form_id, filename or "", kind)
        full_path = os.path.join(self.root, storage_path)

        def _write() -> None:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, "wb") as f:
                f.write(data)

        await asyncio.to_thread(_write)
        logger.info("Stored %s visual %s (%d bytes) at %s", kind, filename, len(data), storage_path)
        return StoredVisual(
            kind=kind,
            url=f"{self.base_url}/{storage_path}",
            storage_path=storage_path,
        )
