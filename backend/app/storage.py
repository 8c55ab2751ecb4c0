from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass

from app.config import uploads_dir
from app.media import MediaKind, safe_upload_ext
from app.utils.cloudinary_storage import cloudinary_enabled, destroy as cloudinary_destroy, upload_bytes as cloudinary_upload_bytes


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Durable write did not complete; no media row may reference it."""


@dataclass(frozen=True)
class StoredFile:
    file_path: str  # relative to the uploads dir, or a remote URL
    kind: MediaKind = "image"
    public_id: str = ""


class MediaStore:
    """
    Persists uploaded bytes under a freshly generated name.

    Local files are written to a `.part` sibling, fsynced, size-checked and
    then renamed into place, so a visible path always holds complete bytes.
    """

    def __init__(self, root: str | None = None, *, use_cloudinary: bool | None = None) -> None:
        self.root = os.path.abspath(root or uploads_dir())
        self.use_cloudinary = cloudinary_enabled() if use_cloudinary is None else use_cloudinary

    def ensure_root(self) -> None:
        os.makedirs(self.root, exist_ok=True)

    def disk_path(self, rel: str) -> str:
        return os.path.join(self.root, rel)

    def save(self, *, filename: str, data: bytes, kind: MediaKind, content_type: str = "") -> StoredFile:
        ext = safe_upload_ext(filename=filename, content_type=content_type)
        token = uuid.uuid4().hex
        if self.use_cloudinary:
            try:
                url, pid = cloudinary_upload_bytes(raw=data, resource_type=kind, public_id=f"media_{token}", ext=ext)
            except Exception as e:
                logger.exception("Cloudinary upload failed filename=%r size_bytes=%s", filename, len(data))
                raise StorageError(f"Failed to upload {filename!r}") from e
            return StoredFile(file_path=url, kind=kind, public_id=pid)
        return StoredFile(file_path=self._write_local(f"{token}{ext}", data), kind=kind)

    def _write_local(self, safe_name: str, data: bytes) -> str:
        final_path = self.disk_path(safe_name)
        part_path = final_path + ".part"
        try:
            self.ensure_root()
            with open(part_path, "wb") as out:
                out.write(data)
                out.flush()
                os.fsync(out.fileno())
            written = os.path.getsize(part_path)
            if written != len(data):
                raise StorageError(f"Short write for {safe_name}: {written} of {len(data)} bytes")
            os.replace(part_path, final_path)
        except OSError as e:
            self._discard(part_path)
            logger.exception("Failed to save upload %s", safe_name)
            raise StorageError(f"Failed to save upload {safe_name}") from e
        except StorageError:
            self._discard(part_path)
            raise
        return safe_name

    def _discard(self, path: str) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError:
            logger.warning("Could not remove partial upload %s", path)

    def remove(self, stored: StoredFile) -> None:
        """Best-effort cleanup of a file whose media row was never recorded."""
        if stored.public_id:
            cloudinary_destroy(public_id=stored.public_id, resource_type=stored.kind)
            return
        self._discard(self.disk_path(stored.file_path))
