from __future__ import annotations

import logging
import os
import tempfile

import cloudinary.uploader

from app.media import MediaKind
from app.utils.cloudinary_config import cloudinary_is_configured, configure_cloudinary


logger = logging.getLogger(__name__)


class CloudinaryUploadError(RuntimeError):
    pass


def _cloudinary_folder() -> str:
    return (os.getenv("CLOUDINARY_FOLDER") or "sultanproperti").strip() or "sultanproperti"


def cloudinary_enabled() -> bool:
    return cloudinary_is_configured()


def upload_bytes(*, raw: bytes, resource_type: MediaKind, public_id: str, ext: str) -> tuple[str, str]:
    """
    Upload raw bytes unchanged and return (secure_url, public_id).

    Raises CloudinaryUploadError when the response lacks either value, so no
    media row is ever recorded against a missing remote object.
    """
    configure_cloudinary()
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(delete=False, suffix=ext or ".bin") as tmp:
            tmp.write(raw)
            tmp.flush()
            tmp_path = tmp.name

        res = cloudinary.uploader.upload(
            tmp_path,
            resource_type=resource_type,
            folder=_cloudinary_folder(),
            public_id=public_id,
            overwrite=False,
            type="upload",
            invalidate=False,
        )
        url = str(res.get("secure_url") or "").strip()
        pid = str(res.get("public_id") or "").strip()
        if not url or not pid:
            raise CloudinaryUploadError(f"Cloudinary returned no url/public_id for {public_id}")
        if int(res.get("bytes") or len(raw)) != len(raw):
            raise CloudinaryUploadError(f"Cloudinary stored {res.get('bytes')} bytes, expected {len(raw)}")
        return url, pid
    finally:
        if tmp_path:
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.warning("Could not remove temp upload file %s", tmp_path)


def destroy(*, public_id: str, resource_type: MediaKind) -> None:
    pid = (public_id or "").strip()
    if not pid:
        return
    try:
        configure_cloudinary()
        cloudinary.uploader.destroy(pid, resource_type=resource_type, invalidate=False)
    except Exception:
        logger.exception("Cloudinary destroy failed public_id=%s", pid)
