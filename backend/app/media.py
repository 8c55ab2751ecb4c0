from __future__ import annotations

import hashlib
import mimetypes
import os
import re
from typing import Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import MediaUpload


MediaKind = Literal["image", "video"]

# Suffix match only; anything else is treated as an image.
VIDEO_EXTS = {".mp4", ".mov"}


def content_sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def media_kind(filename: str) -> MediaKind:
    ext = os.path.splitext((filename or "").strip())[1].lower()
    return "video" if ext in VIDEO_EXTS else "image"


def guess_content_type(filename: str, kind: MediaKind) -> str:
    guessed = (mimetypes.guess_type(filename or "")[0] or "").lower().strip()
    if guessed:
        return guessed
    return "video/*" if kind == "video" else "image/*"


def safe_upload_ext(*, filename: str, content_type: str) -> str:
    fn = (filename or "").strip()
    ext = os.path.splitext(fn)[1].lower()
    if ext and len(ext) <= 12 and re.match(r"^\.[a-z0-9]+$", ext):
        return ext
    ct = (content_type or "").lower().strip()
    if ct in {"image/jpeg", "image/jpg"}:
        return ".jpg"
    if ct == "image/png":
        return ".png"
    if ct == "image/webp":
        return ".webp"
    if ct == "video/mp4":
        return ".mp4"
    if ct == "video/quicktime":
        return ".mov"
    # Safe generic fallback.
    return ".bin"


def is_duplicate(db: Session, content_hash: str) -> bool:
    """
    Advisory check: does any stored media already carry this fingerprint?

    Uses the content_hash index. Query errors propagate to the caller.
    The authoritative gate is the partial unique index on original rows.
    """
    row = db.execute(select(MediaUpload.id).where(MediaUpload.content_hash == content_hash).limit(1)).first()
    return row is not None


def has_original(db: Session, content_hash: str) -> bool:
    row = db.execute(
        select(MediaUpload.id)
        .where(MediaUpload.content_hash == content_hash, MediaUpload.is_original.is_(True))
        .limit(1)
    ).first()
    return row is not None
