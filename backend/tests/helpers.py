from __future__ import annotations

import os

from app.storage import MediaStore


def image_bytes(size: int = 1200, seed: bytes = b"img") -> bytes:
    """Deterministic payload of exactly `size` bytes that starts like a JPEG."""
    body = (seed * (size // max(len(seed), 1) + 1))[: size - 3]
    return b"\xff\xd8\xff" + body


def uploaded_files(store: MediaStore) -> list[str]:
    if not os.path.isdir(store.root):
        return []
    return sorted(os.listdir(store.root))
