from __future__ import annotations

import os


def _load_dotenv_if_present() -> None:
    """
    Load environment variables from a local `.env` file (dev convenience).

    Production deployments should set real environment variables instead.
    """
    try:
        from dotenv import load_dotenv

        # Do not override existing environment variables.
        load_dotenv(override=False)
    except Exception:
        return


# Load .env as early as possible (dev only).
_load_dotenv_if_present()


SERVICE_NAME = "sultanproperti"
SERVICE_VERSION = "1.0.0"


def database_url() -> str:
    url = os.environ.get("DATABASE_URL") or "sqlite:///./local.db"
    # Some managed providers still supply `postgres://...` which SQLAlchemy treats as invalid.
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def uploads_dir() -> str:
    return os.environ.get("UPLOADS_DIR") or os.path.join(os.path.dirname(__file__), "..", "uploads")


def static_dir() -> str:
    return (os.environ.get("STATIC_DIR") or "static").strip()


def original_upload_tokens() -> int:
    """
    Fixed reward credited for every original (non-duplicate) upload.
    Set via env `ORIGINAL_UPLOAD_TOKENS`; non-positive or invalid values fall back to 100.
    """
    raw = (os.environ.get("ORIGINAL_UPLOAD_TOKENS") or "").strip()
    try:
        v = int(raw or "100")
    except Exception:
        return 100
    return v if v > 0 else 100


def max_upload_bytes() -> int:
    # Default: 500 MiB per file (raw upload bytes).
    try:
        return int(os.environ.get("MAX_UPLOAD_BYTES") or str(500 * 1024 * 1024))
    except Exception:
        return 500 * 1024 * 1024


def cors_origins() -> list[str]:
    """
    Configure with env `CORS_ORIGINS` as a comma-separated list.
    """
    raw = (os.environ.get("CORS_ORIGINS") or "").strip()
    if raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return [
        "https://sultanproperti.com",
        "http://sultanproperti.com",
        "http://localhost:8080",
        "http://127.0.0.1:8080",
    ]


def allowed_hosts() -> list[str]:
    """
    Comma-separated list for TrustedHost middleware.
    Example: ALLOWED_HOSTS=api.example.com,example.com
    """
    raw = (os.environ.get("ALLOWED_HOSTS") or "").strip()
    if not raw:
        return ["*"]
    hosts = [h.strip() for h in raw.split(",") if h.strip()]
    return hosts or ["*"]


def server_host() -> str:
    return (os.environ.get("SERVER_HOST") or "127.0.0.1").strip()


def server_port() -> int:
    raw = (os.environ.get("SERVER_PORT") or "").strip()
    try:
        return int(raw or "8080")
    except Exception:
        return 8080


def log_level() -> str:
    return (os.environ.get("LOG_LEVEL") or "INFO").strip().upper()
