"""
ASGI entrypoint for deployments.

The FastAPI app lives in `backend/app/main.py` and uses imports like
`from app.db ...`, which requires `backend/` to be on `PYTHONPATH`.

By providing a repo-root `main.py`, deployments can run:
  uvicorn main:app --host 0.0.0.0 --port $PORT
or simply `python main.py`, which honours SERVER_HOST / SERVER_PORT / LOG_LEVEL.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path


_ROOT = Path(__file__).resolve().parent
_BACKEND_DIR = _ROOT / "backend"

# Ensure `import app...` resolves to `backend/app/...`
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from app.config import log_level, server_host, server_port  # noqa: E402
from app.main import app  # noqa: E402


def serve() -> None:
    import uvicorn

    level = log_level()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=server_host(), port=server_port(), log_level=level.lower())


if __name__ == "__main__":
    serve()
