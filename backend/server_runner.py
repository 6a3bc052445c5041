"""Uvicorn launcher with environment-driven server controls.

Sessions and the glyph cache live in process memory, so the server always
runs a single worker.
"""

import logging
import os

import uvicorn

logger = logging.getLogger("jibang")


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def uvicorn_options() -> dict:
    requested_workers = _env_int("WEB_CONCURRENCY", 1, minimum=1)
    if requested_workers != 1:
        logger.warning("WEB_CONCURRENCY=%s ignored; in-memory sessions require a single worker", requested_workers)
    return {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": _env_int("PORT", 8000, minimum=1),
        "workers": 1,
        "backlog": _env_int("UVICORN_BACKLOG", 2048, minimum=16),
        "timeout_keep_alive": _env_int("UVICORN_TIMEOUT_KEEP_ALIVE", 5, minimum=1),
        "limit_concurrency": _env_optional_int("UVICORN_LIMIT_CONCURRENCY"),
        "log_level": os.getenv("UVICORN_LOG_LEVEL", "info").strip() or "info",
    }


if __name__ == "__main__":
    uvicorn.run("backend.main:app", **uvicorn_options())
