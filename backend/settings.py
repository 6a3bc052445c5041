"""Environment-driven settings for the jibang backend.

Priority: existing process env > backend/.env > repo/.env
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

MODULE_DIR = Path(__file__).resolve().parent
REPO_ROOT = MODULE_DIR.parent

load_dotenv(dotenv_path=MODULE_DIR / ".env", override=False)
load_dotenv(dotenv_path=REPO_ROOT / ".env", override=False)


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        return max(minimum, float(raw))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def first_nonempty_env(*keys: str) -> Optional[str]:
    for key in keys:
        value = os.getenv(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


# ------------------------------------------------------------------------------
# OpenAI
# ------------------------------------------------------------------------------
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_FALLBACK_MODELS = [
    model.strip() for model in os.getenv("OPENAI_FALLBACK_MODELS", "gpt-4.1-mini").split(",") if model.strip()
]
OPENAI_IMAGE_MODEL = os.getenv("OPENAI_IMAGE_MODEL", "gpt-image-1")
OPENAI_IMAGE_SIZE = os.getenv("OPENAI_IMAGE_SIZE", "1024x1024")
HANJA_MAX_TOKENS = _env_int("HANJA_MAX_TOKENS", 200, minimum=16)
ASSISTANT_MAX_TOKENS = _env_int("ASSISTANT_MAX_TOKENS", 1200, minimum=64)

# ------------------------------------------------------------------------------
# Fonts
# ------------------------------------------------------------------------------
JIBANG_FONT_PATH = first_nonempty_env("JIBANG_FONT_PATH")
JIBANG_FALLBACK_FONT_PATH = first_nonempty_env("JIBANG_FALLBACK_FONT_PATH")

# ------------------------------------------------------------------------------
# Glyph fallback pipeline
# ------------------------------------------------------------------------------
GLYPH_RESCAN_DEBOUNCE_SEC = _env_float("GLYPH_RESCAN_DEBOUNCE_SEC", 0.5)
# 0 keeps generation requests unbounded.
GLYPH_MAX_CONCURRENCY = _env_int("GLYPH_MAX_CONCURRENCY", 0)
GLYPH_SUPPORT_STRATEGY = os.getenv("GLYPH_SUPPORT_STRATEGY", "pixel_diff").strip().lower() or "pixel_diff"
GLYPH_GENERATION_ENABLED = _env_bool("GLYPH_GENERATION_ENABLED", True)

# ------------------------------------------------------------------------------
# HTTP
# ------------------------------------------------------------------------------
ALLOWED_ORIGINS = [
    origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:8501").split(",") if origin.strip()
]
