from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_ACCEPTED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")


class AnalyzerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    webhook_url: Optional[str] = None
    shop: str = ""
    max_image_width: int = Field(default=1200, gt=0)
    max_image_height: int = Field(default=1200, gt=0)
    image_quality: float = Field(default=0.85, gt=0.0, le=1.0)
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    accepted_mime_types: tuple[str, ...] = DEFAULT_ACCEPTED_MIME_TYPES
    analysis_timeout_s: float = Field(default=60.0, gt=0.0)
    min_request_interval_s: float = Field(default=3.0, ge=0.0)
    default_locale: str = "fr-FR"
    result_ttl_days: float = 1.0

    @property
    def min_request_interval_ms(self) -> int:
        return int(self.min_request_interval_s * 1000)


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name) or "").strip() or None


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except Exception:
        return default


def _parse_mime_types(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_ACCEPTED_MIME_TYPES
    parts = [p.strip().lower() for p in raw.split(",")]
    return tuple(p for p in parts if p) or DEFAULT_ACCEPTED_MIME_TYPES


def load_settings() -> AnalyzerSettings:
    """Read analyzer settings from the environment.

    Values are re-read on every call so tests (and `create_app()`) can adjust
    the environment before building the app.
    """

    return AnalyzerSettings(
        webhook_url=_env_str("SKIN_ANALYZER_WEBHOOK_URL"),
        shop=_env_str("SHOP_DOMAIN") or "",
        max_image_width=_env_int("MAX_IMAGE_WIDTH", 1200),
        max_image_height=_env_int("MAX_IMAGE_HEIGHT", 1200),
        image_quality=_env_float("IMAGE_QUALITY", 0.85),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
        accepted_mime_types=_parse_mime_types(_env_str("ACCEPTED_MIME_TYPES")),
        analysis_timeout_s=_env_float("ANALYSIS_TIMEOUT_S", 60.0),
        min_request_interval_s=_env_float("MIN_REQUEST_INTERVAL_S", 3.0),
        default_locale=_env_str("DEFAULT_LOCALE") or "fr-FR",
        result_ttl_days=_env_float("RESULT_TTL_DAYS", 1.0),
    )
