"""Environment-driven configuration.

Values are read from the process environment (optionally populated from a
`.env` file by `main.py`) once at startup and passed to the components
that need them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_MODEL_FACTORY = "services.inference.mobilenet:load_mobilenet_model"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ChannelConfig:
    """Timeouts and retry limit for the background worker channel."""

    init_timeout: float = 20.0
    request_timeout: float = 10.0
    max_init_attempts: int = 3


@dataclass(frozen=True)
class Settings:
    """Application settings.

    Attributes:
        database_dir: Directory holding app.db; None leaves the store offline.
        image_dir: Blob bucket directory; defaults to <database_dir>/images.
        max_upload_bytes: Largest accepted upload.
        min_image_dimension: Smallest accepted width/height in pixels.
        min_persist_confidence: Results below this are shown but not kept.
        worker_enabled: False forces inference onto the request thread.
        model_factory: "module:callable" that builds the disease model.
        channel: Worker channel timeouts and attempt limit.
    """

    database_dir: Optional[Path] = None
    image_dir: Optional[Path] = None
    max_upload_bytes: int = 10 * 1024 * 1024
    min_image_dimension: int = 32
    min_persist_confidence: int = 75
    worker_enabled: bool = True
    model_factory: str = DEFAULT_MODEL_FACTORY
    channel: ChannelConfig = ChannelConfig()

    @classmethod
    def from_env(cls) -> "Settings":
        database_dir = os.getenv("DATABASE_DIR")
        image_dir = os.getenv("IMAGE_DIR")
        return cls(
            database_dir=Path(database_dir).expanduser() if database_dir and database_dir.strip() else None,
            image_dir=Path(image_dir).expanduser() if image_dir and image_dir.strip() else None,
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
            min_image_dimension=_env_int("MIN_IMAGE_DIMENSION", 32),
            min_persist_confidence=_env_int("MIN_PERSIST_CONFIDENCE", 75),
            worker_enabled=_env_bool("WORKER_ENABLED", True),
            model_factory=os.getenv("PLANT_MODEL_FACTORY") or DEFAULT_MODEL_FACTORY,
            channel=ChannelConfig(
                init_timeout=_env_float("CHANNEL_INIT_TIMEOUT", 20.0),
                request_timeout=_env_float("CHANNEL_REQUEST_TIMEOUT", 10.0),
                max_init_attempts=_env_int("CHANNEL_MAX_INIT_ATTEMPTS", 3),
            ),
        )

    def resolved_image_dir(self) -> Optional[Path]:
        if self.image_dir is not None:
            return self.image_dir
        if self.database_dir is not None:
            return self.database_dir / "images"
        return None
