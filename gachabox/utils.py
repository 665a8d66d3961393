"""Utility helpers for gachabox."""

from __future__ import annotations

import logging
import math
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger("gachabox.utils")


def int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%s. Falling back to %s.", name, raw, default)
        return default


def path_from_env(name: str) -> Optional[Path]:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    return Path(value).expanduser()


def to_finite_number(value: object) -> Optional[float]:
    """Return ``value`` as a float when it is a real, finite number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


def to_positive_number(value: object) -> Optional[float]:
    """Coerce numbers and numeric strings; anything not strictly positive is ``None``."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def js_round(value: float) -> float:
    """Round half toward positive infinity, matching the stored values of the web app."""
    return float(math.floor(value + 0.5))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = [
    "int_from_env",
    "js_round",
    "path_from_env",
    "to_finite_number",
    "to_positive_number",
    "utc_now",
]
