"""Environment-driven settings and the default dashboard preset."""

from __future__ import annotations

import os
from typing import Dict, List, Optional

from dotenv import load_dotenv

from core.models import ChartKind

load_dotenv()

DEFAULT_DATA_SOURCE = "data/top_1000_most_swapped_books.csv"


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip() or default


def _env_int(key: str, default: int) -> int:
    raw = _env(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def data_source() -> str:
    return _env("BOOKVIS_DATA_SOURCE", DEFAULT_DATA_SOURCE) or DEFAULT_DATA_SOURCE


def default_height() -> int:
    return _env_int("BOOKVIS_DEFAULT_HEIGHT", 255)


def cors_origins() -> List[str]:
    raw = _env("BOOKVIS_CORS_ORIGINS", "*") or "*"
    return [o.strip() for o in raw.split(",") if o.strip()]


def dashboard_preset() -> Dict[ChartKind, dict]:
    """Three-panel dashboard: context (genres), focus (heatmap), advanced (parallel)."""
    height = default_height()
    return {
        ChartKind.genre_bar: {"top_n": 10, "height": height},
        ChartKind.rating_heatmap: {"height": height},
        ChartKind.parallel_coords: {
            "height": height,
            "max_dims": 6,
            "min_dims": 4,
            "max_lines": 550,
        },
    }
