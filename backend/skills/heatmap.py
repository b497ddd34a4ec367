"""
Rating × decade heatmap skill.

Bins publication year into decades and rating into half-point buckets, then
cross-tabulates into a dense grid: every observed decade × every observed
rating bucket appears once, zero counts included.
"""

from __future__ import annotations

import logging
import math
from typing import Any, List, Mapping, Optional, Sequence

import pandas as pd

from core.models import BinCell, HeatmapGrid
from core.utils import RATING_ALIASES, YEAR_ALIASES, coerce_series, resolve_column, rows_frame

logger = logging.getLogger("uvicorn.error")

RATING_STEP = 0.5


def decade_of(year: float) -> int:
    """Floor to the decade; -5 belongs to -10, not 0."""
    return int(math.floor(year / 10) * 10)


def rating_bin_of(rating: float) -> float:
    return round(math.floor(rating / RATING_STEP) * RATING_STEP, 1)


def rating_range_label(low: float) -> str:
    return f"{low:.1f}–{low + RATING_STEP:.1f}"


def _bound(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


def thin_ticks(decades: List[int], max_ticks: int = 10) -> List[int]:
    """Keep every k-th decade so at most ~``max_ticks`` labels are drawn."""
    step = max(1, len(decades) // max_ticks)
    return [d for i, d in enumerate(decades) if i % step == 0]


def build_rating_heatmap(
    rows: Sequence[Mapping[str, Any]],
    *,
    min_year: Optional[float] = 1900,
    max_year: Optional[float] = None,
    year_key: Optional[str] = None,
    rating_key: Optional[str] = None,
) -> HeatmapGrid:
    """Aggregate rows into the dense decade × rating-bin grid."""
    if not rows:
        return HeatmapGrid()

    sample = rows[0]
    year_key = year_key or resolve_column(sample, YEAR_ALIASES)
    rating_key = rating_key or resolve_column(sample, RATING_ALIASES)
    if not year_key or not rating_key:
        logger.debug("Heatmap columns unresolved: year=%s rating=%s", year_key, rating_key)
        return HeatmapGrid(year_key=year_key, rating_key=rating_key)

    df = rows_frame(rows)
    year = coerce_series(df[year_key]) if year_key in df.columns else pd.Series(dtype="float64")
    rating = coerce_series(df[rating_key]) if rating_key in df.columns else pd.Series(dtype="float64")

    keep = year.notna() & rating.notna()
    lo, hi = _bound(min_year), _bound(max_year)
    if lo is not None:
        keep &= year >= lo
    if hi is not None:
        keep &= year <= hi

    items = pd.DataFrame({
        "decade": year[keep].map(decade_of),
        "rating_bin": rating[keep].map(rating_bin_of),
    })
    if items.empty:
        return HeatmapGrid(year_key=year_key, rating_key=rating_key)

    decades = sorted(int(d) for d in items["decade"].unique())
    rating_bins = sorted(float(b) for b in items["rating_bin"].unique())

    ct = pd.crosstab(items["decade"], items["rating_bin"])
    ct = ct.reindex(index=decades, columns=rating_bins, fill_value=0)

    cells: List[BinCell] = []
    max_count = 0
    for dec in decades:
        for b in rating_bins:
            count = int(ct.loc[dec, b])
            max_count = max(max_count, count)
            cells.append(BinCell(
                decade=dec,
                rating_bin=b,
                rating_label=rating_range_label(b),
                count=count,
            ))

    return HeatmapGrid(
        cells=cells,
        decades=decades,
        rating_bins=rating_bins,
        decade_ticks=thin_ticks(decades),
        max_count=max_count,
        color_max=max(1, max_count),
        year_key=year_key,
        rating_key=rating_key,
    )
