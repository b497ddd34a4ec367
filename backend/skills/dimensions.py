"""
Parallel-coordinates dimension selection skill.

Picks a small, stable subset of numeric columns from an unknown schema and
projects each row onto it:

1. Discover numeric candidates (any row coerces), skipping identifier columns.
2. Describe each (valid count, missing ratio, population variance) and drop
   the sparse ones.
3. Rank: preferred semantic groups first, then by variance (stable).
4. Cut to ``max_dims``, topping up to ``min_dims`` when possible.
5. Project rows, dropping any with more holes than the allowance.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from core.models import (
    DimensionDescriptor,
    ParallelCoordsConfig,
    ParallelProjection,
    ProjectionRecord,
)
from core.utils import (
    PREFERRED_DIMENSION_GROUPS,
    TITLE_ALIASES,
    TOOLTIP_RATING_ALIASES,
    coerce_series,
    format_label,
    is_blank,
    population_variance,
    resolve_column,
    rows_frame,
)

logger = logging.getLogger("uvicorn.error")


# ---------------------------------------------------------------------------
# Candidate discovery
# ---------------------------------------------------------------------------

def describe_candidates(
    rows: Sequence[Mapping[str, Any]],
    *,
    excluded: Sequence[str] = ("id", "isbn"),
    max_missing_ratio: float = 0.4,
) -> List[DimensionDescriptor]:
    """Describe every usable numeric column, in sample-row column order."""
    if not rows or not rows[0]:
        return []
    total = len(rows)
    skip = {e.lower() for e in excluded}
    df = rows_frame(rows)

    out: List[DimensionDescriptor] = []
    for key in rows[0].keys():
        if str(key).lower() in skip or key not in df.columns:
            continue
        values = coerce_series(df[key])
        valid = int(values.notna().sum())
        if valid == 0:
            continue
        missing_ratio = 1.0 - valid / total
        if missing_ratio > max_missing_ratio:
            continue
        out.append(DimensionDescriptor(
            key=key,
            valid_count=valid,
            missing_ratio=missing_ratio,
            variance=population_variance(values),
        ))
    return out


# ---------------------------------------------------------------------------
# Ranking & selection
# ---------------------------------------------------------------------------

def preferred_dimensions(
    keys: Sequence[str],
    groups: Sequence[Sequence[str]] = PREFERRED_DIMENSION_GROUPS,
) -> List[str]:
    """At most one key per semantic group, in group order."""
    lower_map: Dict[str, str] = {}
    for k in keys:
        lower_map.setdefault(k.lower(), k)
    picked: List[str] = []
    for group in groups:
        for alias in group:
            actual = lower_map.get(alias.lower())
            if actual is not None:
                picked.append(actual)
                break
    return picked


def rank_dimensions(candidates: Sequence[DimensionDescriptor]) -> List[str]:
    """Preferred keys first, then the rest by variance (descending, stable)."""
    preferred = preferred_dimensions([c.key for c in candidates])
    by_variance = [c.key for c in sorted(candidates, key=lambda c: -c.variance)]
    combined: List[str] = []
    for k in preferred + by_variance:
        if k not in combined:
            combined.append(k)
    return combined


def select_dimensions(ranked: Sequence[str], min_dims: int = 4, max_dims: int = 6) -> List[str]:
    n = len(ranked)
    dims = list(ranked[: min(max_dims, n)])
    if len(dims) < min_dims:
        dims = list(ranked[: min(min_dims, n)])
    return dims


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def _label_for(row: Mapping[str, Any], title_key: Optional[str]) -> str:
    if not title_key:
        return ""
    val = row.get(title_key)
    return "" if is_blank(val) else str(val)


def project_rows(
    rows: Sequence[Mapping[str, Any]],
    dims: Sequence[str],
    *,
    title_key: Optional[str] = None,
    row_missing_fraction: float = 0.5,
    max_lines: Optional[int] = None,
) -> List[ProjectionRecord]:
    """One record per retained row; rows with too many holes are left out whole."""
    if not rows or not dims:
        return []
    allowance = math.floor(len(dims) * row_missing_fraction)
    df = rows_frame(rows)
    numeric = pd.DataFrame(
        {d: coerce_series(df[d]) if d in df.columns else pd.Series(float("nan"), index=df.index)
         for d in dims},
        index=df.index,
    )
    keep = numeric.isna().sum(axis=1) <= allowance

    records: List[ProjectionRecord] = []
    for i in numeric.index[keep]:
        if max_lines is not None and len(records) >= max_lines:
            break
        row = rows[i]
        values = {d: (None if pd.isna(v) else float(v)) for d, v in numeric.loc[i].items()}
        records.append(ProjectionRecord(raw=row, label=_label_for(row, title_key), values=values))
    return records


def axis_extents(records: Sequence[ProjectionRecord], dims: Sequence[str]) -> Dict[str, Tuple[float, float]]:
    """Per-axis (min, max) over retained rows; (0, 1) for an axis with no values."""
    extents: Dict[str, Tuple[float, float]] = {}
    for d in dims:
        vals = [r.values.get(d) for r in records if r.values.get(d) is not None]
        extents[d] = (min(vals), max(vals)) if vals else (0.0, 1.0)
    return extents


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_parallel_projection(
    rows: Sequence[Mapping[str, Any]],
    config: Optional[ParallelCoordsConfig] = None,
) -> ParallelProjection:
    """Select dimensions and project rows for the parallel-coordinates chart."""
    cfg = config or ParallelCoordsConfig()
    if not rows:
        return ParallelProjection()

    sample = rows[0]
    title_key = resolve_column(sample, TITLE_ALIASES)
    rating_key = resolve_column(sample, TOOLTIP_RATING_ALIASES)

    candidates = describe_candidates(
        rows,
        excluded=cfg.excluded_columns,
        max_missing_ratio=cfg.max_missing_ratio,
    )
    dims = select_dimensions(rank_dimensions(candidates), cfg.min_dims, cfg.max_dims)
    if not dims:
        logger.warning("No numeric dimensions found among %d columns", len(sample))
        return ParallelProjection(candidates=candidates, title_key=title_key, rating_key=rating_key)

    records = project_rows(
        rows,
        dims,
        title_key=title_key,
        row_missing_fraction=cfg.row_missing_fraction,
        max_lines=cfg.line_cap(),
    )
    logger.info(
        "Parallel projection: dims=%s rows=%d/%d", dims, len(records), len(rows),
    )
    return ParallelProjection(
        dimensions=dims,
        labels={d: format_label(d) for d in dims},
        extents=axis_extents(records, dims),
        records=records,
        candidates=candidates,
        title_key=title_key,
        rating_key=rating_key,
    )
