"""
Layout skill: margins, inner extents and band/point scales per chart kind.

Pure functions of (kind, width, height); no data involved except the
domains handed to the scale helpers.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Sequence

from core.models import ChartKind, Layout, Margin

MARGINS: Dict[ChartKind, Margin] = {
    ChartKind.genre_bar: Margin(top=18, right=16, bottom=80, left=70),
    ChartKind.rating_heatmap: Margin(top=20, right=20, bottom=70, left=80),
    ChartKind.parallel_coords: Margin(top=30, right=30, bottom=40, left=30),
}

LEGEND_HEIGHT = {ChartKind.rating_heatmap: 46}

LEGEND_MAX_WIDTH = 260


def compute_layout(kind: ChartKind, width: float, height: float) -> Layout:
    """Inner drawing area for the given viewport; not drawable when it collapses."""
    w = max(0, int(math.floor(width))) if math.isfinite(width) else 0
    h = max(0, int(height))
    margin = MARGINS[kind]
    legend = LEGEND_HEIGHT.get(kind, 0)
    inner_width = max(0, w - margin.left - margin.right)
    inner_height = max(0, h - margin.top - margin.bottom - legend)
    return Layout(
        width=w,
        height=h,
        margin=margin,
        inner_width=inner_width,
        inner_height=inner_height,
        legend_height=legend,
        drawable=w > 0 and inner_width > 0 and inner_height > 0,
    )


def band_scale(
    domain: Sequence[Any],
    start: float,
    stop: float,
    *,
    padding_inner: float = 0.0,
    padding_outer: float = 0.0,
    align: float = 0.5,
) -> Dict[str, Any]:
    """Band positions over [start, stop]; stop < start gives a reversed axis.

    Returns ``{"positions": {str(value): offset}, "bandwidth": float}``.
    """
    n = len(domain)
    reverse = stop < start
    lo, hi = (stop, start) if reverse else (start, stop)
    step = (hi - lo) / max(1.0, n - padding_inner + padding_outer * 2)
    lo += (hi - lo - step * (n - padding_inner)) * align
    bandwidth = step * (1 - padding_inner)
    offsets = [lo + step * i for i in range(n)]
    if reverse:
        offsets.reverse()
    return {
        "positions": {str(v): off for v, off in zip(domain, offsets)},
        "bandwidth": bandwidth,
        "step": step,
    }


def point_scale(
    domain: Sequence[Any],
    start: float,
    stop: float,
    *,
    padding: float = 0.0,
    align: float = 0.5,
) -> Dict[str, float]:
    """Evenly spaced points with ``padding`` steps of breathing room at each end."""
    scale = band_scale(domain, start, stop, padding_inner=1.0, padding_outer=padding, align=align)
    return scale["positions"]


def legend_width(layout: Layout) -> float:
    return min(LEGEND_MAX_WIDTH, layout.inner_width)
