"""
Frame builder skill.

Takes a prepared aggregate + Layout -> ChartFrame the rendering backend can
paint directly. Chart data contract (frame.marks):
- genre_bar: category, count, x, width, tooltip.
- rating_heatmap: decade, rating_bin, count, x, y, width, height, empty, tooltip.
- parallel_coords: label, points [[x, value], ...], tooltip.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from core.models import (
    CategoryCount,
    ChartFrame,
    ChartKind,
    HeatmapGrid,
    Layout,
    ParallelProjection,
    ProjectionRecord,
)
from core.utils import coerce_number
from skills.heatmap import rating_range_label
from skills.layout import band_scale, legend_width, point_scale

CAPTIONS = {
    ChartKind.genre_bar: (
        "Overview: Top Genres by Swapped Book Count",
        "Shows which book genres appear most frequently among popular book exchanges.",
    ),
    ChartKind.rating_heatmap: (
        "Distribution of Book Ratings Over Time",
        "Displays how book rating distributions vary across publication decades.",
    ),
    ChartKind.parallel_coords: (
        "Multivariate Comparison (Parallel Coordinates)",
        "Each line represents a single book, enabling comparison across multiple numerical attributes.",
    ),
}


# ---------------------------------------------------------------------------
# Tooltip text
# ---------------------------------------------------------------------------

def genre_tooltip(item: CategoryCount) -> List[str]:
    return [item.category, f"Count: {item.count}"]


def heatmap_tooltip(decade: int, rating_bin: float, count: int) -> List[str]:
    return [f"Decade: {decade}s", f"Rating: {rating_range_label(rating_bin)}", f"Books: {count}"]


def projection_tooltip(record: ProjectionRecord, rating_key: Optional[str]) -> List[str]:
    lines = [record.label or "(Untitled)"]
    raw = record.raw if isinstance(record.raw, dict) else {}
    rating = coerce_number(raw.get(rating_key)) if rating_key else None
    if rating is not None:
        lines.append(f"Rating: {raw.get(rating_key)}")
    return lines


# ---------------------------------------------------------------------------
# Per-kind mark builders
# ---------------------------------------------------------------------------

def _is_empty(kind: ChartKind, prepared: Any) -> bool:
    if kind == ChartKind.genre_bar:
        return not prepared
    if kind == ChartKind.rating_heatmap:
        return not prepared.cells
    return not prepared.records or not prepared.dimensions


def _bar_marks(data: List[CategoryCount], layout: Layout) -> tuple[Dict[str, Any], List[Dict[str, Any]]]:
    x = band_scale([d.category for d in data], 0, layout.inner_width, padding_inner=0.2, padding_outer=0.2)
    y_max = max(1, max(d.count for d in data))
    marks = []
    for d in data:
        h = layout.inner_height * d.count / y_max
        marks.append({
            "category": d.category,
            "count": d.count,
            "x": x["positions"][d.category],
            "y": layout.inner_height - h,
            "width": x["bandwidth"],
            "height": h,
            "tooltip": genre_tooltip(d),
        })
    return {"x": x, "y": {"domain": [0, y_max], "range": [layout.inner_height, 0]}}, marks


def _heatmap_marks(grid: HeatmapGrid, layout: Layout) -> tuple[Dict[str, Any], List[Dict[str, Any]]]:
    x = band_scale([str(d) for d in grid.decades], 0, layout.inner_width,
                   padding_inner=0.08, padding_outer=0.02)
    y = band_scale([f"{b:.1f}" for b in grid.rating_bins], layout.inner_height, 0,
                   padding_inner=0.08, padding_outer=0.02)
    marks = []
    for cell in grid.cells:
        marks.append({
            "decade": cell.decade,
            "rating_bin": cell.rating_bin,
            "count": cell.count,
            "x": x["positions"][str(cell.decade)],
            "y": y["positions"][f"{cell.rating_bin:.1f}"],
            "width": x["bandwidth"],
            "height": y["bandwidth"],
            "empty": cell.count <= 0,
            "tooltip": heatmap_tooltip(cell.decade, cell.rating_bin, cell.count),
        })
    scales = {
        "x": x,
        "y": y,
        "x_ticks": [str(d) for d in grid.decade_ticks],
        "color": {"domain": [1, grid.color_max]},
        "legend": {
            "width": legend_width(layout),
            "x": layout.margin.left + layout.inner_width - legend_width(layout),
            "y": layout.margin.top + layout.inner_height + 34,
        },
    }
    return scales, marks


def _scale_value(value: float, extent: tuple[float, float], inner_height: float) -> float:
    lo, hi = extent
    if hi == lo:
        return inner_height / 2
    return inner_height - (value - lo) / (hi - lo) * inner_height


def _parallel_marks(proj: ParallelProjection, layout: Layout) -> tuple[Dict[str, Any], List[Dict[str, Any]]]:
    x = point_scale(proj.dimensions, 0, layout.inner_width, padding=0.6)
    marks = []
    for rec in proj.records:
        points = []
        for d in proj.dimensions:
            v = rec.values.get(d)
            if v is None or not math.isfinite(v):
                continue
            points.append([x[d], _scale_value(v, proj.extents[d], layout.inner_height)])
        marks.append({
            "label": rec.label,
            "points": points,
            "tooltip": projection_tooltip(rec, proj.rating_key),
        })
    scales = {
        "x": {"positions": x},
        "y": {d: {"domain": list(proj.extents[d]), "range": [layout.inner_height, 0]}
              for d in proj.dimensions},
        "axis_labels": proj.labels,
    }
    return scales, marks


_MARK_BUILDERS = {
    ChartKind.genre_bar: _bar_marks,
    ChartKind.rating_heatmap: _heatmap_marks,
    ChartKind.parallel_coords: _parallel_marks,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_frame(kind: ChartKind, prepared: Any, layout: Layout, *, chart_id: str = "") -> ChartFrame:
    """Combine aggregate + layout; an empty aggregate or collapsed layout draws nothing."""
    title, subtitle = CAPTIONS[kind]
    frame = ChartFrame(chart_id=chart_id, kind=kind, title=title, subtitle=subtitle, layout=layout)
    if prepared is None or _is_empty(kind, prepared) or not layout.drawable:
        return frame

    scales, marks = _MARK_BUILDERS[kind](prepared, layout)
    frame.drawable = True
    frame.data = prepared
    frame.scales = scales
    frame.marks = marks
    return frame
