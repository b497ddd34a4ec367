"""
Core Pydantic models for the book dashboard pipeline.

All domain types live here so every module shares the same vocabulary.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Chart kinds & configuration
# ---------------------------------------------------------------------------

class ChartKind(str, Enum):
    genre_bar = "genre_bar"
    rating_heatmap = "rating_heatmap"
    parallel_coords = "parallel_coords"


class GenreChartConfig(BaseModel):
    top_n: int = Field(10, ge=1)
    height: int = Field(320, ge=0)
    auto_type: bool = False


class HeatmapConfig(BaseModel):
    min_year: Optional[float] = 1900
    max_year: Optional[float] = None
    height: int = Field(400, ge=0)
    auto_type: bool = True


class ParallelCoordsConfig(BaseModel):
    min_dims: int = Field(4, ge=1)
    max_dims: int = Field(6, ge=1)
    max_lines: Optional[float] = 550
    height: int = Field(420, ge=0)
    max_missing_ratio: float = Field(0.4, ge=0.0, le=1.0)
    row_missing_fraction: float = Field(0.5, ge=0.0, le=1.0)
    excluded_columns: List[str] = Field(default_factory=lambda: ["id", "isbn"])
    auto_type: bool = True

    @model_validator(mode="after")
    def check_dim_bounds(self) -> "ParallelCoordsConfig":
        if self.min_dims > self.max_dims:
            raise ValueError(
                f"min_dims ({self.min_dims}) must not exceed max_dims ({self.max_dims})"
            )
        return self

    def line_cap(self) -> Optional[int]:
        """Effective row cap; None when the cap is disabled."""
        cap = self.max_lines
        if cap is None or not math.isfinite(cap) or cap <= 0:
            return None
        return int(cap)


ChartConfig = GenreChartConfig | HeatmapConfig | ParallelCoordsConfig

CONFIG_TYPES = {
    ChartKind.genre_bar: GenreChartConfig,
    ChartKind.rating_heatmap: HeatmapConfig,
    ChartKind.parallel_coords: ParallelCoordsConfig,
}


def config_for(kind: ChartKind, payload: Optional[Dict[str, Any]] = None) -> ChartConfig:
    """Build the typed configuration for a chart kind from a loose payload."""
    return CONFIG_TYPES[kind].model_validate(payload or {})


# ---------------------------------------------------------------------------
# Aggregator outputs
# ---------------------------------------------------------------------------

class CategoryCount(BaseModel):
    category: str
    count: int = Field(..., ge=1)


class BinCell(BaseModel):
    decade: int
    rating_bin: float
    rating_label: str
    count: int = Field(0, ge=0)


class HeatmapGrid(BaseModel):
    cells: List[BinCell] = Field(default_factory=list)
    decades: List[int] = Field(default_factory=list)
    rating_bins: List[float] = Field(default_factory=list)
    decade_ticks: List[int] = Field(default_factory=list)
    max_count: int = 0
    color_max: int = 1
    year_key: Optional[str] = None
    rating_key: Optional[str] = None


class DimensionDescriptor(BaseModel):
    key: str
    valid_count: int
    missing_ratio: float = Field(..., ge=0.0, le=1.0)
    variance: float = Field(..., ge=0.0)


class ProjectionRecord(BaseModel):
    raw: Any = None                       # back-reference to the loaded row
    label: str = ""
    values: Dict[str, Optional[float]] = Field(default_factory=dict)


class ParallelProjection(BaseModel):
    dimensions: List[str] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)
    extents: Dict[str, Tuple[float, float]] = Field(default_factory=dict)
    records: List[ProjectionRecord] = Field(default_factory=list)
    candidates: List[DimensionDescriptor] = Field(default_factory=list)
    title_key: Optional[str] = None
    rating_key: Optional[str] = None


# ---------------------------------------------------------------------------
# Viewport, layout & frames
# ---------------------------------------------------------------------------

class ViewportSize(BaseModel):
    width: int = Field(0, ge=0)


class Margin(BaseModel):
    top: int = 0
    right: int = 0
    bottom: int = 0
    left: int = 0


class Layout(BaseModel):
    width: int = 0
    height: int = 0
    margin: Margin = Field(default_factory=Margin)
    inner_width: float = 0.0
    inner_height: float = 0.0
    legend_height: int = 0
    drawable: bool = False


class ChartFrame(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    chart_id: str = ""
    kind: ChartKind
    title: str = ""
    subtitle: str = ""
    layout: Layout = Field(default_factory=Layout)
    drawable: bool = False
    data: Any = None
    scales: Dict[str, Any] = Field(default_factory=dict)
    marks: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class CreateChartRequest(BaseModel):
    kind: ChartKind
    config: Optional[Dict[str, Any]] = None
    source: Optional[str] = None
    width: Optional[float] = None


class DashboardRequest(BaseModel):
    source: Optional[str] = None
    width: Optional[float] = None


class ResizeRequest(BaseModel):
    width: float

    @field_validator("width")
    @classmethod
    def validate_width(cls, v: float) -> float:
        """Non-finite widths are treated as a collapsed viewport."""
        if not math.isfinite(v):
            return 0.0
        return v


class ReloadRequest(BaseModel):
    source: Optional[str] = None
