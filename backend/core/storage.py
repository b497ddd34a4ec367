"""
In-memory chart instance store.

Each browser session owns its chart instances and one shared viewport per
container; nothing crosses sessions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from server.controller import ChartInstance, ViewportSource


# chart_id -> ChartInstance
CHARTS: Dict[str, "ChartInstance"] = {}

# session_id -> [chart_id, ...]
SESSION_CHARTS: Dict[str, List[str]] = {}

# (session_id, chart_id) -> ViewportSource
VIEWPORTS: Dict[tuple, "ViewportSource"] = {}


def add_chart(session_id: str, chart: "ChartInstance", viewport: "ViewportSource") -> None:
    CHARTS[chart.id] = chart
    SESSION_CHARTS.setdefault(session_id, []).append(chart.id)
    VIEWPORTS[(session_id, chart.id)] = viewport


def get_chart(session_id: str, chart_id: str) -> Optional["ChartInstance"]:
    """Return the chart only if it belongs to the session."""
    if chart_id not in SESSION_CHARTS.get(session_id, []):
        return None
    return CHARTS.get(chart_id)


def get_viewport(session_id: str, chart_id: str) -> Optional["ViewportSource"]:
    return VIEWPORTS.get((session_id, chart_id))


def get_session_charts(session_id: str) -> List["ChartInstance"]:
    return [CHARTS[cid] for cid in SESSION_CHARTS.get(session_id, []) if cid in CHARTS]


def remove_chart(session_id: str, chart_id: str) -> Optional["ChartInstance"]:
    ids = SESSION_CHARTS.get(session_id, [])
    if chart_id not in ids:
        return None
    ids.remove(chart_id)
    VIEWPORTS.pop((session_id, chart_id), None)
    return CHARTS.pop(chart_id, None)
