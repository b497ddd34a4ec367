"""
Chart API routes, mounted as a sub-router on the main FastAPI app.

Chart instances live per session; frames are fetched with GET or streamed
via GET /api/charts/{chart_id}/events (SSE).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ValidationError

from core.config import dashboard_preset, data_source
from core.models import (
    ChartKind,
    CreateChartRequest,
    DashboardRequest,
    ReloadRequest,
    ResizeRequest,
    config_for,
)
from core.storage import add_chart, get_chart, get_session_charts, get_viewport, remove_chart
from server.controller import ChartInstance, ViewportSource, start_load
from server.sse import EVT_FRAME, SSEEvent

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api", tags=["charts"])

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class HoverRequest(BaseModel):
    index: Optional[int] = None
    x: float = 0.0
    y: float = 0.0


def _require_session_id(request: Request) -> str:
    sid = request.headers.get("X-Session-Id")
    if not sid:
        raise HTTPException(status_code=400, detail="Missing X-Session-Id header.")
    return sid


def _require_chart(sid: str, chart_id: str) -> ChartInstance:
    chart = get_chart(sid, chart_id)
    if chart is None:
        raise HTTPException(status_code=404, detail=f"Chart '{chart_id}' not found.")
    return chart


def _create(sid: str, kind: ChartKind, config: Optional[dict], source: Optional[str],
            width: Optional[float]) -> ChartInstance:
    try:
        cfg = config_for(kind, config)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid config for {kind.value}: {e}")
    chart = ChartInstance(kind, cfg)
    viewport = ViewportSource(width or 0)
    add_chart(sid, chart, viewport)
    chart.attach(viewport)
    start_load(chart, source or data_source())
    logger.info("Chart %s (%s) created for session %s", chart.id, kind.value, sid)
    return chart


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/charts")
async def create_chart(request: Request, body: CreateChartRequest):
    """Create a chart instance and start loading its dataset in the background."""
    sid = _require_session_id(request)
    chart = _create(sid, body.kind, body.config, body.source, body.width)
    return {"chart_id": chart.id, "kind": chart.kind.value}


@router.post("/dashboard")
async def create_dashboard(request: Request, body: DashboardRequest = DashboardRequest()):
    """Create the three dashboard panels against one dataset."""
    sid = _require_session_id(request)
    charts = [
        _create(sid, kind, cfg, body.source, body.width)
        for kind, cfg in dashboard_preset().items()
    ]
    return {"charts": [{"chart_id": c.id, "kind": c.kind.value} for c in charts]}


@router.get("/charts")
async def list_charts(request: Request):
    sid = _require_session_id(request)
    return {"charts": [c.summary() for c in get_session_charts(sid)]}


@router.get("/charts/{chart_id}")
async def get_frame(request: Request, chart_id: str):
    """Current frame of a chart (drawable=False while empty or collapsed)."""
    sid = _require_session_id(request)
    chart = _require_chart(sid, chart_id)
    return chart.frame.model_dump(mode="json")


@router.post("/charts/{chart_id}/resize")
async def resize_chart(request: Request, chart_id: str, body: ResizeRequest):
    sid = _require_session_id(request)
    chart = _require_chart(sid, chart_id)
    viewport = get_viewport(sid, chart_id)
    if viewport is None:
        chart.on_resize(body.width)
    else:
        viewport.set_width(body.width)
    return chart.frame.model_dump(mode="json")


@router.post("/charts/{chart_id}/reload")
async def reload_chart(request: Request, chart_id: str, body: ReloadRequest = ReloadRequest()):
    """Start a fresh load; any load still in flight is discarded when it lands."""
    sid = _require_session_id(request)
    chart = _require_chart(sid, chart_id)
    source = body.source or chart.source or data_source()
    start_load(chart, source)
    return {"chart_id": chart.id, "source": source}


@router.post("/charts/{chart_id}/hover")
async def hover_chart(request: Request, chart_id: str, body: HoverRequest):
    sid = _require_session_id(request)
    chart = _require_chart(sid, chart_id)
    tip = chart.hover(body.index, body.x, body.y)
    if tip is None:
        return {"visible": False, "lines": []}
    return {"visible": tip.visible, "lines": tip.lines, "x": tip.x, "y": tip.y}


@router.get("/charts/{chart_id}/events")
async def stream_chart_events(
    request: Request,
    chart_id: str,
    session_id: str = Query(None, alias="session_id"),
):
    """
    SSE endpoint: streams clear/frame events for a chart.

    EventSource doesn't support custom headers, so session_id is passed
    as a query parameter.
    """
    sid = session_id or request.headers.get("X-Session-Id")
    if not sid:
        raise HTTPException(status_code=400, detail="Missing session_id query parameter.")
    chart = _require_chart(sid, chart_id)

    async def _stream():
        # replay the current frame so late subscribers start in sync
        yield SSEEvent(event=EVT_FRAME, data=chart.frame.model_dump(mode="json")).format()
        async for event_str in chart.channel:
            yield event_str

    return StreamingResponse(_stream(), media_type="text/event-stream", headers=_SSE_HEADERS)


@router.delete("/charts/{chart_id}")
async def delete_chart(request: Request, chart_id: str):
    sid = _require_session_id(request)
    chart = remove_chart(sid, chart_id)
    if chart is None:
        raise HTTPException(status_code=404, detail=f"Chart '{chart_id}' not found.")
    chart.teardown()
    return {"chart_id": chart_id, "closed": True}
