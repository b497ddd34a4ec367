"""
Responsive recompute controller.

One ChartInstance per chart on the page. It owns its rows, viewport width,
prepared aggregate, current frame and tooltip, and recomputes:

- the aggregate, from scratch, whenever rows or configuration change;
- the layout, from scratch, whenever the width changes.

Every redraw first clears the backend and releases the tooltip, so nothing
from a previous frame survives a resize or reload.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from app.loader import LoadFailure, fetch_rows
from core.models import ChartConfig, ChartFrame, ChartKind, ViewportSize, config_for
from server.sse import EVT_CLEAR, EVT_CLOSED, EVT_FRAME, EVT_LOAD_FAILED, EVT_LOAD_STARTED, SSEChannel
from skills.dimensions import build_parallel_projection
from skills.frames import build_frame
from skills.genres import aggregate_genres
from skills.heatmap import build_rating_heatmap
from skills.layout import compute_layout

logger = logging.getLogger("uvicorn.error")

Loader = Callable[..., Awaitable[List[Dict[str, Any]]]]
WidthCallback = Callable[[float], None]


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------

class RenderBackend(Protocol):
    def clear(self) -> None: ...

    def draw(self, frame: ChartFrame) -> None: ...


class ChannelBackend:
    """Publishes clear/frame events for the browser to paint."""

    def __init__(self, channel: SSEChannel) -> None:
        self.channel = channel

    def clear(self) -> None:
        self.channel.publish(EVT_CLEAR)

    def draw(self, frame: ChartFrame) -> None:
        self.channel.publish(EVT_FRAME, frame.model_dump(mode="json"))


class ViewportSource:
    """Container-width notifications: immediate reading on subscribe, then every change."""

    def __init__(self, width: float = 0) -> None:
        self._width = width
        self._subscribers: Dict[int, WidthCallback] = {}
        self._next = 0

    @property
    def width(self) -> float:
        return self._width

    def subscribe(self, callback: WidthCallback) -> Callable[[], None]:
        token = self._next
        self._next += 1
        self._subscribers[token] = callback
        callback(self._width)

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    def set_width(self, width: float) -> None:
        self._width = width
        for callback in list(self._subscribers.values()):
            callback(width)

    def subscriber_count(self) -> int:
        return len(self._subscribers)


class Tooltip:
    """Floating tooltip state; created lazily, released on every redraw."""

    def __init__(self) -> None:
        self.visible = False
        self.lines: List[str] = []
        self.x = 0.0
        self.y = 0.0

    def show(self, lines: List[str], x: float, y: float) -> None:
        self.visible = True
        self.lines = list(lines)
        self.move(x, y)

    def move(self, x: float, y: float) -> None:
        # offset from the pointer, relative to the container
        self.x = x + 12
        self.y = y + 12

    def hide(self) -> None:
        self.visible = False


# ---------------------------------------------------------------------------
# Aggregation dispatch
# ---------------------------------------------------------------------------

def prepare(kind: ChartKind, rows: List[Dict[str, Any]], config: ChartConfig) -> Any:
    """Pure aggregate for a chart kind: same rows + config, same output."""
    if kind == ChartKind.genre_bar:
        return aggregate_genres(rows, config.top_n)
    if kind == ChartKind.rating_heatmap:
        return build_rating_heatmap(rows, min_year=config.min_year, max_year=config.max_year)
    return build_parallel_projection(rows, config)


# ---------------------------------------------------------------------------
# Chart instance
# ---------------------------------------------------------------------------

class ChartInstance:
    def __init__(
        self,
        kind: ChartKind,
        config: Optional[ChartConfig] = None,
        *,
        backend: Optional[RenderBackend] = None,
        loader: Loader = fetch_rows,
        chart_id: Optional[str] = None,
    ) -> None:
        self.id = chart_id or str(uuid.uuid4())
        self.kind = kind
        self.config = config if config is not None else config_for(kind)
        self.channel = SSEChannel()
        self.backend: RenderBackend = backend or ChannelBackend(self.channel)
        self.loader = loader

        self.rows: List[Dict[str, Any]] = []
        self.viewport = ViewportSize()
        self.prepared: Any = None
        self.frame: ChartFrame = build_frame(kind, None, compute_layout(kind, 0, self.config.height), chart_id=self.id)
        self.source: Optional[str] = None
        self.last_error: Optional[str] = None
        self.closed = False

        self._tooltip: Optional[Tooltip] = None
        self._load_token: Optional[object] = None
        self.load_task: Optional["asyncio.Task[bool]"] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    # -- resources ----------------------------------------------------------

    @property
    def tooltip(self) -> Tooltip:
        if self._tooltip is None:
            self._tooltip = Tooltip()
        return self._tooltip

    @property
    def has_tooltip(self) -> bool:
        return self._tooltip is not None

    def _release_tooltip(self) -> None:
        self._tooltip = None

    # -- inputs -------------------------------------------------------------

    def attach(self, viewport: ViewportSource) -> None:
        """Follow a viewport; replaces any earlier subscription."""
        self.detach()
        self._unsubscribe = viewport.subscribe(self.on_resize)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_resize(self, width: float) -> None:
        """Last write wins; every notification recomputes layout."""
        if self.closed:
            return
        w = int(math.floor(width)) if width is not None and math.isfinite(width) else 0
        self.viewport = ViewportSize(width=max(0, w))
        self.redraw()

    def set_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.rows = list(rows)
        self.prepared = prepare(self.kind, self.rows, self.config)
        self.redraw()

    def set_config(self, config: ChartConfig) -> None:
        self.config = config
        self.set_rows(self.rows)

    async def load(self, source: str) -> bool:
        """Fetch rows; a superseded or torn-down load is discarded, not applied."""
        if self.closed:
            return False
        token = object()
        self._load_token = token
        self.source = source
        self.channel.publish(EVT_LOAD_STARTED, {"source": source})

        try:
            rows = await self.loader(source, auto_type=self.config.auto_type)
        except Exception as e:
            if self._load_token is not token or self.closed:
                return False
            failure = e if isinstance(e, LoadFailure) else LoadFailure(source, f"{type(e).__name__}: {e}")
            logger.exception("Chart %s (%s) failed to load %s", self.id, self.kind.value, source)
            self.last_error = str(failure)
            self.channel.publish(EVT_LOAD_FAILED, {"source": source, "detail": str(failure)})
            self.set_rows([])
            return False

        if self._load_token is not token or self.closed:
            logger.debug("Discarding stale load of %s for chart %s", source, self.id)
            return False

        self.last_error = None
        self.set_rows(rows)
        logger.info("Chart %s (%s) loaded %d rows", self.id, self.kind.value, len(rows))
        return True

    def hover(self, index: Optional[int], x: float = 0.0, y: float = 0.0) -> Optional[Tooltip]:
        """Point at a mark of the current frame; ``None`` or a stale index hides the tooltip."""
        marks = self.frame.marks if self.frame.drawable else []
        if index is None or not 0 <= index < len(marks):
            if self._tooltip is not None:
                self._tooltip.hide()
            return self._tooltip
        self.tooltip.show(marks[index]["tooltip"], x, y)
        return self._tooltip

    # -- output -------------------------------------------------------------

    def redraw(self) -> ChartFrame:
        """Tear down previous output, then draw from the current state."""
        self.backend.clear()
        self._release_tooltip()

        layout = compute_layout(self.kind, self.viewport.width, self.config.height)
        self.frame = build_frame(self.kind, self.prepared, layout, chart_id=self.id)
        if self.frame.drawable:
            self.backend.draw(self.frame)
            logger.info("Chart %s (%s) drew %d marks at width %d",
                        self.id, self.kind.value, len(self.frame.marks), layout.width)
        elif self.rows and layout.drawable:
            logger.warning("Chart %s (%s) has nothing to draw for %d rows",
                           self.id, self.kind.value, len(self.rows))
        return self.frame

    def teardown(self) -> None:
        """Cancel pending loads, unsubscribe from resize, release everything."""
        if self.closed:
            return
        self.closed = True
        self._load_token = None
        self.detach()
        self.backend.clear()
        self._release_tooltip()
        self.channel.publish(EVT_CLOSED, {"chart_id": self.id})
        self.channel.close()

    def summary(self) -> Dict[str, Any]:
        return {
            "chart_id": self.id,
            "kind": self.kind.value,
            "source": self.source,
            "rows": len(self.rows),
            "width": self.viewport.width,
            "drawable": self.frame.drawable,
            "error": self.last_error,
        }


def start_load(instance: ChartInstance, source: str) -> "asyncio.Task[bool]":
    """Schedule a background load on the running loop; the instance keeps the task."""
    async def _bg() -> bool:
        try:
            return await instance.load(source)
        except Exception:
            logger.exception("Background load crashed for chart %s", instance.id)
            return False

    instance.load_task = asyncio.create_task(_bg())
    return instance.load_task
