"""
Tests for layout, frame assembly and the chart instance recompute controller.
"""

import asyncio

import pytest

from app.loader import LoadFailure
from core.models import (
    ChartKind,
    GenreChartConfig,
    HeatmapConfig,
    ParallelCoordsConfig,
    ProjectionRecord,
)
from server.controller import ChartInstance, ViewportSource, prepare, start_load
from server.sse import EVT_CLEAR, EVT_FRAME, EVT_LOAD_FAILED
from skills.frames import build_frame, heatmap_tooltip, projection_tooltip
from skills.layout import band_scale, compute_layout, point_scale


GENRE_ROWS = [{"genre": "Fantasy, Drama"}, {"genre": "Drama"}, {"genre": "Fantasy"}]


class RecordingBackend:
    """Rendering backend double that records every call in order."""

    def __init__(self):
        self.calls = []

    def clear(self):
        self.calls.append(("clear", None))

    def draw(self, frame):
        self.calls.append(("draw", frame))

    @property
    def draws(self):
        return [f for op, f in self.calls if op == "draw"]


def make_loader(results, delays=None):
    """Async loader double: returns rows (or raises) per source."""
    delays = delays or {}

    async def loader(source, auto_type=False):
        await asyncio.sleep(delays.get(source, 0))
        outcome = results[source]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return loader


@pytest.fixture
def backend():
    return RecordingBackend()


class TestLayout:
    """Tests for margins and scales."""

    def test_zero_width_is_not_drawable(self):
        layout = compute_layout(ChartKind.genre_bar, 0, 255)
        assert layout.drawable is False
        assert layout.inner_width == 0

    def test_bar_inner_extent(self):
        layout = compute_layout(ChartKind.genre_bar, 600, 255)
        assert layout.inner_width == 600 - 70 - 16
        assert layout.inner_height == 255 - 18 - 80
        assert layout.drawable

    def test_heatmap_reserves_legend(self):
        layout = compute_layout(ChartKind.rating_heatmap, 600, 255)
        assert layout.inner_height == 255 - 20 - 70 - 46

    def test_width_is_floored(self):
        assert compute_layout(ChartKind.parallel_coords, 300.9, 255).width == 300

    def test_band_scale(self):
        scale = band_scale(["a", "b"], 0, 100, padding_inner=0.2, padding_outer=0.2)
        assert scale["step"] == pytest.approx(100 / 2.2)
        assert scale["bandwidth"] == pytest.approx(0.8 * 100 / 2.2)
        assert scale["positions"]["a"] == pytest.approx((100 - 1.8 * 100 / 2.2) / 2)

    def test_reversed_band_scale(self):
        scale = band_scale(["low", "high"], 100, 0)
        assert scale["positions"]["low"] == pytest.approx(50)
        assert scale["positions"]["high"] == pytest.approx(0)

    def test_point_scale(self):
        pos = point_scale(["x", "y", "z"], 0, 100, padding=0.6)
        assert [pos["x"], pos["y"], pos["z"]] == pytest.approx([18.75, 50.0, 81.25])


class TestFrames:
    """Tests for frame assembly and tooltip text."""

    def test_bar_frame(self):
        data = prepare(ChartKind.genre_bar, GENRE_ROWS, GenreChartConfig(top_n=2))
        frame = build_frame(ChartKind.genre_bar, data, compute_layout(ChartKind.genre_bar, 400, 255))
        assert frame.drawable
        assert [m["category"] for m in frame.marks] == ["Fantasy", "Drama"]
        assert frame.marks[0]["tooltip"] == ["Fantasy", "Count: 2"]
        assert frame.scales["y"]["domain"] == [0, 2]

    def test_heatmap_frame_marks_every_cell(self):
        rows = [{"year": 1995, "rating": 3.2}, {"year": 2001, "rating": 3.6}, {"year": 2004, "rating": 4.9}]
        grid = prepare(ChartKind.rating_heatmap, rows, HeatmapConfig())
        frame = build_frame(ChartKind.rating_heatmap, grid, compute_layout(ChartKind.rating_heatmap, 500, 255))
        assert len(frame.marks) == 6
        assert sum(m["empty"] for m in frame.marks) == 3
        assert frame.scales["color"]["domain"] == [1, 1]

    def test_heatmap_tooltip(self):
        assert heatmap_tooltip(1990, 3.0, 4) == ["Decade: 1990s", "Rating: 3.0–3.5", "Books: 4"]

    def test_projection_tooltip(self):
        rec = ProjectionRecord(raw={"average_rating": 4.25}, label="", values={})
        assert projection_tooltip(rec, "average_rating") == ["(Untitled)", "Rating: 4.25"]
        rec = ProjectionRecord(raw={"average_rating": None}, label="Dune", values={})
        assert projection_tooltip(rec, "average_rating") == ["Dune"]

    def test_parallel_frame_skips_null_points(self):
        rows = [{"a": 1, "b": 2}, {"a": 3, "b": None}, {"a": 5, "b": 6}]
        proj = prepare(ChartKind.parallel_coords, rows, ParallelCoordsConfig(min_dims=1, max_dims=2))
        frame = build_frame(ChartKind.parallel_coords, proj, compute_layout(ChartKind.parallel_coords, 400, 255))
        assert [len(m["points"]) for m in frame.marks] == [2, 1, 2]

    def test_empty_aggregate_is_not_drawable(self):
        frame = build_frame(ChartKind.genre_bar, [], compute_layout(ChartKind.genre_bar, 400, 255))
        assert frame.drawable is False
        assert frame.marks == []


class TestViewportSource:
    """Tests for the resize subscription contract."""

    def test_immediate_reading_and_updates(self):
        seen = []
        vp = ViewportSource(320)
        unsubscribe = vp.subscribe(seen.append)
        vp.set_width(500)
        unsubscribe()
        vp.set_width(10)
        assert seen == [320, 500]
        assert vp.subscriber_count() == 0


class TestChartInstance:
    """Tests for recompute, teardown and load cancellation."""

    def test_rows_and_width_draw(self, backend):
        chart = ChartInstance(ChartKind.genre_bar, GenreChartConfig(top_n=2, height=255), backend=backend)
        chart.set_rows(GENRE_ROWS)
        assert backend.draws == []  # width still 0
        chart.on_resize(480)
        assert chart.frame.drawable
        assert len(backend.draws) == 1
        assert backend.calls[-2][0] == "clear"

    def test_every_redraw_clears_first(self, backend):
        chart = ChartInstance(ChartKind.genre_bar, GenreChartConfig(height=255), backend=backend)
        chart.set_rows(GENRE_ROWS)
        for w in (300, 301, 302):
            chart.on_resize(w)
        ops = [op for op, _ in backend.calls]
        for i, op in enumerate(ops):
            if op == "draw":
                assert ops[i - 1] == "clear"
        assert len(backend.draws) == 3

    def test_resize_to_zero_is_no_draw(self, backend):
        chart = ChartInstance(ChartKind.rating_heatmap, HeatmapConfig(height=255), backend=backend)
        chart.set_rows([{"year": 2001, "rating": 4.0}])
        chart.on_resize(500)
        chart.on_resize(0)
        assert chart.frame.drawable is False
        assert chart.viewport.width == 0
        assert backend.calls[-1][0] == "clear"

    def test_negative_and_nonfinite_widths(self, backend):
        chart = ChartInstance(ChartKind.genre_bar, backend=backend)
        chart.on_resize(-40)
        assert chart.viewport.width == 0
        chart.on_resize(float("nan"))
        assert chart.viewport.width == 0

    def test_tooltip_released_on_redraw(self, backend):
        chart = ChartInstance(ChartKind.genre_bar, GenreChartConfig(height=255), backend=backend)
        chart.set_rows(GENRE_ROWS)
        chart.on_resize(400)
        tip = chart.hover(0, 10, 20)
        assert tip.visible and tip.lines == ["Fantasy", "Count: 2"]
        assert (tip.x, tip.y) == (22, 32)
        chart.on_resize(410)
        assert chart.has_tooltip is False

    def test_hover_outside_marks_hides(self, backend):
        chart = ChartInstance(ChartKind.genre_bar, GenreChartConfig(height=255), backend=backend)
        chart.set_rows(GENRE_ROWS)
        chart.on_resize(400)
        chart.hover(0)
        assert chart.hover(None).visible is False
        assert chart.hover(99).visible is False

    def test_attach_follows_viewport(self, backend):
        chart = ChartInstance(ChartKind.genre_bar, GenreChartConfig(height=255), backend=backend)
        chart.set_rows(GENRE_ROWS)
        vp = ViewportSource(250)
        chart.attach(vp)
        assert chart.viewport.width == 250
        vp.set_width(640)
        assert chart.frame.layout.width == 640

    def test_load_applies_rows(self, backend):
        loader = make_loader({"books.csv": GENRE_ROWS})
        chart = ChartInstance(ChartKind.genre_bar, backend=backend, loader=loader)
        chart.on_resize(400)
        assert asyncio.run(chart.load("books.csv")) is True
        assert chart.rows == GENRE_ROWS
        assert chart.frame.drawable

    def test_load_failure_leaves_empty_state(self, backend, caplog):
        loader = make_loader({"missing.csv": LoadFailure("missing.csv", "no such file")})
        chart = ChartInstance(ChartKind.genre_bar, backend=backend, loader=loader)
        chart.on_resize(400)
        with caplog.at_level("ERROR", logger="uvicorn.error"):
            assert asyncio.run(chart.load("missing.csv")) is False
        assert chart.rows == []
        assert chart.frame.drawable is False
        assert "no such file" in chart.last_error
        assert sum("failed to load" in r.getMessage() for r in caplog.records) == 1

    def test_superseded_load_is_discarded(self, backend):
        slow_rows = [{"genre": "Slow"}]
        loader = make_loader({"slow": slow_rows, "fast": GENRE_ROWS}, delays={"slow": 0.05})
        chart = ChartInstance(ChartKind.genre_bar, backend=backend, loader=loader)

        async def run():
            first = asyncio.create_task(chart.load("slow"))
            await asyncio.sleep(0)
            second = asyncio.create_task(chart.load("fast"))
            return await asyncio.gather(first, second)

        assert asyncio.run(run()) == [False, True]
        assert chart.rows == GENRE_ROWS

    def test_teardown_cancels_pending_load(self, backend):
        loader = make_loader({"slow": GENRE_ROWS}, delays={"slow": 0.05})
        chart = ChartInstance(ChartKind.genre_bar, backend=backend, loader=loader)
        vp = ViewportSource(400)
        chart.attach(vp)

        async def run():
            task = asyncio.create_task(chart.load("slow"))
            await asyncio.sleep(0)
            chart.teardown()
            return await task

        assert asyncio.run(run()) is False
        assert chart.rows == []
        assert vp.subscriber_count() == 0
        assert chart.channel.closed

    def test_channel_backend_publishes_frames(self):
        chart = ChartInstance(ChartKind.genre_bar, GenreChartConfig(height=255))
        chart.set_rows(GENRE_ROWS)
        chart.on_resize(400)
        events = []
        while chart.channel.pending():
            events.append(chart.channel._queue.get_nowait().event)
        assert events[-2:] == [EVT_CLEAR, EVT_FRAME]

    def test_channel_reports_load_failure(self):
        loader = make_loader({"bad": LoadFailure("bad", "boom")})
        chart = ChartInstance(ChartKind.genre_bar, loader=loader)
        asyncio.run(chart.load("bad"))
        events = []
        while chart.channel.pending():
            events.append(chart.channel._queue.get_nowait().event)
        assert EVT_LOAD_FAILED in events

    def test_set_config_recomputes(self, backend):
        chart = ChartInstance(ChartKind.genre_bar, GenreChartConfig(top_n=2, height=255), backend=backend)
        chart.set_rows(GENRE_ROWS)
        chart.set_config(GenreChartConfig(top_n=1, height=255))
        assert [c.category for c in chart.prepared] == ["Fantasy"]

    def test_unexpected_loader_error_falls_back_to_empty(self):
        loader = make_loader({"good": [{"genre": "Drama"}], "s3://bucket/books.csv": ImportError("fsspec missing")})
        chart = ChartInstance(ChartKind.genre_bar, loader=loader)
        chart.on_resize(400)
        assert asyncio.run(chart.load("good")) is True
        assert chart.frame.drawable
        while chart.channel.pending():
            chart.channel._queue.get_nowait()

        assert asyncio.run(chart.load("s3://bucket/books.csv")) is False
        assert chart.rows == []
        assert chart.frame.drawable is False
        assert "ImportError" in chart.last_error
        events = []
        while chart.channel.pending():
            events.append(chart.channel._queue.get_nowait().event)
        assert events.count(EVT_LOAD_FAILED) == 1

    def test_start_load_keeps_task(self, backend):
        loader = make_loader({"books.csv": GENRE_ROWS})
        chart = ChartInstance(ChartKind.genre_bar, backend=backend, loader=loader)

        async def run():
            task = start_load(chart, "books.csv")
            assert chart.load_task is task
            return await task

        assert asyncio.run(run()) is True
        assert chart.rows == GENRE_ROWS

    def test_channel_stream_ends_after_teardown(self):
        chart = ChartInstance(ChartKind.genre_bar, GenreChartConfig(height=255))
        chart.set_rows(GENRE_ROWS)
        chart.on_resize(400)
        chart.teardown()

        async def drain():
            return [chunk async for chunk in chart.channel]

        chunks = asyncio.run(drain())
        assert chunks[-1].startswith("id: ") and "event: closed" in chunks[-1]
        assert any("event: frame" in c for c in chunks)
