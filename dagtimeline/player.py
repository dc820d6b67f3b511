"""Driving loop: poll the active source, lay out, hand off to a renderer."""

import logging
from dataclasses import dataclass
from typing import Protocol

from dagtimeline.layout import LayoutEngine, TimelineLayout
from dagtimeline.models import WindowedView
from dagtimeline.scheduling import Scheduler, TimerHandle
from dagtimeline.sources.base import DataSource

logger = logging.getLogger(__name__)

DEFAULT_TICK_MS = 500
DEFAULT_RIGHT_MARGIN = 120
MIN_ZOOM = 0.2
MAX_ZOOM = 1.2


def clamp_zoom(zoom: float) -> float:
    """Clamp to [0.2, 1.2] and round to one decimal."""
    return round(max(MIN_ZOOM, min(zoom, MAX_ZOOM)), 1)


@dataclass
class Viewport:
    width: float
    height: float
    zoom: float = 0.4


class Renderer(Protocol):
    def render(self, layout: TimelineLayout, view: WindowedView) -> None: ...


class LoggingRenderer:
    """Renderer that only reports what would be drawn."""

    def __init__(self) -> None:
        self.frames_rendered = 0

    def render(self, layout: TimelineLayout, view: WindowedView) -> None:
        self.frames_rendered += 1
        logger.info(
            "frame %d: target height %d, %d blocks, %d edges, block size %d",
            self.frames_rendered, layout.target_height,
            len(layout.blocks), len(layout.edges), layout.block_size,
        )


class DagPlayer:
    """Ticks the active data source and re-lays-out whenever its view changes.

    Only one source is active at a time; switching sources destroys the old one.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        viewport: Viewport,
        renderer: Renderer,
        engine: LayoutEngine | None = None,
        right_margin: float = DEFAULT_RIGHT_MARGIN,
        default_tick_ms: float = DEFAULT_TICK_MS,
    ) -> None:
        self.viewport = Viewport(viewport.width, viewport.height, clamp_zoom(viewport.zoom))
        self.engine = engine or LayoutEngine()
        self.renderer = renderer
        self.right_margin = right_margin
        self.default_tick_ms = default_tick_ms
        self.source: DataSource | None = None
        self.target_height = -1
        self.last_layout: TimelineLayout | None = None
        self._scheduler = scheduler
        self._tick_timer: TimerHandle | None = None
        self._last_rendered: WindowedView | None = None

    def load(self, source: DataSource) -> None:
        """Make ``source`` the active source and start ticking."""
        if self.source is not None and self.source is not source:
            self.source.destroy()
        logger.info("Playing from %s", source.name)
        self.source = source
        self.run()

    def run(self) -> None:
        self._cancel_tick()
        self._last_rendered = None
        self.tick()

    def visible_height_difference(self) -> tuple[int, int]:
        """Heights to request and heights to keep right of the target column."""
        vp = self.viewport
        half_screen = self.engine.max_blocks_on_half_screen(vp.width, vp.height, vp.zoom)
        after_half = self.engine.visible_slots_after_half_screen(
            vp.width, vp.height, vp.zoom, self.right_margin,
        )
        return half_screen + after_half, after_half

    def tick(self) -> None:
        self._tick_timer = None
        if self.source is None:
            return

        height_difference, after_half = self.visible_height_difference()
        view = self.source.get_head(height_difference)

        if view is not None and view is not self._last_rendered:
            self._last_rendered = view
            self.target_height = max(0, view.max_block_height - after_half)
            self._render(view)

        self._tick_timer = self._scheduler.call_later(self._tick_interval(), self.tick)

    def _tick_interval(self) -> float:
        if self.source is None:
            return self.default_tick_ms
        return self.source.get_tick_interval()

    def _render(self, view: WindowedView) -> None:
        vp = self.viewport
        self.last_layout = self.engine.layout(
            view, self.target_height, vp.width, vp.height, vp.zoom,
        )
        self.renderer.render(self.last_layout, view)

    def resize(self, width: float, height: float) -> None:
        """Re-lay-out the current view for a new viewport size."""
        if (width, height) == (self.viewport.width, self.viewport.height):
            return
        self.viewport.width = width
        self.viewport.height = height
        if self._last_rendered is not None:
            self._render(self._last_rendered)

    def _cancel_tick(self) -> None:
        if self._tick_timer is not None:
            self._tick_timer.cancel()
            self._tick_timer = None

    def stop(self) -> None:
        self._cancel_tick()
        self._last_rendered = None
        if self.source is not None:
            self.source.destroy()
            self.source = None
