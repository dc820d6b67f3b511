"""Still-image preview of a timeline layout.

Draws the same geometry a live renderer would: rounded blocks on the timeline
and edges that stop at the parent's outline with a triangular arrowhead.
"""

import logging
import math
from pathlib import Path

from PIL import Image, ImageDraw

from dagtimeline.config import ThemeConfig
from dagtimeline.layout import EdgePlacement, TimelineLayout
from dagtimeline.models import WindowedView

logger = logging.getLogger(__name__)


def _rgb(color: int) -> tuple[int, int, int]:
    return (color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF


def _arrow_points(
    center_x: float, center_y: float, radius: float, rotation: float,
) -> list[tuple[float, float]]:
    # First point faces along the edge direction.
    start = rotation - math.pi / 2
    return [
        (
            center_x + radius * math.cos(start + i * 2 * math.pi / 3),
            center_y + radius * math.sin(start + i * 2 * math.pi / 3),
        )
        for i in range(3)
    ]


def _draw_edge(
    draw: ImageDraw.ImageDraw, edge: EdgePlacement, origin_x: float, origin_y: float,
    theme: ThemeConfig,
) -> None:
    color = _rgb(theme.edge_style(edge.is_in_virtual_selected_parent_chain).color)
    start_x = origin_x + edge.x
    start_y = origin_y + edge.y
    arrow_x = start_x + edge.arrow_x
    arrow_y = start_y + edge.arrow_y

    draw.line(
        [(start_x, start_y), (arrow_x, arrow_y)],
        fill=color,
        width=max(1, round(edge.line_width)),
    )
    draw.polygon(
        _arrow_points(arrow_x, arrow_y, edge.arrow_radius, edge.arrow_rotation),
        fill=color,
    )


def render_preview(layout: TimelineLayout, theme: ThemeConfig | None = None) -> Image.Image:
    """Draw ``layout`` onto a new image the size of its viewport."""
    theme = theme or ThemeConfig()
    width = max(1, round(layout.screen_width))
    height = max(1, round(layout.screen_height))
    image = Image.new("RGB", (width, height), _rgb(theme.background))
    draw = ImageDraw.Draw(image)

    origin_x, origin_y = layout.offset_x, layout.offset_y

    # Edges underneath blocks
    for edge in layout.edges:
        _draw_edge(draw, edge, origin_x, origin_y, theme)

    radius = theme.scale(theme.rounding_radius, layout.block_size)
    for block in layout.blocks:
        half = block.size / 2
        cx = origin_x + block.x
        cy = origin_y + block.y
        if cx + half < 0 or cx - half > width:
            continue
        draw.rounded_rectangle(
            [round(cx - half), round(cy - half), round(cx + half), round(cy + half)],
            radius=round(min(radius, half)),
            fill=_rgb(theme.block_style(block.color).color),
        )

    return image


class PreviewRenderer:
    """Renderer that keeps the latest frame as a PNG on disk."""

    def __init__(self, output_path: Path, theme: ThemeConfig | None = None) -> None:
        self.output_path = output_path
        self.theme = theme or ThemeConfig()
        self.frames_written = 0

    def render(self, layout: TimelineLayout, view: WindowedView) -> None:
        image = render_preview(layout, self.theme)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        image.save(self.output_path, format="PNG")
        self.frames_written += 1
        logger.debug("Wrote preview frame %d to %s", self.frames_written, self.output_path)
