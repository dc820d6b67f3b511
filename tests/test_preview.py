"""Tests for the PIL preview output."""

from PIL import Image

from dagtimeline.layout import LayoutEngine
from dagtimeline.models import WindowedView
from dagtimeline.output.preview import PreviewRenderer, render_preview
from dagtimeline.sources.replay import ReplayDataSource

BLUE = (0x55, 0x81, 0xAA)
RED = (0xB3, 0x4D, 0x50)
BACKGROUND = (0x2B, 0x2B, 0x2B)
EDGE = (0x78, 0x78, 0x78)


def _colors(image: Image.Image) -> set:
    return {color for _, color in image.getcolors(maxcolors=1 << 20)}


class TestRenderPreview:
    def test_viewport_size_and_background(self, fork_source):
        layout = LayoutEngine().layout(fork_source.get_head(10), 1, 1280, 720, 0.4)
        image = render_preview(layout)
        assert image.size == (1280, 720)
        assert image.getpixel((0, 0)) == BACKGROUND

    def test_blocks_drawn_at_centres(self, dag_script, scheduler):
        source = ReplayDataSource(dag_script, scheduler)
        for _ in range(3):
            source.add_next_block()
        layout = LayoutEngine().layout(source.get_head(10), 1, 1280, 720, 0.4)
        image = render_preview(layout)

        # Target height 1 sits in the middle column.
        assert image.getpixel((568, 360)) == BLUE
        assert image.getpixel((640, 432)) == BLUE
        assert image.getpixel((640, 288)) == RED

    def test_edges_drawn(self, fork_source):
        layout = LayoutEngine().layout(fork_source.get_head(10), 1, 1280, 720, 0.4)
        assert EDGE in _colors(render_preview(layout))

    def test_empty_view(self):
        layout = LayoutEngine().layout(WindowedView(), -1, 320, 200, 0.4)
        assert _colors(render_preview(layout)) == {BACKGROUND}


class TestPreviewRenderer:
    def test_writes_png(self, tmp_path, fork_source):
        path = tmp_path / "frames" / "latest.png"
        renderer = PreviewRenderer(path)
        view = fork_source.get_head(10)
        layout = LayoutEngine().layout(view, 1, 1280, 720, 0.4)

        renderer.render(layout, view)
        renderer.render(layout, view)

        assert renderer.frames_written == 2
        with Image.open(path) as image:
            assert image.size == (1280, 720)
            assert image.format == "PNG"
