"""Delta codec for recorded snapshot sessions (format v2).

A recording is a list of full windowed views taken every poll interval.
Consecutive frames share almost everything, so the compressed form keeps one
dictionary of blocks and one of edges for the whole session and stores each
frame as the sets that changed relative to the frame before it:

    blocks  {id: [blockHash, height, heightGroupIndex]}
    edges   [[fromId, toId, fromHeight, toHeight, fromIndex, toIndex], ...]
    frames  [{t, b, c, v, e, hg}, {t, ab, rb, ac, av, rv, ae, re, ahg, rhg}, ...]

Frame 0 is absolute. Later frames omit any category that did not change.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from dagtimeline.config import CodecConfig
from dagtimeline.models import (
    Block,
    BlockColor,
    CompressedFrame,
    CompressedSnapshot,
    Edge,
    EdgeDef,
    HeightGroup,
    SnapshotFrame,
    SnapshotRecording,
    WindowedView,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = 2


class SnapshotFormatError(ValueError):
    """A snapshot document is neither a full recording nor a v2 compressed one."""


@dataclass
class _FrameState:
    """The five running sets a frame is reduced to."""

    blocks: set[int] = field(default_factory=set)
    colors: dict[int, int] = field(default_factory=dict)
    vspc: set[int] = field(default_factory=set)
    edges: set[int] = field(default_factory=set)
    height_groups: dict[int, int] = field(default_factory=dict)


class SnapshotCodec:
    """Encodes recordings into the compressed v2 document and back."""

    def __init__(self, config: CodecConfig | None = None) -> None:
        self.config = config or CodecConfig()
        self._code_by_color = dict(self.config.color_codes)
        self._color_by_code = {code: color for color, code in self._code_by_color.items()}
        self._default_code = self._code_by_color.get(self.config.default_color, 0)

    def color_code(self, color: BlockColor) -> int:
        return self._code_by_color.get(color, self._default_code)

    def color_for_code(self, code: int) -> BlockColor:
        return self._color_by_code.get(code, self.config.default_color)

    # --- Encoding ---

    def encode(self, recording: SnapshotRecording) -> CompressedSnapshot:
        block_defs: dict[str, tuple[str, int, int]] = {}
        edge_defs: list[EdgeDef] = []
        edge_index_by_key: dict[EdgeDef, int] = {}

        for frame in recording.frames:
            for block in frame.data.blocks:
                block_defs.setdefault(
                    str(block.id), (block.block_hash, block.height, block.height_group_index),
                )
            for edge in frame.data.edges:
                key = edge.composite_key
                if key not in edge_index_by_key:
                    edge_index_by_key[key] = len(edge_defs)
                    edge_defs.append(key)

        frames: list[CompressedFrame] = []
        previous = _FrameState()
        for i, source_frame in enumerate(recording.frames):
            current = self._reduce(source_frame.data, edge_index_by_key)
            if i == 0:
                frames.append(self._absolute_frame(source_frame.t, current))
            else:
                frames.append(self._delta_frame(source_frame.t, previous, current))
            previous = current

        logger.debug(
            "Encoded %d frames: %d blocks, %d edges",
            len(frames), len(block_defs), len(edge_defs),
        )
        return CompressedSnapshot(
            v=FORMAT_VERSION,
            duration_ms=recording.duration_ms,
            poll_interval_ms=recording.poll_interval_ms,
            frame_count=recording.frame_count,
            blocks=block_defs,
            edges=edge_defs,
            frames=frames,
        )

    def _reduce(self, view: WindowedView, edge_index_by_key: dict[EdgeDef, int]) -> _FrameState:
        state = _FrameState()
        for block in view.blocks:
            state.blocks.add(block.id)
            state.colors[block.id] = self.color_code(block.color)
            if block.is_in_virtual_selected_parent_chain:
                state.vspc.add(block.id)
        for edge in view.edges:
            index = edge_index_by_key.get(edge.composite_key)
            if index is not None:
                state.edges.add(index)
        for hg in view.height_groups:
            state.height_groups[hg.height] = hg.size
        return state

    def _absolute_frame(self, t: int, current: _FrameState) -> CompressedFrame:
        colors = {
            str(block_id): current.colors[block_id]
            for block_id in sorted(current.blocks)
            if current.colors.get(block_id, self._default_code) != self._default_code
        }
        return CompressedFrame(
            t=t,
            b=sorted(current.blocks),
            c=colors or None,
            v=sorted(current.vspc),
            e=sorted(current.edges),
            hg=[(h, current.height_groups[h]) for h in sorted(current.height_groups)],
        )

    def _delta_frame(self, t: int, previous: _FrameState, current: _FrameState) -> CompressedFrame:
        color_updates = {}
        for block_id in sorted(current.blocks):
            before = previous.colors.get(block_id, self._default_code)
            after = current.colors.get(block_id, self._default_code)
            if before != after:
                color_updates[str(block_id)] = after

        upserted = [
            (h, current.height_groups[h])
            for h in sorted(current.height_groups)
            if previous.height_groups.get(h) != current.height_groups[h]
        ]

        # Empty categories are left as None so they drop out of the document.
        return CompressedFrame(
            t=t,
            ab=sorted(current.blocks - previous.blocks) or None,
            rb=sorted(previous.blocks - current.blocks) or None,
            ac=color_updates or None,
            av=sorted(current.vspc - previous.vspc) or None,
            rv=sorted(previous.vspc - current.vspc) or None,
            ae=sorted(current.edges - previous.edges) or None,
            re=sorted(previous.edges - current.edges) or None,
            ahg=upserted or None,
            rhg=sorted(previous.height_groups.keys() - current.height_groups.keys()) or None,
        )

    # --- Decoding ---

    def decode(self, compressed: CompressedSnapshot) -> SnapshotRecording:
        state = _FrameState()
        frames: list[SnapshotFrame] = []

        for frame in compressed.frames:
            self._apply(frame, state)
            frames.append(SnapshotFrame(t=frame.t, data=self._materialize(compressed, state)))

        return SnapshotRecording(
            duration_ms=compressed.duration_ms,
            poll_interval_ms=compressed.poll_interval_ms,
            frame_count=len(frames),
            frames=frames,
        )

    def _apply(self, frame: CompressedFrame, state: _FrameState) -> None:
        for block_id in frame.b or frame.ab or []:
            state.blocks.add(block_id)
        for block_id in frame.rb or []:
            state.blocks.discard(block_id)
            state.colors.pop(block_id, None)
            state.vspc.discard(block_id)

        for id_string, code in (frame.c or frame.ac or {}).items():
            state.colors[int(id_string)] = code

        state.vspc.update(frame.v or frame.av or [])
        state.vspc.difference_update(frame.rv or [])

        state.edges.update(frame.e or frame.ae or [])
        state.edges.difference_update(frame.re or [])

        for height, size in frame.hg or frame.ahg or []:
            state.height_groups[height] = size
        for height in frame.rhg or []:
            state.height_groups.pop(height, None)

    def _materialize(self, compressed: CompressedSnapshot, state: _FrameState) -> WindowedView:
        blocks = []
        for block_id in sorted(state.blocks):
            block = self._build_block(block_id, compressed, state)
            if block is not None:
                blocks.append(block)

        edges = []
        for edge_index in sorted(state.edges):
            edge = self._build_edge(edge_index, compressed)
            if edge is not None:
                edges.append(edge)

        height_groups = [
            HeightGroup(height=h, size=state.height_groups[h])
            for h in sorted(state.height_groups)
        ]
        return WindowedView(blocks=blocks, edges=edges, height_groups=height_groups)

    def _build_block(
        self, block_id: int, compressed: CompressedSnapshot, state: _FrameState,
    ) -> Block | None:
        definition = compressed.blocks.get(str(block_id))
        if definition is None:
            logger.debug("Skipping block %d missing from the block dictionary", block_id)
            return None
        block_hash, height, height_group_index = definition
        return Block(
            id=block_id,
            block_hash=block_hash,
            height=height,
            daa_score=height,
            height_group_index=height_group_index,
            color=self.color_for_code(state.colors.get(block_id, self._default_code)),
            is_in_virtual_selected_parent_chain=block_id in state.vspc,
        )

    @staticmethod
    def _build_edge(edge_index: int, compressed: CompressedSnapshot) -> Edge | None:
        if not 0 <= edge_index < len(compressed.edges):
            logger.debug("Skipping edge %d missing from the edge dictionary", edge_index)
            return None
        from_id, to_id, from_height, to_height, from_index, to_index = compressed.edges[edge_index]
        return Edge(
            from_block_id=from_id,
            to_block_id=to_id,
            from_height=from_height,
            to_height=to_height,
            from_height_group_index=from_index,
            to_height_group_index=to_index,
        )


def _looks_like_full_recording(document: dict[str, Any]) -> bool:
    frames = document.get("frames")
    if not isinstance(frames, list) or not frames:
        return False
    first = frames[0]
    if not isinstance(first, dict) or not isinstance(first.get("t"), (int, float)):
        return False
    data = first.get("data")
    return isinstance(data, dict) and all(
        isinstance(data.get(key), list) for key in ("blocks", "edges", "heightGroups")
    )


def normalize_snapshot(
    document: Any, codec: SnapshotCodec | None = None,
) -> SnapshotRecording:
    """Turn a loaded snapshot document of either format into a full recording.

    Raises:
        SnapshotFormatError: if the document matches neither format.
    """
    if not isinstance(document, dict):
        raise SnapshotFormatError(
            f"Snapshot document must be a JSON object, got {type(document).__name__}"
        )

    if "v" in document:
        if document["v"] != FORMAT_VERSION:
            raise SnapshotFormatError(f"Unsupported snapshot format version: {document['v']!r}")
        try:
            compressed = CompressedSnapshot.model_validate(document)
        except ValidationError as e:
            raise SnapshotFormatError(f"Malformed compressed snapshot: {e}") from e
        return (codec or SnapshotCodec()).decode(compressed)

    if _looks_like_full_recording(document):
        try:
            return SnapshotRecording.model_validate(document)
        except ValidationError as e:
            raise SnapshotFormatError(f"Malformed snapshot recording: {e}") from e

    raise SnapshotFormatError("Unsupported snapshot replay format.")
