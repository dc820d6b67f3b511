"""Grow a block DAG from a scripted arrival order, looping forever."""

import logging
from dataclasses import dataclass, field
from typing import Callable

from dagtimeline.models import Block, Edge, HeightGroup, ReplayScript, WindowedView
from dagtimeline.scheduling import Scheduler, TimerHandle
from dagtimeline.sources.base import DataSource

logger = logging.getLogger(__name__)

RESET_AFTER_MS = 3000


class ReplayScriptError(ValueError):
    """The replay script is malformed or references a block that has not arrived yet."""


def validate_replay_script(script: ReplayScript) -> None:
    """Check that every parent arrives before the blocks that reference it.

    Raises:
        ReplayScriptError: on a duplicate id or a parent that is unknown or
            scripted later than its child.
    """
    seen: set[int] = set()
    for scripted in script.blocks:
        if scripted.id in seen:
            raise ReplayScriptError(f"Block {scripted.id} appears more than once")
        for parent_id in scripted.parent_ids:
            if parent_id not in seen:
                raise ReplayScriptError(
                    f"Block {scripted.id} references unknown parent {parent_id}"
                )
        seen.add(scripted.id)


@dataclass
class _HeightBucket:
    """Blocks admitted at one height plus every edge passing through it."""

    height: int
    blocks: list[Block] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)


class ReplayDataSource(DataSource):
    """Admits one scripted block per tick.

    Heights are derived as one more than the highest parent and the height
    group index is the arrival position within that height. After the last
    block the source waits ``reset_after_ms``, clears everything and starts
    over from the first block.
    """

    def __init__(
        self,
        script: ReplayScript,
        scheduler: Scheduler,
        reset_after_ms: int = RESET_AFTER_MS,
        max_edge_backfill: int | None = None,
    ) -> None:
        validate_replay_script(script)
        self.script = script
        self.reset_after_ms = reset_after_ms
        self.max_edge_backfill = max_edge_backfill
        self._scheduler = scheduler
        self._timer: TimerHandle | None = None
        self._on_new_block: Callable[[], None] | None = None
        self._destroyed = False

        self._index = 0
        self._heights_by_id: dict[int, int] = {}
        self._buckets: dict[int, _HeightBucket] = {}

    def set_on_new_block(self, callback: Callable[[], None] | None) -> None:
        self._on_new_block = callback

    def start(self) -> None:
        """Admit the first block and schedule the rest."""
        self._add_next_block_and_reschedule()

    def _add_next_block_and_reschedule(self) -> None:
        self._timer = None
        if self._destroyed:
            return
        if not self.script.blocks:
            return
        self.add_next_block()

        if self._index < len(self.script.blocks):
            self._timer = self._scheduler.call_later(
                self.script.block_interval, self._add_next_block_and_reschedule,
            )
        else:
            self._timer = self._scheduler.call_later(self.reset_after_ms, self._restart)

    def _restart(self) -> None:
        logger.info("Replay script exhausted after %d blocks, restarting", self._index)
        self.reset()
        self._add_next_block_and_reschedule()

    def add_next_block(self) -> Block:
        """Admit the next scripted block, recording its edges. Returns the new block."""
        scripted = self.script.blocks[self._index]

        parent_heights = {
            parent_id: self._heights_by_id[parent_id] for parent_id in scripted.parent_ids
        }

        height = max(parent_heights.values(), default=-1) + 1
        bucket = self._buckets.setdefault(height, _HeightBucket(height))
        height_group_index = len(bucket.blocks)

        block = Block(
            id=scripted.id,
            block_hash=str(scripted.id) * 8,
            timestamp=self._index * self.script.block_interval,
            parent_ids=list(scripted.parent_ids),
            height=height,
            daa_score=height,
            height_group_index=height_group_index,
            selected_parent_id=scripted.selected_parent_id,
            color=scripted.color,
            is_in_virtual_selected_parent_chain=scripted.is_in_virtual_selected_parent_chain,
            merge_set_red_ids=list(scripted.merge_set_red_ids),
            merge_set_blue_ids=list(scripted.merge_set_blue_ids),
        )
        bucket.blocks.append(block)
        self._heights_by_id[block.id] = height

        for parent_id, parent_height in parent_heights.items():
            parent_bucket = self._buckets[parent_height]
            parent_index = next(
                i for i, b in enumerate(parent_bucket.blocks) if b.id == parent_id
            )
            edge = Edge(
                from_block_id=block.id,
                to_block_id=parent_id,
                from_height=height,
                to_height=parent_height,
                from_height_group_index=height_group_index,
                to_height_group_index=parent_index,
            )
            for h in self._backfill_heights(height, parent_height):
                target = self._buckets.get(h)
                if target is not None:
                    target.edges.append(edge)

        self._index += 1
        if self._on_new_block is not None:
            self._on_new_block()
        return block

    def _backfill_heights(self, from_height: int, to_height: int) -> list[int]:
        """Heights an edge is attached to, from the child down to the parent."""
        heights = list(range(from_height, to_height - 1, -1))
        if self.max_edge_backfill is None or len(heights) <= self.max_edge_backfill + 2:
            return heights
        intermediate = heights[1:-1][: self.max_edge_backfill]
        return [from_height, *intermediate, to_height]

    def reset(self) -> None:
        self._index = 0
        self._heights_by_id = {}
        self._buckets = {}

    @property
    def admitted_count(self) -> int:
        return self._index

    def get_tick_interval(self) -> float:
        return self.script.block_interval

    def get_head(self, height_difference: int) -> WindowedView | None:
        populated = len(self._buckets)
        return self.get_blocks_between_heights(populated - height_difference, populated)

    def get_blocks_between_heights(self, start_height: int, end_height: int) -> WindowedView:
        """Collect blocks, deduplicated edges and height groups for a height range."""
        start_height = max(0, start_height)
        end_height = min(end_height, len(self._buckets))

        blocks: list[Block] = []
        edges: list[Edge] = []
        height_groups: list[HeightGroup] = []
        seen_edges: set[tuple[int, int]] = set()
        seen_heights: set[int] = set()

        def add_height_group(height: int) -> None:
            if height in seen_heights:
                return
            seen_heights.add(height)
            bucket = self._buckets.get(height)
            if bucket is not None:
                height_groups.append(HeightGroup(height=height, size=len(bucket.blocks)))

        for height in range(start_height, end_height + 1):
            bucket = self._buckets.get(height)
            if bucket is None:
                continue

            blocks.extend(bucket.blocks)
            for edge in bucket.edges:
                if edge.key not in seen_edges:
                    seen_edges.add(edge.key)
                    edges.append(edge)
                add_height_group(edge.from_height)
                add_height_group(edge.to_height)
            add_height_group(height)

        return WindowedView(blocks=blocks, edges=edges, height_groups=height_groups)

    def destroy(self) -> None:
        self._destroyed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
