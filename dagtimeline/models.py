"""Pydantic models for the block DAG timeline."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BlockColor(str, Enum):
    BLUE = "blue"
    RED = "red"
    GRAY = "gray"


class _WireModel(BaseModel):
    """Base for models exchanged as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# --- Graph window ---


class Block(_WireModel):
    id: int
    block_hash: str
    timestamp: int = 0
    parent_ids: list[int] = Field(default_factory=list)
    height: int
    daa_score: int = 0
    height_group_index: int
    selected_parent_id: int | None = None
    color: BlockColor = BlockColor.BLUE
    is_in_virtual_selected_parent_chain: bool = False
    merge_set_red_ids: list[int] = Field(default_factory=list)
    merge_set_blue_ids: list[int] = Field(default_factory=list)


class Edge(_WireModel):
    """A parent reference from ``from_block_id`` to ``to_block_id``."""
    from_block_id: int
    to_block_id: int
    from_height: int
    to_height: int
    from_height_group_index: int
    to_height_group_index: int

    @property
    def key(self) -> tuple[int, int]:
        return (self.from_block_id, self.to_block_id)

    @property
    def composite_key(self) -> tuple[int, int, int, int, int, int]:
        return (
            self.from_block_id,
            self.to_block_id,
            self.from_height,
            self.to_height,
            self.from_height_group_index,
            self.to_height_group_index,
        )


class HeightGroup(_WireModel):
    height: int
    size: int


class WindowedView(_WireModel):
    """Trailing slice of the graph needed to lay out the visible timeline."""
    blocks: list[Block] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    height_groups: list[HeightGroup] = Field(default_factory=list)

    @property
    def max_block_height(self) -> int:
        return max((b.height for b in self.blocks), default=0)


# --- Synthetic replay script ---


class ReplayScriptBlock(_WireModel):
    id: int
    parent_ids: list[int] = Field(default_factory=list)
    selected_parent_id: int | None = None
    color: BlockColor = BlockColor.BLUE
    is_in_virtual_selected_parent_chain: bool = False
    merge_set_red_ids: list[int] = Field(default_factory=list)
    merge_set_blue_ids: list[int] = Field(default_factory=list)


class ReplayScript(_WireModel):
    block_interval: int
    blocks: list[ReplayScriptBlock]


# --- Recorded snapshots (uncompressed) ---


class SnapshotFrame(_WireModel):
    t: int
    data: WindowedView


class SnapshotRecording(_WireModel):
    recorded_at: str | None = None
    duration_ms: int
    height_difference: int | None = None
    poll_interval_ms: int
    frame_count: int
    frames: list[SnapshotFrame]


# --- Recorded snapshots (compressed, format v2) ---

HeightGroupPair = tuple[int, int]
BlockDef = tuple[str, int, int]
EdgeDef = tuple[int, int, int, int, int, int]


class CompressedFrame(BaseModel):
    """One frame record. Frame 0 uses the absolute keys, later frames the a*/r* deltas."""

    t: int
    b: list[int] | None = None
    c: dict[str, int] | None = None
    v: list[int] | None = None
    e: list[int] | None = None
    hg: list[HeightGroupPair] | None = None

    ab: list[int] | None = None
    rb: list[int] | None = None
    ac: dict[str, int] | None = None
    av: list[int] | None = None
    rv: list[int] | None = None
    ae: list[int] | None = None
    re: list[int] | None = None
    ahg: list[HeightGroupPair] | None = None
    rhg: list[int] | None = None


class CompressedSnapshot(_WireModel):
    v: Literal[2] = 2
    duration_ms: int
    poll_interval_ms: int
    frame_count: int
    blocks: dict[str, BlockDef]
    edges: list[EdgeDef]
    frames: list[CompressedFrame] = Field(min_length=1)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
