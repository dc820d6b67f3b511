"""Configuration loading for the DAG timeline."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from dagtimeline.models import BlockColor


class BlockStyle(BaseModel):
    model_config = ConfigDict(frozen=True)

    color: int
    highlight: int
    contrast_text: int
    border_color: int = 0x2B2B2B
    border_width: int = 0


class EdgeStyle(BaseModel):
    model_config = ConfigDict(frozen=True)

    color: int
    line_width: float
    arrow_radius: float


class TimelineTheme(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_blocks_per_height: int = 12
    margin_x_multiplier: float = 2.0
    min_margin_y_multiplier: float = 1.0
    visible_height_range_padding: int = 2


class ThemeConfig(BaseModel):
    """Immutable visual constants shared by the layout engine and preview output."""

    model_config = ConfigDict(frozen=True)

    background: int = 0x2B2B2B
    rounding_radius: float = 10
    reference_block_size: float = 88
    block_scale: float = 1.0
    blocks: dict[BlockColor, BlockStyle] = Field(default_factory=lambda: {
        BlockColor.BLUE: BlockStyle(color=0x5581AA, highlight=0x85A2C1, contrast_text=0xFFFFFF),
        BlockColor.RED: BlockStyle(color=0xB34D50, highlight=0xA06765, contrast_text=0xFFFFFF),
        BlockColor.GRAY: BlockStyle(color=0xDCDCDC, highlight=0x949494, contrast_text=0x666666),
    })
    normal_edge: EdgeStyle = EdgeStyle(color=0x787878, line_width=2, arrow_radius=5)
    virtual_chain_edge: EdgeStyle = EdgeStyle(color=0x48759D, line_width=8, arrow_radius=10)
    timeline: TimelineTheme = Field(default_factory=TimelineTheme)

    def scale(self, measure: float, block_size: float) -> float:
        """Scale a measure given for the reference block size to ``block_size``."""
        return measure * block_size / self.reference_block_size

    def block_style(self, color: BlockColor) -> BlockStyle:
        return self.blocks[color]

    def edge_style(self, in_virtual_chain: bool) -> EdgeStyle:
        return self.virtual_chain_edge if in_virtual_chain else self.normal_edge


class CodecConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    format_version: int = 2
    color_codes: dict[BlockColor, int] = Field(default_factory=lambda: {
        BlockColor.BLUE: 0,
        BlockColor.RED: 1,
        BlockColor.GRAY: 2,
    })
    default_color: BlockColor = BlockColor.BLUE


class LiveConfig(BaseModel):
    api_url: str = "https://kgi.kaspad.net:3147"
    poll_interval_ms: int = 200
    height_difference: int = 14
    request_timeout_s: float = 10.0


class ReplayConfig(BaseModel):
    reset_after_ms: int = 3000
    max_edge_backfill: int | None = None  # None = attach to every intermediate height


class SnapshotConfig(BaseModel):
    playback_rate: float = 1.0
    min_tick_ms: int = 16


class PlayerConfig(BaseModel):
    zoom: float = 0.4
    screen_width: int = 1280
    screen_height: int = 720
    right_margin: int = 120
    default_tick_ms: int = 500


class RecordConfig(BaseModel):
    duration_ms: int = 60_000
    poll_interval_ms: int = 200
    height_difference: int = 14
    out_path: str = "public/replay/mainnet-60s.json"
    compressed_out_path: str | None = None
    fixed_rate: bool = False
    pretty: bool = False


class BudgetConfig(BaseModel):
    max_compressed_replay_bytes: int = 500 * 1024


class Config(BaseModel):
    theme: ThemeConfig = Field(default_factory=ThemeConfig)
    codec: CodecConfig = Field(default_factory=CodecConfig)
    live: LiveConfig = Field(default_factory=LiveConfig)
    replay: ReplayConfig = Field(default_factory=ReplayConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    player: PlayerConfig = Field(default_factory=PlayerConfig)
    record: RecordConfig = Field(default_factory=RecordConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)


def _project_root() -> Path:
    """Return the dagtimeline project root directory."""
    return Path(__file__).parent.parent


def load_config(config_path: Path | None = None) -> Config:
    """Load config from YAML file. Falls back to defaults if file missing."""
    if config_path is None:
        config_path = _project_root() / "config.yaml"

    if config_path.exists():
        raw: dict[str, Any] = yaml.safe_load(config_path.read_text()) or {}
        return Config(**raw)

    return Config()
