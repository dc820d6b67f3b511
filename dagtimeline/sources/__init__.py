"""Data sources: live polling, synthetic replay and recorded snapshot replay."""

from dagtimeline.sources.base import DataSource
from dagtimeline.sources.live import LiveDataSource
from dagtimeline.sources.replay import ReplayDataSource
from dagtimeline.sources.snapshot import SnapshotReplayDataSource

__all__ = ["DataSource", "LiveDataSource", "ReplayDataSource", "SnapshotReplayDataSource"]
