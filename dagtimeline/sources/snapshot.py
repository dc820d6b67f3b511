"""Play back a recorded sequence of windowed views."""

import logging
import math
from typing import Any

from dagtimeline.codec import SnapshotCodec, normalize_snapshot
from dagtimeline.models import SnapshotRecording, WindowedView
from dagtimeline.scheduling import Scheduler, TimerHandle
from dagtimeline.sources.base import DataSource

logger = logging.getLogger(__name__)

MIN_TICK_MS = 16


class SnapshotReplayDataSource(DataSource):
    """Steps through recorded frames at the recorded pace, looping seamlessly.

    The delay before each step is the recorded delta between the two frames
    divided by ``playback_rate`` and floored at ``min_tick_ms``. Wrapping from
    the last frame back to the first waits for the remainder of the recorded
    duration, so the loop neither stalls nor speeds up.
    """

    def __init__(
        self,
        replay: SnapshotRecording | dict[str, Any],
        scheduler: Scheduler,
        playback_rate: float = 1.0,
        min_tick_ms: int = MIN_TICK_MS,
        codec: SnapshotCodec | None = None,
    ) -> None:
        if isinstance(replay, SnapshotRecording):
            self.replay = replay
        else:
            self.replay = normalize_snapshot(replay, codec)
        self.playback_rate = (
            playback_rate if math.isfinite(playback_rate) and playback_rate > 0 else 1.0
        )
        self.min_tick_ms = min_tick_ms
        self.mean_frame_delta_ms = self._calculate_mean_frame_delta_ms()
        self.loop_gap_ms = self._calculate_loop_gap_ms()
        self.current_index = 0
        self._scheduler = scheduler
        self._timer: TimerHandle | None = None
        self._destroyed = False

    def start(self) -> None:
        logger.info(
            "Snapshot replay: %d frames over %d ms at %.2fx",
            len(self.replay.frames), self.replay.duration_ms, self.playback_rate,
        )
        self._schedule_next()

    def _schedule_next(self) -> None:
        frame_count = len(self.replay.frames)
        if frame_count <= 1 or self._destroyed:
            return

        next_index = (self.current_index + 1) % frame_count
        if next_index == 0:
            delay_ms = self.loop_gap_ms
        else:
            delay_ms = self._inter_frame_delay_ms(self.current_index, next_index)

        self._timer = self._scheduler.call_later(
            max(self.min_tick_ms, delay_ms / self.playback_rate),
            lambda: self._advance(next_index),
        )

    def _advance(self, next_index: int) -> None:
        self._timer = None
        self.current_index = next_index
        self._schedule_next()

    def _inter_frame_delay_ms(self, current_index: int, next_index: int) -> float:
        delta = self.replay.frames[next_index].t - self.replay.frames[current_index].t
        if not math.isfinite(delta) or delta <= 0:
            return self.mean_frame_delta_ms
        return delta

    def _calculate_mean_frame_delta_ms(self) -> float:
        frames = self.replay.frames
        if len(frames) <= 1:
            return self.replay.poll_interval_ms

        deltas = [
            later.t - earlier.t
            for earlier, later in zip(frames, frames[1:])
            if math.isfinite(later.t - earlier.t) and later.t - earlier.t > 0
        ]
        if not deltas:
            return self.replay.poll_interval_ms
        return sum(deltas) / len(deltas)

    def _calculate_loop_gap_ms(self) -> float:
        frames = self.replay.frames
        if not frames:
            return self.replay.poll_interval_ms

        candidate = self.replay.duration_ms - frames[-1].t + frames[0].t
        if math.isfinite(candidate) and candidate > 0:
            return max(self.replay.poll_interval_ms, candidate)
        return self.mean_frame_delta_ms

    def get_head(self, height_difference: int) -> WindowedView | None:
        # The window was fixed at recording time.
        if not self.replay.frames:
            return None
        return self.replay.frames[self.current_index].data

    def get_tick_interval(self) -> float:
        return max(self.min_tick_ms, self.mean_frame_delta_ms / self.playback_rate)

    def destroy(self) -> None:
        self._destroyed = True
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
