"""Tests for the recording session, output files and replay budget check."""

import asyncio
import json
import logging

import httpx
import pytest

from dagtimeline.codec import SnapshotCodec
from dagtimeline.models import SnapshotFrame, SnapshotRecording, WindowedView
from dagtimeline.recorder import (
    EmptyRecordingError,
    average_frame_delta,
    check_replay_budget,
    normalize_api_url,
    record_snapshot,
    write_json,
)

HEAD = {
    "blocks": [{"id": 1, "blockHash": "aa", "height": 0, "heightGroupIndex": 0}],
    "edges": [],
    "heightGroups": [{"height": 0, "size": 1}],
}


class FakeClock:
    """Millisecond clock that only moves when slept on or when a request is served."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now = round(self.now + seconds * 1000, 6)


def _record(handler, clock: FakeClock, **kwargs) -> SnapshotRecording:
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await record_snapshot(
                client, "http://api.test", clock=clock, sleep=clock.sleep, **kwargs,
            )

    return asyncio.run(main())


def _slow_head(clock: FakeClock, statuses: list[int] | None = None):
    """Handler that takes 50ms per request and optionally fails some of them."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        clock.now += 50
        status = statuses.pop(0) if statuses else 200
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json=HEAD)

    handler.requests = requests
    return handler


class TestNormalizeApiUrl:
    @pytest.mark.parametrize("raw,expected", [
        ("kgi.kaspad.net", "https://kgi.kaspad.net:3147"),
        ("https://kgi.kaspad.net/", "https://kgi.kaspad.net:3147"),
        ("kgi.kaspad.net:8080", "https://kgi.kaspad.net:8080"),
        ("http://localhost:8080/", "http://localhost:8080"),
        ("  https://example.com/api/  ", "https://example.com/api"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_api_url(raw) == expected


class TestRecordSnapshot:
    def test_live_compatible_cadence(self):
        clock = FakeClock()
        handler = _slow_head(clock)
        recording = _record(handler, clock, duration_ms=900, poll_interval_ms=200)
        # Each poll waits a full interval after the previous one returned.
        assert [f.t for f in recording.frames] == [50, 300, 550, 800]
        assert recording.frame_count == 4

    def test_fixed_rate_cadence(self):
        clock = FakeClock()
        handler = _slow_head(clock)
        recording = _record(handler, clock, duration_ms=900, poll_interval_ms=200, fixed_rate=True)
        assert [f.t for f in recording.frames] == [50, 250, 450, 650, 850]

    def test_metadata(self):
        clock = FakeClock()
        handler = _slow_head(clock)
        recording = _record(
            handler, clock, duration_ms=900, poll_interval_ms=200, height_difference=9,
        )
        assert recording.height_difference == 9
        assert recording.poll_interval_ms == 200
        assert recording.recorded_at is not None
        assert handler.requests[0].url.params["heightDifference"] == "9"
        assert handler.requests[0].url.path == "/head"

    def test_failed_poll_skipped(self, caplog):
        clock = FakeClock()
        handler = _slow_head(clock, statuses=[500])
        with caplog.at_level(logging.WARNING, logger="dagtimeline.recorder"):
            recording = _record(handler, clock, duration_ms=900, poll_interval_ms=200)
        assert [f.t for f in recording.frames] == [300, 550, 800]
        assert "poll 0 failed" in caplog.text

    def test_at_least_one_attempt(self):
        clock = FakeClock()
        handler = _slow_head(clock)
        recording = _record(handler, clock, duration_ms=0, poll_interval_ms=200)
        assert recording.frame_count == 1

    def test_no_frames(self):
        clock = FakeClock()
        handler = _slow_head(clock, statuses=[503] * 10)
        with pytest.raises(EmptyRecordingError):
            _record(handler, clock, duration_ms=900, poll_interval_ms=200)


class TestAverageFrameDelta:
    def _recording(self, times):
        frames = [SnapshotFrame(t=t, data=WindowedView()) for t in times]
        return SnapshotRecording(
            duration_ms=1000, poll_interval_ms=200, frame_count=len(frames), frames=frames,
        )

    def test_average(self):
        assert average_frame_delta(self._recording([0, 200, 500])) == 250

    def test_single_frame(self):
        assert average_frame_delta(self._recording([0])) is None


class TestWriteJson:
    def test_creates_parent_dirs(self, tmp_path):
        target = tmp_path / "public" / "replay" / "out.json"
        written = write_json(target, {"a": 1})
        assert written == target.resolve()
        assert json.loads(target.read_text()) == {"a": 1}
        assert "\n" not in target.read_text()

    def test_pretty(self, tmp_path):
        target = tmp_path / "out.json"
        write_json(target, {"a": [1, 2]}, pretty=True)
        assert target.read_text().startswith("{\n  ")


class TestCheckReplayBudget:
    def test_pass(self, tmp_path, recording):
        path = tmp_path / "mainnet-60s.v2.json"
        write_json(path, SnapshotCodec().encode(recording).to_wire())
        assert check_replay_budget(path, 500 * 1024) == []

    def test_missing(self, tmp_path):
        failures = check_replay_budget(tmp_path / "nope.json", 1024)
        assert len(failures) == 1
        assert "Missing replay asset" in failures[0]

    def test_over_budget(self, tmp_path, recording):
        path = tmp_path / "replay.json"
        write_json(path, SnapshotCodec().encode(recording).to_wire())
        failures = check_replay_budget(path, 10)
        assert len(failures) == 1
        assert "exceeds budget" in failures[0]

    def test_not_compressed(self, tmp_path, recording):
        path = tmp_path / "replay.json"
        write_json(path, recording.to_wire())
        failures = check_replay_budget(path, 10 * 1024 * 1024)
        assert failures == [f"{path} is not compressed replay format (expected v=2)"]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "replay.json"
        path.write_text("{", encoding="utf-8")
        failures = check_replay_budget(path, 1024)
        assert len(failures) == 1
        assert failures[0].startswith("Failed to parse")

    def test_full_replay_present(self, tmp_path, recording):
        path = tmp_path / "replay.v2.json"
        full = tmp_path / "replay.json"
        write_json(path, SnapshotCodec().encode(recording).to_wire())
        write_json(full, recording.to_wire())
        failures = check_replay_budget(path, 500 * 1024, full_replay_path=full)
        assert failures == [f"Full replay file should be debug-only: {full}"]
