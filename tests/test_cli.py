"""Tests for the dagtimeline command line."""

import json
import sys
from unittest.mock import AsyncMock, patch

import pytest

from dagtimeline.cli import main
from dagtimeline.codec import SnapshotCodec
from dagtimeline.recorder import EmptyRecordingError, write_json


def _run_cli(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["dagtimeline", *args])
    main()


@pytest.fixture()
def full_snapshot(tmp_path, recording):
    return write_json(tmp_path / "replay.json", recording.to_wire())


@pytest.fixture()
def compressed_snapshot(tmp_path, recording):
    return write_json(tmp_path / "replay.v2.json", SnapshotCodec().encode(recording).to_wire())


class TestCompress:
    def test_compress(self, monkeypatch, tmp_path, full_snapshot, recording, capsys):
        target = tmp_path / "out" / "replay.v2.json"
        _run_cli(monkeypatch, "compress", str(full_snapshot), str(target))
        document = json.loads(target.read_text())
        assert document["v"] == 2
        assert len(document["frames"]) == recording.frame_count
        assert "Wrote 10 frames" in capsys.readouterr().out

    def test_decompress(self, monkeypatch, tmp_path, compressed_snapshot, recording):
        target = tmp_path / "replay.full.json"
        _run_cli(monkeypatch, "decompress", str(compressed_snapshot), str(target), "--pretty")
        document = json.loads(target.read_text())
        assert "v" not in document
        assert document["frameCount"] == recording.frame_count
        assert document["frames"][0]["data"]["blocks"][0]["id"] == 1

    def test_bad_input_exits(self, monkeypatch, tmp_path):
        source = tmp_path / "bad.json"
        source.write_text(json.dumps({"v": 3}))
        with pytest.raises(SystemExit) as exc:
            _run_cli(monkeypatch, "compress", str(source), str(tmp_path / "out.json"))
        assert exc.value.code == 1


class TestCheckBudget:
    def test_pass(self, monkeypatch, compressed_snapshot, capsys):
        _run_cli(monkeypatch, "check-budget", str(compressed_snapshot))
        assert "Replay budget passed" in capsys.readouterr().out

    def test_fail(self, monkeypatch, full_snapshot, capsys):
        with pytest.raises(SystemExit) as exc:
            _run_cli(monkeypatch, "check-budget", str(full_snapshot))
        assert exc.value.code == 1
        assert "FAIL" in capsys.readouterr().out


class TestRecord:
    def test_empty_recording_exits(self, monkeypatch, tmp_path, capsys):
        failing = AsyncMock(side_effect=EmptyRecordingError("No frames captured."))
        with patch("dagtimeline.cli.record_snapshot", failing):
            with pytest.raises(SystemExit) as exc:
                _run_cli(monkeypatch, "record", "--out", str(tmp_path / "r.json"))
        assert exc.value.code == 1
        assert "[record] failed: No frames captured." in capsys.readouterr().out
        assert not (tmp_path / "r.json").exists()

    def test_writes_both_files(self, monkeypatch, tmp_path, recording):
        out = tmp_path / "r.json"
        compressed_out = tmp_path / "r.v2.json"
        with patch("dagtimeline.cli.record_snapshot", AsyncMock(return_value=recording)) as rec:
            _run_cli(
                monkeypatch, "record", "--api-url", "kgi.kaspad.net",
                "--duration-ms", "1000", "--out", str(out),
                "--compressed-out", str(compressed_out),
            )
        assert rec.await_args.args[1] == "https://kgi.kaspad.net:3147"
        assert rec.await_args.kwargs["duration_ms"] == 1000
        assert json.loads(out.read_text())["frameCount"] == recording.frame_count
        assert json.loads(compressed_out.read_text())["v"] == 2


class TestPlay:
    def test_snapshot_preview(self, monkeypatch, tmp_path, compressed_snapshot):
        preview = tmp_path / "preview.png"
        _run_cli(
            monkeypatch, "play", "snapshot", str(compressed_snapshot),
            "--duration-s", "0.05", "--preview", str(preview),
        )
        assert preview.exists()

    def test_replay_needs_location(self, monkeypatch):
        with pytest.raises(SystemExit) as exc:
            _run_cli(monkeypatch, "play", "replay", "--duration-s", "0")
        assert exc.value.code == 1


def test_no_command_prints_help(monkeypatch, capsys):
    _run_cli(monkeypatch)
    assert "usage" in capsys.readouterr().out
