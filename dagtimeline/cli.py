"""CLI entry point for the DAG timeline."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import httpx

from dagtimeline.codec import SnapshotCodec, SnapshotFormatError, normalize_snapshot
from dagtimeline.config import Config, load_config
from dagtimeline.layout import LayoutEngine
from dagtimeline.loading import DocumentLoadError, load_replay_script, load_snapshot
from dagtimeline.models import SnapshotRecording
from dagtimeline.output.preview import PreviewRenderer
from dagtimeline.player import DagPlayer, LoggingRenderer, Renderer, Viewport
from dagtimeline.recorder import (
    EmptyRecordingError,
    check_replay_budget,
    normalize_api_url,
    record_snapshot,
    write_json,
)
from dagtimeline.scheduling import AsyncioScheduler
from dagtimeline.sources import (
    DataSource,
    LiveDataSource,
    ReplayDataSource,
    SnapshotReplayDataSource,
)
from dagtimeline.sources.replay import ReplayScriptError

logger = logging.getLogger(__name__)


def _build_parser(config: Config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Block DAG timeline")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # record command
    record_parser = sub.add_parser("record", help="Record a live session into a snapshot file")
    record_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    record_parser.add_argument("--api-url", default=config.live.api_url, help="API base URL")
    record_parser.add_argument(
        "--duration-ms", type=int, default=config.record.duration_ms,
        help="Total recording duration",
    )
    record_parser.add_argument(
        "--poll-interval-ms", type=int, default=config.record.poll_interval_ms,
        help="Poll interval",
    )
    record_parser.add_argument(
        "--height-difference", type=int, default=config.record.height_difference,
        help="heightDifference query value",
    )
    record_parser.add_argument(
        "--out", default=config.record.out_path,
        help="Output path for the full snapshot JSON",
    )
    record_parser.add_argument(
        "--compressed-out", default=config.record.compressed_out_path,
        help="Optional output path for the compressed v2 JSON",
    )
    record_parser.add_argument(
        "--fixed-rate", action="store_true", default=config.record.fixed_rate,
        help="Use fixed schedule polling (default is live-compatible cadence)",
    )
    record_parser.add_argument(
        "--pretty", action="store_true", default=config.record.pretty,
        help="Pretty-print JSON output",
    )

    # compress command
    compress_parser = sub.add_parser("compress", help="Convert a snapshot to the compressed v2 format")
    compress_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    compress_parser.add_argument("source", help="Snapshot file (either format)")
    compress_parser.add_argument("target", help="Output path")
    compress_parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")

    # decompress command
    decompress_parser = sub.add_parser("decompress", help="Expand a snapshot into full frames")
    decompress_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    decompress_parser.add_argument("source", help="Snapshot file (either format)")
    decompress_parser.add_argument("target", help="Output path")
    decompress_parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")

    # play command
    play_parser = sub.add_parser("play", help="Drive the timeline from a data source")
    play_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    play_parser.add_argument("mode", choices=["live", "replay", "snapshot"])
    play_parser.add_argument(
        "location", nargs="?",
        help="API URL (live) or path/URL of the replay script or snapshot",
    )
    play_parser.add_argument("--duration-s", type=float, default=10.0, help="How long to play")
    play_parser.add_argument(
        "--playback-rate", type=float, default=config.snapshot.playback_rate,
        help="Snapshot playback speed multiplier",
    )
    play_parser.add_argument("--zoom", type=float, default=config.player.zoom)
    play_parser.add_argument("--width", type=int, default=config.player.screen_width)
    play_parser.add_argument("--height", type=int, default=config.player.screen_height)
    play_parser.add_argument(
        "--preview", default=None,
        help="Write the latest frame to this PNG path",
    )

    # check-budget command
    budget_parser = sub.add_parser("check-budget", help="Check a compressed replay asset")
    budget_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    budget_parser.add_argument("path", help="Compressed replay file")
    budget_parser.add_argument(
        "--max-bytes", type=int, default=config.budget.max_compressed_replay_bytes,
    )
    budget_parser.add_argument(
        "--full-replay", default=None,
        help="Uncompressed replay path that must not be shipped",
    )

    return parser


async def _record(args: argparse.Namespace, config: Config) -> None:
    api_url = normalize_api_url(args.api_url)
    print(f"[record] API URL          : {api_url}")
    print(f"[record] durationMs       : {args.duration_ms}")
    print(f"[record] pollIntervalMs   : {args.poll_interval_ms}")
    print(f"[record] heightDifference : {args.height_difference}")
    print(f"[record] mode             : {'fixed-rate' if args.fixed_rate else 'live-compatible'}")

    async with httpx.AsyncClient(timeout=config.live.request_timeout_s) as client:
        recording = await record_snapshot(
            client,
            api_url,
            duration_ms=args.duration_ms,
            poll_interval_ms=args.poll_interval_ms,
            height_difference=args.height_difference,
            fixed_rate=args.fixed_rate,
        )

    full_path = write_json(Path(args.out), recording.to_wire(), args.pretty)
    print(f"[record] wrote snapshot: {full_path} ({recording.frame_count} frames)")

    if args.compressed_out:
        compressed = SnapshotCodec(config.codec).encode(recording)
        compressed_path = write_json(Path(args.compressed_out), compressed.to_wire(), args.pretty)
        print(f"[record] wrote compressed snapshot: {compressed_path}")


def _read_snapshot_file(path: str, codec: SnapshotCodec) -> SnapshotRecording:
    document = json.loads(Path(path).read_text(encoding="utf-8"))
    return normalize_snapshot(document, codec)


async def _open_source(
    args: argparse.Namespace,
    config: Config,
    client: httpx.AsyncClient,
    scheduler: AsyncioScheduler,
) -> DataSource:
    if args.mode == "live":
        api_url = normalize_api_url(args.location or config.live.api_url)
        source = LiveDataSource(api_url, client, scheduler, config.live.poll_interval_ms)
        source.start_polling(config.live.height_difference)
        return source

    if not args.location:
        raise DocumentLoadError(f"{args.mode} mode needs a file path or URL")

    if args.mode == "replay":
        script = await load_replay_script(args.location, client)
        replay = ReplayDataSource(
            script,
            scheduler,
            reset_after_ms=config.replay.reset_after_ms,
            max_edge_backfill=config.replay.max_edge_backfill,
        )
        replay.start()
        return replay

    recording = await load_snapshot(args.location, client, SnapshotCodec(config.codec))
    snapshot = SnapshotReplayDataSource(
        recording,
        scheduler,
        playback_rate=args.playback_rate,
        min_tick_ms=config.snapshot.min_tick_ms,
    )
    snapshot.start()
    return snapshot


async def _play(args: argparse.Namespace, config: Config) -> None:
    scheduler = AsyncioScheduler()
    renderer: Renderer
    if args.preview:
        renderer = PreviewRenderer(Path(args.preview), config.theme)
    else:
        renderer = LoggingRenderer()

    player = DagPlayer(
        scheduler,
        Viewport(args.width, args.height, args.zoom),
        renderer,
        engine=LayoutEngine(config.theme),
        right_margin=config.player.right_margin,
        default_tick_ms=config.player.default_tick_ms,
    )

    async with httpx.AsyncClient(
        timeout=config.live.request_timeout_s, follow_redirects=True,
    ) as client:
        source = await _open_source(args, config, client, scheduler)
        player.load(source)
        try:
            await asyncio.sleep(args.duration_s)
        finally:
            player.stop()


def main() -> None:
    config = load_config()
    parser = _build_parser(config)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    codec = SnapshotCodec(config.codec)

    try:
        if args.command == "record":
            asyncio.run(_record(args, config))

        elif args.command == "compress":
            recording = _read_snapshot_file(args.source, codec)
            compressed = codec.encode(recording)
            path = write_json(Path(args.target), compressed.to_wire(), args.pretty)
            print(f"Wrote {len(compressed.frames)} frames, {len(compressed.blocks)} blocks, "
                  f"{len(compressed.edges)} edges to {path}")

        elif args.command == "decompress":
            recording = _read_snapshot_file(args.source, codec)
            path = write_json(Path(args.target), recording.to_wire(), args.pretty)
            print(f"Wrote {recording.frame_count} frames to {path}")

        elif args.command == "play":
            asyncio.run(_play(args, config))

        elif args.command == "check-budget":
            failures = check_replay_budget(
                Path(args.path),
                args.max_bytes,
                Path(args.full_replay) if args.full_replay else None,
            )
            if failures:
                for message in failures:
                    print(f"[budget] FAIL: {message}")
                sys.exit(1)
            print("[budget] Replay budget passed.")

        else:
            parser.print_help()

    except EmptyRecordingError as e:
        print(f"[record] failed: {e}")
        sys.exit(1)
    except (SnapshotFormatError, ReplayScriptError, DocumentLoadError, OSError, json.JSONDecodeError) as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
