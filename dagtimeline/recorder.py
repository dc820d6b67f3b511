"""Record a live session of ``/head`` responses into a snapshot file."""

import asyncio
import json
import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx

from dagtimeline.codec import FORMAT_VERSION
from dagtimeline.models import SnapshotFrame, SnapshotRecording, WindowedView

logger = logging.getLogger(__name__)

DEFAULT_API_HOST = "kgi.kaspad.net"
DEFAULT_API_PORT = 3147

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z\d+\-.]*://")


class EmptyRecordingError(RuntimeError):
    """The recording session captured no frames."""


def normalize_api_url(raw_url: str) -> str:
    """Add a missing scheme, the default API port and strip trailing slashes."""
    trimmed = raw_url.strip()
    with_scheme = trimmed if _SCHEME_RE.match(trimmed) else f"https://{trimmed}"

    url = httpx.URL(with_scheme)
    if url.port is None and url.host == DEFAULT_API_HOST:
        url = url.copy_with(port=DEFAULT_API_PORT)
    url = url.copy_with(path=url.path.rstrip("/") or "/")
    return str(url).rstrip("/")


async def fetch_head(
    client: httpx.AsyncClient, api_url: str, height_difference: int,
) -> WindowedView:
    response = await client.get(
        f"{api_url}/head", params={"heightDifference": height_difference},
    )
    response.raise_for_status()
    return WindowedView.model_validate(response.json())


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


async def record_snapshot(
    client: httpx.AsyncClient,
    api_url: str,
    duration_ms: int = 60_000,
    poll_interval_ms: int = 200,
    height_difference: int = 14,
    fixed_rate: bool = False,
    clock: Callable[[], float] = _monotonic_ms,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> SnapshotRecording:
    """Poll the head endpoint until ``duration_ms`` has elapsed.

    Each successful poll becomes a frame stamped with the elapsed time. Failed
    polls are logged and skipped. With ``fixed_rate`` polls are pinned to
    ``start + n * interval``; otherwise the next poll waits a full interval
    after the previous one finished, matching the live source's cadence.

    Raises:
        EmptyRecordingError: if not a single poll succeeded.
    """
    frames: list[SnapshotFrame] = []
    start = clock()
    tick = 0
    next_poll_at = start

    while True:
        now = clock()
        if now < next_poll_at:
            await sleep((next_poll_at - now) / 1000)

        if tick > 0 and clock() - start > duration_ms:
            break

        try:
            data = await fetch_head(client, api_url, height_difference)
            elapsed = round(clock() - start)
            frames.append(SnapshotFrame(t=elapsed, data=data))
            logger.debug("frames captured: %d (t=%dms)", len(frames), elapsed)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("poll %d failed: %s", tick, e)

        if fixed_rate:
            next_poll_at = start + (tick + 1) * poll_interval_ms
        else:
            next_poll_at = clock() + poll_interval_ms
        tick += 1

    if not frames:
        raise EmptyRecordingError("No frames captured. Verify API URL/connectivity and retry.")

    recording = SnapshotRecording(
        recorded_at=datetime.now(timezone.utc).isoformat(),
        duration_ms=round(clock() - start),
        height_difference=height_difference,
        poll_interval_ms=poll_interval_ms,
        frame_count=len(frames),
        frames=frames,
    )
    average = average_frame_delta(recording)
    if average is not None:
        logger.info(
            "average frame delta: %dms (%d intervals)", round(average), len(frames) - 1,
        )
    return recording


def average_frame_delta(recording: SnapshotRecording) -> float | None:
    frames = recording.frames
    if len(frames) < 2:
        return None
    deltas = [later.t - earlier.t for earlier, later in zip(frames, frames[1:])]
    return sum(deltas) / len(deltas)


def write_json(target: Path, payload: dict, pretty: bool = False) -> Path:
    """Write ``payload`` as JSON, creating parent directories."""
    output_path = target.resolve()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(payload, indent=2 if pretty else None), encoding="utf-8",
    )
    return output_path


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def check_replay_budget(
    compressed_path: Path,
    max_bytes: int,
    full_replay_path: Path | None = None,
) -> list[str]:
    """Check a shipped replay asset. Returns failure messages; empty means pass.

    The compressed file must exist, fit in ``max_bytes`` and carry the v2
    format marker. If ``full_replay_path`` is given, that uncompressed debug
    file must not exist next to it.
    """
    failures: list[str] = []

    if not compressed_path.exists():
        failures.append(f"Missing replay asset {compressed_path}")
    else:
        size = compressed_path.stat().st_size
        if size > max_bytes:
            failures.append(
                f"Compressed replay size {_format_bytes(size)} exceeds budget {_format_bytes(max_bytes)}"
            )
        try:
            document = json.loads(compressed_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            failures.append(f"Failed to parse {compressed_path}: {e}")
        else:
            if not isinstance(document, dict) or document.get("v") != FORMAT_VERSION:
                failures.append(
                    f"{compressed_path} is not compressed replay format (expected v={FORMAT_VERSION})"
                )

    if full_replay_path is not None and full_replay_path.exists():
        failures.append(f"Full replay file should be debug-only: {full_replay_path}")

    for message in failures:
        logger.error("budget check failed: %s", message)
    return failures
