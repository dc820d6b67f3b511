"""Load replay scripts and snapshot documents from disk or over HTTP."""

import json
import logging
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from dagtimeline.codec import SnapshotCodec, normalize_snapshot
from dagtimeline.models import ReplayScript, SnapshotRecording
from dagtimeline.sources.replay import ReplayScriptError, validate_replay_script

logger = logging.getLogger(__name__)


class DocumentLoadError(RuntimeError):
    """A document could not be fetched or read."""


def _is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


async def load_json_document(location: str, client: httpx.AsyncClient | None = None) -> Any:
    """Read JSON from a local path or fetch it from an http(s) URL."""
    if not _is_url(location):
        path = Path(location)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise DocumentLoadError(f"Failed to read {path}: {e}") from e

    if client is None:
        async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as owned:
            return await _fetch_json(owned, location)
    return await _fetch_json(client, location)


async def _fetch_json(client: httpx.AsyncClient, url: str) -> Any:
    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        raise DocumentLoadError(f"Fetch of {url} failed: {e}") from e
    if not response.is_success:
        raise DocumentLoadError(
            f"Fetch of {url} failed ({response.status_code} {response.reason_phrase})"
        )
    try:
        return response.json()
    except ValueError as e:
        raise DocumentLoadError(f"{url} did not return JSON: {e}") from e


async def load_replay_script(
    location: str, client: httpx.AsyncClient | None = None,
) -> ReplayScript:
    document = await load_json_document(location, client)
    try:
        script = ReplayScript.model_validate(document)
    except ValidationError as e:
        raise ReplayScriptError(f"Malformed replay script {location}: {e}") from e
    validate_replay_script(script)
    logger.info("Loaded replay script %s: %d blocks", location, len(script.blocks))
    return script


async def load_snapshot(
    location: str,
    client: httpx.AsyncClient | None = None,
    codec: SnapshotCodec | None = None,
) -> SnapshotRecording:
    document = await load_json_document(location, client)
    recording = normalize_snapshot(document, codec)
    logger.info("Loaded snapshot %s: %d frames", location, len(recording.frames))
    return recording
