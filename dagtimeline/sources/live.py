"""Poll a live ``/head`` endpoint and cache the most recent window."""

import asyncio
import logging

import httpx

from dagtimeline.models import WindowedView
from dagtimeline.scheduling import Scheduler, TimerHandle
from dagtimeline.sources.base import DataSource

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 200
DEFAULT_HEIGHT_DIFFERENCE = 14


class LiveDataSource(DataSource):
    """Polls ``GET {api_url}/head?heightDifference=n`` on a fixed interval.

    Failed polls keep the previous cache and are retried on the next tick.
    ``get_head`` only records the height difference for the next poll, so the
    returned window may lag by one tick.
    """

    def __init__(
        self,
        api_url: str,
        client: httpx.AsyncClient,
        scheduler: Scheduler,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.poll_interval_ms = poll_interval_ms
        self._client = client
        self._scheduler = scheduler
        self._latest: WindowedView | None = None
        self._height_difference = DEFAULT_HEIGHT_DIFFERENCE
        self._timer: TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._destroyed = False

    def start_polling(self, height_difference: int) -> None:
        """Start the poll loop. Must be called with a running event loop."""
        self._height_difference = height_difference
        self._spawn_poll()

    def _spawn_poll(self) -> None:
        self._timer = None
        if self._destroyed:
            return
        self._task = asyncio.ensure_future(self._poll_and_reschedule())

    async def _poll_and_reschedule(self) -> None:
        try:
            await self.poll_once()
        except Exception:
            logger.exception("Unexpected error polling %s", self.api_url)
        finally:
            if not self._destroyed:
                self._timer = self._scheduler.call_later(self.poll_interval_ms, self._spawn_poll)

    async def poll_once(self) -> bool:
        """Fetch one window. Returns True if the cache was updated."""
        try:
            response = await self._client.get(
                f"{self.api_url}/head",
                params={"heightDifference": self._height_difference},
            )
        except httpx.HTTPError as e:
            logger.debug("Poll of %s failed: %s", self.api_url, e)
            return False

        if self._destroyed:
            # Response arrived after destroy(); never apply it.
            return False
        if not response.is_success:
            logger.debug("Poll of %s returned HTTP %d", self.api_url, response.status_code)
            return False

        try:
            self._latest = WindowedView.model_validate(response.json())
        except ValueError as e:
            logger.debug("Discarding malformed head response: %s", e)
            return False
        return True

    def get_head(self, height_difference: int) -> WindowedView | None:
        self._height_difference = height_difference
        return self._latest

    def get_tick_interval(self) -> float:
        return self.poll_interval_ms

    @property
    def height_difference(self) -> int:
        return self._height_difference

    def destroy(self) -> None:
        self._destroyed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
