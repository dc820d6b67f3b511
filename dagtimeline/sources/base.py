"""Base data source interface."""

import abc
import logging

from dagtimeline.models import WindowedView

logger = logging.getLogger(__name__)


class DataSource(abc.ABC):
    """Base class for everything that feeds windowed views to the timeline."""

    @abc.abstractmethod
    def get_head(self, height_difference: int) -> WindowedView | None:
        """Return the trailing window of the graph.

        Args:
            height_difference: Number of heights below the current maximum
                known height to include.

        Returns:
            The window, or None if no data is available yet. Repeated calls
            without an intervening tick return equivalent views.
        """
        ...

    @abc.abstractmethod
    def get_tick_interval(self) -> float:
        """Milliseconds the driving loop should wait before asking again."""
        ...

    @abc.abstractmethod
    def destroy(self) -> None:
        """Cancel pending timers and requests. Safe to call more than once."""
        ...

    @property
    def name(self) -> str:
        return type(self).__name__
