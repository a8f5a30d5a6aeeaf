"""Abstract interface for topology listeners."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar, Type


class TopologyListener(ABC):
    """Base class for listeners managed by :class:`ListenerRegistry`."""

    event_class: ClassVar[Type]

    @abstractmethod
    def is_relevant(self, event) -> bool:
        """Return whether ``event`` should be handed to :meth:`event`."""

    @abstractmethod
    def event(self, event) -> None:
        """React to ``event``; must not block on device programming."""
