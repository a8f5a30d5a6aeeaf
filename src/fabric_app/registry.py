"""Tiny listener registry used to fan topology events out."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Dict, List

from .events import DeviceEvent, HostEvent, LinkEvent
from .listeners import TopologyListener

LOG = logging.getLogger(__name__)


class ListenerRegistry:
    """Dispatch topology events to registered listeners.

    A listener only sees the event class it declares and only when its
    ``is_relevant`` hook accepts the event.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, TopologyListener] = {}
        self._lock = Lock()

    def register(self, name: str, listener: TopologyListener) -> None:
        with self._lock:
            if name in self._listeners:
                raise ValueError(f"listener '{name}' already registered")
            self._listeners[name] = listener

    def unregister(self, name: str) -> None:
        with self._lock:
            self._listeners.pop(name, None)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._listeners)

    def handle(self, event: DeviceEvent | HostEvent | LinkEvent) -> None:
        if not isinstance(event, (DeviceEvent, HostEvent, LinkEvent)):
            raise TypeError(f"Unsupported event type: {type(event)!r}")

        with self._lock:
            listeners = list(self._listeners.values())

        for listener in listeners:
            if not isinstance(event, listener.event_class):
                continue
            if not listener.is_relevant(event):
                continue
            listener.event(event)
