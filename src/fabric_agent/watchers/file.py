"""File-based topology watcher."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Event, Thread
from typing import TYPE_CHECKING, Optional

from .utils import parse_topology

if TYPE_CHECKING:  # pragma: no cover
    from ..topology import InMemoryTopology

LOG = logging.getLogger(__name__)


class FileTopologyWatcher(Thread):
    """Poll a netcfg style JSON file and feed it to the topology service."""

    def __init__(
        self,
        topology: InMemoryTopology,
        path: Path,
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(daemon=True, name="fabric-topology-watcher")
        self._topology = topology
        self._path = Path(path)
        self._interval = interval
        self._stop_event = stop_event
        self._last_payload: Optional[str] = None

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("topology watcher encountered an error")
            self._stop_event.wait(self._interval)

    def poll(self) -> bool:
        """Apply the file if it changed; return whether it was applied."""

        if not self._path.exists():
            LOG.debug("topology file %s does not exist yet", self._path)
            return False

        raw = self._path.read_text()
        if raw == self._last_payload:
            return False

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            LOG.warning("failed to parse topology file %s: %s", self._path, exc)
            return False

        try:
            data = parse_topology(payload)
        except (KeyError, ValueError) as exc:
            LOG.warning("invalid topology file %s: %s", self._path, exc)
            return False

        self._topology.apply(data)
        self._last_payload = raw
        return True
