"""Watcher implementations used by the fabric agent."""

from .file import FileTopologyWatcher  # noqa: F401
from .utils import TopologyData, parse_topology  # noqa: F401

__all__ = ["FileTopologyWatcher", "TopologyData", "parse_topology"]
