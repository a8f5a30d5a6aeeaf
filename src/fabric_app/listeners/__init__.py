"""Topology listeners exposed to the registry and the application."""

from .base import TopologyListener  # noqa: F401
from .fabric import DeviceListener, HostListener, LinkListener  # noqa: F401

__all__ = [
    "DeviceListener",
    "HostListener",
    "LinkListener",
    "TopologyListener",
]
