"""Topology event primitives dispatched by the listener registry."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from fabric_reconciler.topology import Device, Host, Link


class DeviceEventType(Enum):
    DEVICE_ADDED = auto()
    DEVICE_AVAILABILITY_CHANGED = auto()
    DEVICE_UPDATED = auto()
    DEVICE_REMOVED = auto()


class HostEventType(Enum):
    HOST_ADDED = auto()
    HOST_UPDATED = auto()
    HOST_MOVED = auto()
    HOST_REMOVED = auto()


class LinkEventType(Enum):
    LINK_ADDED = auto()
    LINK_UPDATED = auto()
    LINK_REMOVED = auto()


@dataclass(frozen=True)
class DeviceEvent:
    type: DeviceEventType
    subject: Device


@dataclass(frozen=True)
class HostEvent:
    """A host was learnt, changed, moved or forgotten.

    ``subject`` always carries the host as it is now (for removals, as it was
    last seen).
    """

    type: HostEventType
    subject: Host


@dataclass(frozen=True)
class LinkEvent:
    type: LinkEventType
    subject: Link
