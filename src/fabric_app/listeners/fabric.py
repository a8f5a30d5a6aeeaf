"""Listeners turning topology events into queued reconciliation work."""

from __future__ import annotations

import logging

from fabric_reconciler.driver import FabricDriver

from ..events import (
    DeviceEvent,
    DeviceEventType,
    HostEvent,
    HostEventType,
    LinkEvent,
    LinkEventType,
)
from ..workers import WorkQueue
from .base import TopologyListener

LOG = logging.getLogger(__name__)


class _FabricListener(TopologyListener):
    def __init__(self, driver: FabricDriver, mastership, topology, queue: WorkQueue) -> None:
        self._driver = driver
        self._mastership = mastership
        self._topology = topology
        self._queue = queue


class DeviceListener(_FabricListener):
    """Set up L2 bridging on devices that (re)appear."""

    event_class = DeviceEvent

    def is_relevant(self, event: DeviceEvent) -> bool:
        if event.type not in (
            DeviceEventType.DEVICE_ADDED,
            DeviceEventType.DEVICE_AVAILABILITY_CHANGED,
        ):
            return False
        # Process only if this controller instance is the master.
        return self._mastership.is_local_master(event.subject.device_id)

    def event(self, event: DeviceEvent) -> None:
        device_id = event.subject.device_id
        LOG.info("%s event! deviceId=%s", event.type.name, device_id)
        self._queue.submit(device_id, self._setup_device, device_id)

    def _setup_device(self, device_id: str) -> None:
        # A device is available once its pipeline config has been pushed.
        if not self._topology.is_available(device_id):
            LOG.debug("Device %s no longer available, skipping bridging", device_id)
            return
        self._driver.setup_bridging(device_id)


class HostListener(_FabricListener):
    """Install bridging and routing state for newly learnt hosts.

    Only additions are handled; updated, moved and removed hosts keep whatever
    state they already had on the fabric.
    """

    event_class = HostEvent

    def is_relevant(self, event: HostEvent) -> bool:
        if event.type is not HostEventType.HOST_ADDED:
            return False
        return self._mastership.is_local_master(event.subject.location.device_id)

    def event(self, event: HostEvent) -> None:
        host = event.subject
        device_id = host.location.device_id
        LOG.info(
            "%s event! host=%s, deviceId=%s, port=%s",
            event.type.name,
            host.mac,
            device_id,
            host.location.port,
        )
        self._queue.submit(device_id, self._driver.setup_host, host)


class LinkListener(_FabricListener):
    """Refresh routing and next hops on the owned endpoints of a new link."""

    event_class = LinkEvent

    def is_relevant(self, event: LinkEvent) -> bool:
        if event.type is not LinkEventType.LINK_ADDED:
            return False
        link = event.subject
        return self._mastership.is_local_master(
            link.src.device_id
        ) or self._mastership.is_local_master(link.dst.device_id)

    def event(self, event: LinkEvent) -> None:
        src = event.subject.src.device_id
        dst = event.subject.dst.device_id
        LOG.info("%s event! src=%s, dst=%s", event.type.name, src, dst)
        for device_id in dict.fromkeys((src, dst)):
            if self._mastership.is_local_master(device_id):
                self._queue.submit(device_id, self._driver.setup_fabric_links, device_id)
