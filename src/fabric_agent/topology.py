"""In-memory topology, config and mastership services for the agent."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Iterable, List, Mapping, Optional, Sequence, Set

from fabric_app.events import (
    DeviceEvent,
    DeviceEventType,
    HostEvent,
    HostEventType,
    LinkEvent,
    LinkEventType,
)
from fabric_app.registry import ListenerRegistry
from fabric_reconciler.config import DeviceConfig
from fabric_reconciler.exceptions import ConfigMissing
from fabric_reconciler.services import (
    MastershipService,
    NetworkConfigService,
    TopologyService,
)
from fabric_reconciler.topology import Device, Host, Interface, Link

from .watchers.utils import TopologyData

LOG = logging.getLogger(__name__)


class InMemoryTopology(TopologyService, NetworkConfigService):
    """Hold the latest topology and publish the differences as events."""

    def __init__(self, registry: Optional[ListenerRegistry] = None) -> None:
        self._registry = registry or ListenerRegistry()
        self._lock = Lock()
        self._data = TopologyData()

    # ------------------------------------------------------------------
    # TopologyService
    # ------------------------------------------------------------------
    def get_devices(self) -> Sequence[Device]:
        with self._lock:
            return list(self._data.devices.values())

    def get_links(self) -> Sequence[Link]:
        with self._lock:
            return list(self._data.links)

    def get_hosts(self) -> Sequence[Host]:
        with self._lock:
            return list(self._data.hosts.values())

    def get_interfaces(self) -> Sequence[Interface]:
        with self._lock:
            return list(self._data.interfaces)

    def is_available(self, device_id: str) -> bool:
        with self._lock:
            device = self._data.devices.get(device_id)
        return device is not None and device.available

    def add_listener(self, name: str, listener) -> None:
        self._registry.register(name, listener)

    def remove_listener(self, name: str) -> None:
        self._registry.unregister(name)

    # ------------------------------------------------------------------
    # NetworkConfigService
    # ------------------------------------------------------------------
    def get_device_config(self, device_id: str) -> DeviceConfig:
        with self._lock:
            cfg = self._data.configs.get(device_id)
        if cfg is None:
            raise ConfigMissing(device_id)
        return cfg

    def get_device_configs(self) -> Mapping[str, DeviceConfig]:
        with self._lock:
            return dict(self._data.configs)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------
    def apply(self, data: TopologyData) -> List[object]:
        """Replace the current state with ``data`` and dispatch the delta.

        Events go out device first, then links, then hosts, so listeners
        always see the devices a link or host refers to.  Returns the
        dispatched events.
        """

        with self._lock:
            previous = self._data
            self._data = data

        events: List[object] = []
        events.extend(_device_events(previous, data))
        events.extend(_link_events(previous.links, data.links))
        events.extend(_host_events(previous, data))

        for event in events:
            LOG.debug("Dispatching %s", event)
            self._registry.handle(event)
        return events


def _device_events(previous: TopologyData, current: TopologyData) -> Iterable[DeviceEvent]:
    for device_id, device in current.devices.items():
        old = previous.devices.get(device_id)
        if old is None:
            yield DeviceEvent(DeviceEventType.DEVICE_ADDED, device)
        elif old.available != device.available:
            yield DeviceEvent(DeviceEventType.DEVICE_AVAILABILITY_CHANGED, device)
    for device_id in set(previous.devices) - set(current.devices):
        yield DeviceEvent(DeviceEventType.DEVICE_REMOVED, previous.devices[device_id])


def _link_events(previous: Set[Link], current: Set[Link]) -> Iterable[LinkEvent]:
    for link in sorted(current - previous, key=lambda l: (l.src, l.dst)):
        yield LinkEvent(LinkEventType.LINK_ADDED, link)
    for link in sorted(previous - current, key=lambda l: (l.src, l.dst)):
        yield LinkEvent(LinkEventType.LINK_REMOVED, link)


def _host_events(previous: TopologyData, current: TopologyData) -> Iterable[HostEvent]:
    for mac, host in current.hosts.items():
        old = previous.hosts.get(mac)
        if old is None:
            yield HostEvent(HostEventType.HOST_ADDED, host)
        elif old.location != host.location:
            yield HostEvent(HostEventType.HOST_MOVED, host)
        elif old.ips != host.ips:
            yield HostEvent(HostEventType.HOST_UPDATED, host)
    for mac in set(previous.hosts) - set(current.hosts):
        yield HostEvent(HostEventType.HOST_REMOVED, previous.hosts[mac])


class StaticMastership(MastershipService):
    """Mastership from a fixed device list; ``None`` means every device."""

    def __init__(self, owned: Optional[Iterable[str]] = None) -> None:
        self._lock = Lock()
        self._owned = None if owned is None else set(owned)

    def is_local_master(self, device_id: str) -> bool:
        with self._lock:
            return self._owned is None or device_id in self._owned

    def set_master(self, device_id: str, is_master: bool) -> None:
        with self._lock:
            if self._owned is None:
                if is_master:
                    return
                raise ValueError("cannot release a device when mastering all devices")
            if is_master:
                self._owned.add(device_id)
            else:
                self._owned.discard(device_id)
