"""Read-only topology snapshot consumed by the rule compiler."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .config import DeviceConfig, normalize_mac
from .exceptions import ConfigMissing, ConfigurationError

LOG = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


@dataclass(frozen=True, order=True)
class ConnectPoint:
    """A (device, port) pair."""

    device_id: str
    port: int

    @classmethod
    def parse(cls, value: str) -> "ConnectPoint":
        """Parse ``device:leaf1/3`` style connect points."""

        device_id, sep, port = str(value).rpartition("/")
        if not sep or not device_id:
            raise ValueError(f"Invalid connect point '{value}'")
        return cls(device_id=device_id, port=int(port))

    def __str__(self) -> str:
        return f"{self.device_id}/{self.port}"


@dataclass(frozen=True)
class Device:
    device_id: str
    available: bool = True


@dataclass(frozen=True)
class Link:
    """Directed link discovered between two device ports."""

    src: ConnectPoint
    dst: ConnectPoint

    def reversed(self) -> "Link":
        return Link(src=self.dst, dst=self.src)


@dataclass(frozen=True)
class Host:
    """End host learnt at the fabric edge."""

    mac: str
    location: ConnectPoint
    ips: FrozenSet[IPAddress] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mac", normalize_mac(self.mac))
        object.__setattr__(
            self, "ips", frozenset(ipaddress.ip_address(ip) for ip in self.ips)
        )

    @property
    def ipv6_addresses(self) -> List[ipaddress.IPv6Address]:
        return sorted(ip for ip in self.ips if ip.version == 6)


@dataclass(frozen=True)
class Interface:
    """Interface configured on a device port with its subnets."""

    name: str
    connect_point: ConnectPoint
    subnets: Tuple[IPNetwork, ...] = ()

    @classmethod
    def from_addresses(
        cls, name: str, connect_point: ConnectPoint, addresses: Iterable[str]
    ) -> "Interface":
        """Build an interface from ``2001:db8:1::ff/64`` style addresses."""

        subnets = tuple(
            dict.fromkeys(ipaddress.ip_interface(str(a)).network for a in addresses)
        )
        return cls(name=name, connect_point=connect_point, subnets=subnets)


class TopologySnapshot:
    """Immutable view of the topology and device configs at one instant.

    The snapshot is captured from the collaborator services and never mutated
    afterwards, so any number of workers can read it concurrently.
    """

    def __init__(
        self,
        devices: Iterable[Device] = (),
        links: Iterable[Link] = (),
        hosts: Iterable[Host] = (),
        interfaces: Iterable[Interface] = (),
        configs: Optional[Mapping[str, DeviceConfig]] = None,
    ) -> None:
        self._devices: Tuple[Device, ...] = tuple(
            sorted(devices, key=lambda d: d.device_id)
        )
        self._links: Tuple[Link, ...] = tuple(links)
        self._hosts: Tuple[Host, ...] = tuple(sorted(hosts, key=lambda h: h.mac))
        self._interfaces: Tuple[Interface, ...] = tuple(interfaces)
        self._configs: Mapping[str, DeviceConfig] = MappingProxyType(dict(configs or {}))

        egress: Dict[str, List[Link]] = {}
        for link in self._links:
            egress.setdefault(link.src.device_id, []).append(link)
        self._egress = {
            device_id: tuple(sorted(links, key=lambda l: (l.src, l.dst)))
            for device_id, links in egress.items()
        }

    @classmethod
    def capture(cls, topology, config_service) -> "TopologySnapshot":
        """Read the current state out of ``topology`` and ``config_service``."""

        return cls(
            devices=topology.get_devices(),
            links=topology.get_links(),
            hosts=topology.get_hosts(),
            interfaces=topology.get_interfaces(),
            configs=config_service.get_device_configs(),
        )

    # ------------------------------------------------------------------
    # Topology accessors
    # ------------------------------------------------------------------
    def devices(self) -> Sequence[Device]:
        return self._devices

    def device_ids(self) -> List[str]:
        return [d.device_id for d in self._devices]

    def available_devices(self) -> List[Device]:
        return [d for d in self._devices if d.available]

    def is_available(self, device_id: str) -> bool:
        return any(d.device_id == device_id and d.available for d in self._devices)

    def links(self) -> Sequence[Link]:
        return self._links

    def egress_links(self, device_id: str) -> Sequence[Link]:
        return self._egress.get(device_id, ())

    def link_towards(self, src_device: str, dst_device: str) -> Optional[Link]:
        """Return any link from ``src_device`` to ``dst_device``."""

        return next(
            (l for l in self.egress_links(src_device) if l.dst.device_id == dst_device),
            None,
        )

    def hosts(self) -> Sequence[Host]:
        return self._hosts

    def connected_hosts(self, device_id: str) -> List[Host]:
        return [h for h in self._hosts if h.location.device_id == device_id]

    def interfaces(self) -> Sequence[Interface]:
        return self._interfaces

    def interface_ipv6_subnets(self, device_id: str) -> List[ipaddress.IPv6Network]:
        subnets = {
            subnet
            for iface in self._interfaces
            if iface.connect_point.device_id == device_id
            for subnet in iface.subnets
            if subnet.version == 6
        }
        return sorted(subnets)

    def host_facing_ports(self, device_id: str) -> List[int]:
        return sorted(
            {
                iface.connect_point.port
                for iface in self._interfaces
                if iface.connect_point.device_id == device_id
            }
        )

    # ------------------------------------------------------------------
    # Config accessors
    # ------------------------------------------------------------------
    def find_config(self, device_id: str) -> Optional[DeviceConfig]:
        return self._configs.get(device_id)

    def config(self, device_id: str) -> DeviceConfig:
        cfg = self._configs.get(device_id)
        if cfg is None:
            raise ConfigMissing(device_id)
        return cfg

    def is_spine(self, device_id: str) -> bool:
        return self.config(device_id).is_spine

    def is_leaf(self, device_id: str) -> bool:
        return not self.is_spine(device_id)

    def station_mac(self, device_id: str) -> str:
        return self.config(device_id).station_mac

    def sid(self, device_id: str) -> Optional[ipaddress.IPv6Address]:
        return self.config(device_id).sid

    def configured_peers(self, device_id: str) -> List[str]:
        """Return the ids of every other device that carries a config.

        Peers without config are left out with a warning; only the device
        under reconciliation is required to be configured.
        """

        peers: List[str] = []
        for other in self.device_ids():
            if other == device_id:
                continue
            if other not in self._configs:
                LOG.warning(
                    "Ignoring device %s while reconciling %s: %s",
                    other,
                    device_id,
                    ConfigurationError(other),
                )
                continue
            peers.append(other)
        return peers
