from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping

from fabric_reconciler.config import DeviceConfig, normalize_mac
from fabric_reconciler.topology import ConnectPoint, Device, Host, Interface, Link


@dataclass
class TopologyData:
    """Parsed content of a netcfg style topology file."""

    devices: Dict[str, Device] = field(default_factory=dict)
    configs: Dict[str, DeviceConfig] = field(default_factory=dict)
    links: FrozenSet[Link] = frozenset()
    hosts: Dict[str, Host] = field(default_factory=dict)
    interfaces: List[Interface] = field(default_factory=list)


def normalize_prefix(value: str) -> str:
    if not value:
        raise ValueError("Prefix value cannot be empty")
    if "/" in value:
        return str(ipaddress.ip_interface(value))
    ip = ipaddress.ip_address(value)
    if ip.version == 4:
        return f"{value}/32"
    return f"{value}/128"


def _parse_devices(section: Mapping[str, Any], data: TopologyData) -> None:
    for device_id, entry in section.items():
        entry = entry or {}
        if not isinstance(entry, dict):
            raise ValueError(f"device '{device_id}' must be a mapping")
        data.devices[device_id] = Device(
            device_id=device_id, available=bool(entry.get("available", True))
        )
        fabric = entry.get("fabric")
        if fabric is not None:
            data.configs[device_id] = DeviceConfig.from_netcfg(fabric)


def _parse_ports(section: Mapping[str, Any], data: TopologyData) -> None:
    for cp_raw, entry in section.items():
        connect_point = ConnectPoint.parse(cp_raw)
        for index, iface in enumerate(entry.get("interfaces", [])):
            name = iface.get("name") or f"{connect_point}-{index}"
            ips = [normalize_prefix(str(ip)) for ip in iface.get("ips", [])]
            data.interfaces.append(Interface.from_addresses(name, connect_point, ips))


def _parse_links(entries: List[Mapping[str, Any]], data: TopologyData) -> None:
    links = set()
    for entry in entries:
        link = Link(src=ConnectPoint.parse(entry["src"]), dst=ConnectPoint.parse(entry["dst"]))
        links.add(link)
        # Discovery reports both directions of a physical link.
        links.add(link.reversed())
    data.links = frozenset(links)


def _parse_hosts(entries: List[Mapping[str, Any]], data: TopologyData) -> None:
    for entry in entries:
        mac = normalize_mac(str(entry["mac"]))
        data.hosts[mac] = Host(
            mac=mac,
            location=ConnectPoint.parse(entry["location"]),
            ips=frozenset(str(ip) for ip in entry.get("ips", [])),
        )


def parse_topology(payload: Mapping[str, Any]) -> TopologyData:
    """Turn the topology file payload into model objects.

    Raises ``ValueError`` (or ``KeyError`` for missing mandatory keys) when the
    payload is malformed.
    """

    if not isinstance(payload, dict):
        raise ValueError("topology file must contain a mapping")

    data = TopologyData()
    _parse_devices(payload.get("devices", {}), data)
    _parse_ports(payload.get("ports", {}), data)
    _parse_links(payload.get("links", []), data)
    _parse_hosts(payload.get("hosts", []), data)
    return data
