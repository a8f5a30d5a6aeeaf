"""Per-device fabric configuration for the reconciler.

These light-weight dataclasses describe the role a device plays in the
leaf-spine fabric together with the identifiers the routing logic needs: the
station MAC used for "is this packet for me" matching and the optional SID
used as a routable /128 locator.  Config services hand these objects to the
snapshot accessor; nothing in the core ever defaults them.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from netaddr import EUI, AddrFormatError, mac_unix_expanded

BROADCAST_MAC = "ff:ff:ff:ff:ff:ff"
IPV6_MULTICAST_MAC = "33:33:00:00:00:00"
IPV6_MULTICAST_MASK = "ff:ff:00:00:00:00"


class DeviceRole(Enum):
    """Role of a device in the two-tier fabric."""

    SPINE = "spine"
    LEAF = "leaf"


def normalize_mac(value: str) -> str:
    """Return ``value`` as a lower case, colon separated MAC address."""

    try:
        return str(EUI(str(value), dialect=mac_unix_expanded))
    except (AddrFormatError, TypeError) as exc:
        raise ValueError(f"Invalid MAC address '{value}'") from exc


def mac_to_bytes(value: str) -> bytes:
    return EUI(normalize_mac(value)).packed


@dataclass(frozen=True)
class DeviceConfig:
    """Role and identifiers of a single fabric device.

    Attributes
    ----------
    role:
        Spine or leaf.
    station_mac:
        MAC the device uses to recognise packets routed to itself.
    sid:
        Optional IPv6 locator advertised as a /128 route.
    """

    role: DeviceRole
    station_mac: str
    sid: Optional[ipaddress.IPv6Address] = None

    @property
    def is_spine(self) -> bool:
        return self.role is DeviceRole.SPINE

    @property
    def sid_prefix(self) -> Optional[ipaddress.IPv6Network]:
        if self.sid is None:
            return None
        return ipaddress.IPv6Network((self.sid, 128))

    @classmethod
    def from_netcfg(cls, entry: Mapping[str, object]) -> "DeviceConfig":
        """Build a config from a netcfg style ``fabric`` block.

        The block mirrors the keys operators already use for the tutorial
        pipeline: ``isSpine``, ``myStationMac`` and ``mySid``.
        """

        if "isSpine" not in entry:
            raise ValueError("device config missing 'isSpine'")
        if "myStationMac" not in entry:
            raise ValueError("device config missing 'myStationMac'")

        sid_raw = entry.get("mySid")
        sid = ipaddress.IPv6Address(str(sid_raw)) if sid_raw else None
        role = DeviceRole.SPINE if bool(entry["isSpine"]) else DeviceRole.LEAF
        return cls(
            role=role,
            station_mac=normalize_mac(str(entry["myStationMac"])),
            sid=sid,
        )
