"""Group identifier helpers for the fabric reconciler."""

from __future__ import annotations

import hashlib

from .config import mac_to_bytes

CPU_PORT = 255
CPU_CLONE_SESSION_ID = 99
DEFAULT_BROADCAST_GROUP_ID = 255
DEFAULT_ECMP_GROUP_ID = 0xEC3B0000

_GROUP_ID_MASK = 0x7FFFFFFF


def mac_to_group_id(mac: str) -> int:
    """Return a 31-bit group id derived from ``mac``.

    The value only depends on the MAC so it is stable between runs and
    between controller instances.  Two MACs may hash to the same id; that
    risk is accepted.
    """

    digest = hashlib.sha256(mac_to_bytes(mac)).digest()
    return int.from_bytes(digest[:4], "big") & _GROUP_ID_MASK
