"""Rule and group descriptors for the fabric packet-processing pipeline.

Table, match field, action and action profile names come from the P4Info of
the pipeline loaded on the devices.  They are an external, fixed schema; the
reconciler only ever refers to them through the constants below.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

# Tables
L2_MY_STATION_TABLE = "FabricIngress.l2_my_station"
L2_EXACT_TABLE = "FabricIngress.l2_exact_table"
L2_TERNARY_TABLE = "FabricIngress.l2_ternary_table"
L3_TABLE = "FabricIngress.l3_table"

# Match fields
ETH_DST_FIELD = "hdr.ethernet.dst_addr"
IPV6_DST_FIELD = "hdr.ipv6.dst_addr"

# Actions and parameters
NO_ACTION = "NoAction"
SET_OUTPUT_PORT_ACTION = "FabricIngress.set_output_port"
SET_MULTICAST_GROUP_ACTION = "FabricIngress.set_multicast_group"
SET_NEXT_HOP_ACTION = "FabricIngress.set_l2_next_hop"
ECMP_SELECTOR = "FabricIngress.ecmp_selector"

DEFAULT_FLOW_RULE_PRIORITY = 10


# ----------------------------------------------------------------------
# Match specs
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ExactMatch:
    field: str
    value: str


@dataclass(frozen=True)
class TernaryMatch:
    field: str
    value: str
    mask: str


@dataclass(frozen=True)
class LpmMatch:
    field: str
    prefix: ipaddress.IPv6Network


Match = Union[ExactMatch, TernaryMatch, LpmMatch]


# ----------------------------------------------------------------------
# Action specs
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class NoAction:
    name: str = NO_ACTION


@dataclass(frozen=True)
class OutputPortAction:
    port: int
    name: str = SET_OUTPUT_PORT_ACTION


@dataclass(frozen=True)
class NextHopAction:
    """Rewrite the destination MAC towards a next hop (group member)."""

    dmac: str
    name: str = SET_NEXT_HOP_ACTION


@dataclass(frozen=True)
class GroupAction:
    """Reference to an action profile (selector) group."""

    group_id: int


@dataclass(frozen=True)
class MulticastGroupAction:
    """Reference to a packet replication engine multicast group."""

    group_id: int
    name: str = SET_MULTICAST_GROUP_ACTION


Action = Union[NoAction, OutputPortAction, NextHopAction, GroupAction, MulticastGroupAction]


@dataclass(frozen=True)
class ForwardingRule:
    """A single table entry destined for one device."""

    device_id: str
    table: str
    match: Match
    action: Action
    priority: int = DEFAULT_FLOW_RULE_PRIORITY

    @property
    def key(self) -> Tuple[str, str, Match]:
        """Identity of the entry on the device; same key overwrites."""

        return self.device_id, self.table, self.match

    @property
    def group_id(self) -> Optional[int]:
        if isinstance(self.action, (GroupAction, MulticastGroupAction)):
            return self.action.group_id
        return None

    def describe(self) -> str:
        return f"{self.table} {self.match}"


class GroupType(Enum):
    CLONE = "clone"
    ALL = "all"
    SELECT = "select"


GroupMember = Union[OutputPortAction, NextHopAction]


@dataclass(frozen=True)
class ReplicationGroup:
    """A replication or selection group installed on one device.

    ``table`` and ``action_profile`` are only set for SELECT groups, which
    the device realises as action selector groups bound to a table.
    """

    device_id: str
    group_id: int
    group_type: GroupType
    members: Tuple[GroupMember, ...]
    table: Optional[str] = None
    action_profile: Optional[str] = None


@dataclass(frozen=True)
class InstallBatch:
    """Groups and the rules that may depend on them, for one device."""

    device_id: str
    groups: Tuple[ReplicationGroup, ...] = ()
    rules: Tuple[ForwardingRule, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        for item in (*self.groups, *self.rules):
            if item.device_id != self.device_id:
                raise ValueError(
                    f"batch for {self.device_id} contains entry for {item.device_id}"
                )

    @property
    def group_ids(self) -> Tuple[int, ...]:
        return tuple(g.group_id for g in self.groups)

    def depends_on_groups(self) -> bool:
        """True when a rule references a group carried in this batch."""

        ids = set(self.group_ids)
        return any(rule.group_id in ids for rule in self.rules)
