"""Translate topology facts into rule and group descriptors.

Every function here is pure: given the same :class:`TopologySnapshot` it
returns the same descriptors in the same order, and it never talks to a
device.  Installation order is the installer's business.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, List, Optional, Sequence

from .allocator import (
    CPU_CLONE_SESSION_ID,
    CPU_PORT,
    DEFAULT_BROADCAST_GROUP_ID,
    DEFAULT_ECMP_GROUP_ID,
    mac_to_group_id,
)
from .config import (
    BROADCAST_MAC,
    IPV6_MULTICAST_MAC,
    IPV6_MULTICAST_MASK,
)
from .exceptions import TopologyIncompleteError
from .pipeline import (
    ECMP_SELECTOR,
    ETH_DST_FIELD,
    IPV6_DST_FIELD,
    L2_EXACT_TABLE,
    L2_MY_STATION_TABLE,
    L2_TERNARY_TABLE,
    L3_TABLE,
    ExactMatch,
    ForwardingRule,
    GroupAction,
    GroupType,
    InstallBatch,
    LpmMatch,
    MulticastGroupAction,
    NextHopAction,
    NoAction,
    OutputPortAction,
    ReplicationGroup,
    TernaryMatch,
)
from .topology import Host, TopologySnapshot

LOG = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Building blocks
# ----------------------------------------------------------------------
def build_next_hop_group(
    device_id: str, group_id: int, next_hop_macs: Iterable[str]
) -> ReplicationGroup:
    """Return a SELECT group with one ``set_l2_next_hop`` member per MAC."""

    members = tuple(NextHopAction(dmac=mac) for mac in dict.fromkeys(next_hop_macs))
    return ReplicationGroup(
        device_id=device_id,
        group_id=group_id,
        group_type=GroupType.SELECT,
        members=members,
        table=L3_TABLE,
        action_profile=ECMP_SELECTOR,
    )


def build_routing_rule(
    device_id: str, prefix: ipaddress.IPv6Network, group_id: int
) -> ForwardingRule:
    return ForwardingRule(
        device_id=device_id,
        table=L3_TABLE,
        match=LpmMatch(field=IPV6_DST_FIELD, prefix=prefix),
        action=GroupAction(group_id=group_id),
    )


def _egress_port(snapshot: TopologySnapshot, device_id: str, next_hop_id: str) -> int:
    link = snapshot.link_towards(device_id, next_hop_id)
    if link is None:
        raise TopologyIncompleteError(f"no link from {device_id} to {next_hop_id}")
    return link.src.port


def _route_batch(
    device_id: str,
    group_id: int,
    next_hop_macs: Iterable[str],
    prefixes: Sequence[ipaddress.IPv6Network],
) -> InstallBatch:
    group = build_next_hop_group(device_id, group_id, next_hop_macs)
    rules = tuple(build_routing_rule(device_id, p, group_id) for p in prefixes)
    return InstallBatch(device_id=device_id, groups=(group,), rules=rules)


# ----------------------------------------------------------------------
# L2 / my station
# ----------------------------------------------------------------------
def compute_my_station_rule(snapshot: TopologySnapshot, device_id: str) -> ForwardingRule:
    """Admit packets addressed to the device's station MAC into routing."""

    return ForwardingRule(
        device_id=device_id,
        table=L2_MY_STATION_TABLE,
        match=ExactMatch(field=ETH_DST_FIELD, value=snapshot.station_mac(device_id)),
        action=NoAction(),
    )


def compute_next_hop_rules(snapshot: TopologySnapshot, device_id: str) -> List[ForwardingRule]:
    """Forward packets for each directly linked neighbour out of its port."""

    rules: List[ForwardingRule] = []
    for next_hop in snapshot.available_devices():
        if next_hop.device_id == device_id:
            continue
        try:
            port = _egress_port(snapshot, device_id, next_hop.device_id)
        except TopologyIncompleteError as exc:
            # Maybe we are still waiting to discover that link.
            LOG.debug("Skipping next hop: %s", exc)
            continue
        next_hop_cfg = snapshot.find_config(next_hop.device_id)
        if next_hop_cfg is None:
            LOG.warning(
                "Skipping next hop %s from %s: missing fabric config",
                next_hop.device_id,
                device_id,
            )
            continue
        rules.append(
            ForwardingRule(
                device_id=device_id,
                table=L2_EXACT_TABLE,
                match=ExactMatch(field=ETH_DST_FIELD, value=next_hop_cfg.station_mac),
                action=OutputPortAction(port=port),
            )
        )
    return rules


def compute_host_bridging_rule(host: Host) -> ForwardingRule:
    return ForwardingRule(
        device_id=host.location.device_id,
        table=L2_EXACT_TABLE,
        match=ExactMatch(field=ETH_DST_FIELD, value=host.mac),
        action=OutputPortAction(port=host.location.port),
    )


def compute_bridging_state(snapshot: TopologySnapshot, device_id: str) -> List[InstallBatch]:
    """Clone session on every device, broadcast support on leaves only.

    The clone group lets LLDP, ARP and NDP reach the control plane for link
    and host discovery.  Leaves also get an ALL group over their host facing
    ports and the ternary rules steering broadcast and IPv6 multicast (e.g.
    neighbour solicitation) into it.
    """

    is_spine = snapshot.is_spine(device_id)
    clone_group = ReplicationGroup(
        device_id=device_id,
        group_id=CPU_CLONE_SESSION_ID,
        group_type=GroupType.CLONE,
        members=(OutputPortAction(port=CPU_PORT),),
    )
    batches = [InstallBatch(device_id=device_id, groups=(clone_group,))]

    if is_spine:
        return batches

    ports = snapshot.host_facing_ports(device_id)
    if not ports:
        LOG.warning("Device %s has 0 host facing ports", device_id)
        return batches

    broadcast_group = ReplicationGroup(
        device_id=device_id,
        group_id=DEFAULT_BROADCAST_GROUP_ID,
        group_type=GroupType.ALL,
        members=tuple(OutputPortAction(port=p) for p in ports),
    )
    rules = tuple(
        ForwardingRule(
            device_id=device_id,
            table=L2_TERNARY_TABLE,
            match=TernaryMatch(field=ETH_DST_FIELD, value=value, mask=mask),
            action=MulticastGroupAction(group_id=DEFAULT_BROADCAST_GROUP_ID),
        )
        for value, mask in (
            (BROADCAST_MAC, BROADCAST_MAC),
            (IPV6_MULTICAST_MAC, IPV6_MULTICAST_MASK),
        )
    )
    batches.append(
        InstallBatch(device_id=device_id, groups=(broadcast_group,), rules=rules)
    )
    return batches


# ----------------------------------------------------------------------
# IPv6 routing
# ----------------------------------------------------------------------
def compute_host_routes(host: Host) -> Optional[InstallBatch]:
    """Route each IPv6 address of ``host`` as a /128 via a one-member group."""

    addresses = host.ipv6_addresses
    device_id = host.location.device_id
    if not addresses:
        LOG.debug("No IPv6 addresses for host %s, ignore", host.mac)
        return None

    prefixes = [ipaddress.IPv6Network((addr, 128)) for addr in addresses]
    return _route_batch(device_id, mac_to_group_id(host.mac), [host.mac], prefixes)


def compute_spine_routes(snapshot: TopologySnapshot, spine_id: str) -> List[InstallBatch]:
    """Route every leaf's subnets and SID towards that leaf."""

    batches: List[InstallBatch] = []
    for peer in snapshot.configured_peers(spine_id):
        cfg = snapshot.config(peer)
        if cfg.is_spine:
            continue
        subnets = set(snapshot.interface_ipv6_subnets(peer))
        if cfg.sid_prefix is not None:
            subnets.add(cfg.sid_prefix)
        if not subnets:
            LOG.debug("No subnets on leaf %s, nothing to route from %s", peer, spine_id)
            continue
        batches.append(
            _route_batch(
                spine_id,
                mac_to_group_id(cfg.station_mac),
                [cfg.station_mac],
                sorted(subnets),
            )
        )
    return batches


def compute_leaf_routes(snapshot: TopologySnapshot, leaf_id: str) -> List[InstallBatch]:
    """Route other leaves' subnets over ECMP and spine SIDs deterministically."""

    spines: List[str] = []
    remote_subnets = set()
    for peer in snapshot.configured_peers(leaf_id):
        if snapshot.is_spine(peer):
            spines.append(peer)
        else:
            remote_subnets.update(snapshot.interface_ipv6_subnets(peer))

    batches: List[InstallBatch] = []
    for spine_id in spines:
        cfg = snapshot.config(spine_id)
        if cfg.sid_prefix is None:
            LOG.debug("Spine %s has no SID, skipping SID route on %s", spine_id, leaf_id)
            continue
        batches.append(
            _route_batch(
                leaf_id,
                mac_to_group_id(cfg.station_mac),
                [cfg.station_mac],
                [cfg.sid_prefix],
            )
        )

    if not spines:
        LOG.debug("No spines known yet, skipping ECMP group on %s", leaf_id)
        return batches

    spine_macs = [snapshot.station_mac(s) for s in spines]
    batches.append(
        _route_batch(leaf_id, DEFAULT_ECMP_GROUP_ID, spine_macs, sorted(remote_subnets))
    )
    return batches


def compute_routes(snapshot: TopologySnapshot, device_id: str) -> List[InstallBatch]:
    if snapshot.is_spine(device_id):
        LOG.debug("Computing spine routes for %s", device_id)
        return compute_spine_routes(snapshot, device_id)
    LOG.debug("Computing leaf routes for %s", device_id)
    return compute_leaf_routes(snapshot, device_id)


# ----------------------------------------------------------------------
# Per-device plans
# ----------------------------------------------------------------------
def compute_fabric_link_plan(snapshot: TopologySnapshot, device_id: str) -> List[InstallBatch]:
    """My station rule, routes and next hops: what a new link can change."""

    # Resolve the device's own config first so a missing config fails fast.
    snapshot.config(device_id)
    batches = [
        InstallBatch(
            device_id=device_id,
            rules=(compute_my_station_rule(snapshot, device_id),),
        )
    ]
    batches.extend(compute_routes(snapshot, device_id))
    next_hops = compute_next_hop_rules(snapshot, device_id)
    if next_hops:
        batches.append(InstallBatch(device_id=device_id, rules=tuple(next_hops)))
    return batches


def compute_host_plan(snapshot: TopologySnapshot, host: Host) -> List[InstallBatch]:
    """Bridging rule and host routes on the host's attachment device."""

    device_id = host.location.device_id
    batches = [InstallBatch(device_id=device_id, rules=(compute_host_bridging_rule(host),))]
    routes = compute_host_routes(host)
    if routes is not None:
        batches.append(routes)
    return batches


def compute_device_plan(snapshot: TopologySnapshot, device_id: str) -> List[InstallBatch]:
    """Everything a full convergence pass installs on ``device_id``.

    The whole plan is compiled before anything is handed to the installer so
    a configuration error leaves no partial state behind.
    """

    batches = compute_bridging_state(snapshot, device_id)
    batches.extend(compute_fabric_link_plan(snapshot, device_id))
    for host in snapshot.connected_hosts(device_id):
        batches.extend(compute_host_plan(snapshot, host))
    return batches
