import ipaddress

import pytest

from fabric_reconciler import compiler
from fabric_reconciler.allocator import (
    CPU_CLONE_SESSION_ID,
    CPU_PORT,
    DEFAULT_BROADCAST_GROUP_ID,
    DEFAULT_ECMP_GROUP_ID,
    mac_to_group_id,
)
from fabric_reconciler.exceptions import ConfigurationError
from fabric_reconciler.pipeline import (
    ECMP_SELECTOR,
    ETH_DST_FIELD,
    L2_EXACT_TABLE,
    L2_MY_STATION_TABLE,
    L2_TERNARY_TABLE,
    L3_TABLE,
    ExactMatch,
    GroupAction,
    GroupType,
    LpmMatch,
    MulticastGroupAction,
    NextHopAction,
    OutputPortAction,
    TernaryMatch,
)
from fabric_reconciler.topology import ConnectPoint, Host

from fabric_topologies import (
    HOST_ENTRY,
    HOST_MAC,
    LEAF1,
    LEAF1_MAC,
    LEAF2,
    LEAF2_MAC,
    SPINE1,
    SPINE1_MAC,
    leaf_spine_payload,
    snapshot_of,
)


def net(value: str) -> ipaddress.IPv6Network:
    return ipaddress.IPv6Network(value)


def lpm_prefixes(batches):
    return sorted(
        rule.match.prefix
        for batch in batches
        for rule in batch.rules
        if isinstance(rule.match, LpmMatch)
    )


def test_spine_routes_every_leaf_subnet():
    snapshot = snapshot_of(leaf_spine_payload())

    batches = compiler.compute_routes(snapshot, SPINE1)

    assert len(batches) == 2
    groups = [g for b in batches for g in b.groups]
    assert [g.group_id for g in groups] == [
        mac_to_group_id(LEAF1_MAC),
        mac_to_group_id(LEAF2_MAC),
    ]
    assert all(g.group_type is GroupType.SELECT for g in groups)
    assert all(g.action_profile == ECMP_SELECTOR for g in groups)
    assert [g.members for g in groups] == [
        (NextHopAction(dmac=LEAF1_MAC),),
        (NextHopAction(dmac=LEAF2_MAC),),
    ]
    assert lpm_prefixes(batches) == [net("2001:db8:1::/64"), net("2001:db8:2::/64")]
    for batch in batches:
        (rule,) = batch.rules
        assert rule.table == L3_TABLE
        assert rule.action == GroupAction(group_id=batch.groups[0].group_id)


def test_leaf_routes_other_leaves_over_ecmp():
    snapshot = snapshot_of(leaf_spine_payload())

    batches = compiler.compute_routes(snapshot, LEAF1)

    sid_batch, ecmp_batch = batches
    assert sid_batch.groups[0].group_id == mac_to_group_id(SPINE1_MAC)
    assert [r.match.prefix for r in sid_batch.rules] == [net("3:201:2::/128")]

    (group,) = ecmp_batch.groups
    assert group.group_id == DEFAULT_ECMP_GROUP_ID
    assert group.members == (NextHopAction(dmac=SPINE1_MAC),)
    (rule,) = ecmp_batch.rules
    assert rule.match == LpmMatch(field=rule.match.field, prefix=net("2001:db8:2::/64"))
    assert rule.action == GroupAction(group_id=DEFAULT_ECMP_GROUP_ID)


def test_leaf_sid_is_routed_by_spines():
    payload = leaf_spine_payload()
    payload["devices"][LEAF1]["fabric"]["mySid"] = "3:101:2::"
    snapshot = snapshot_of(payload)

    batches = compiler.compute_spine_routes(snapshot, SPINE1)

    assert [r.match.prefix for r in batches[0].rules] == [
        net("2001:db8:1::/64"),
        net("3:101:2::/128"),
    ]


def test_role_partition_with_three_leaves():
    payload = leaf_spine_payload()
    payload["devices"]["device:leaf3"] = {
        "fabric": {"isSpine": False, "myStationMac": "00:aa:00:00:00:03"}
    }
    payload["ports"]["device:leaf3/3"] = {
        "interfaces": [{"name": "leaf3-3", "ips": ["2001:db8:3::ff/64"]}]
    }
    snapshot = snapshot_of(payload)

    leaf_batches = compiler.compute_leaf_routes(snapshot, LEAF1)
    ecmp = [b for b in leaf_batches if b.group_ids == (DEFAULT_ECMP_GROUP_ID,)]
    assert lpm_prefixes(ecmp) == [net("2001:db8:2::/64"), net("2001:db8:3::/64")]

    spine_batches = compiler.compute_spine_routes(snapshot, SPINE1)
    assert lpm_prefixes(spine_batches) == [
        net("2001:db8:1::/64"),
        net("2001:db8:2::/64"),
        net("2001:db8:3::/64"),
    ]


def test_leaf_without_spines_gets_no_ecmp_group():
    payload = leaf_spine_payload()
    del payload["devices"][SPINE1]
    snapshot = snapshot_of(payload)

    assert compiler.compute_leaf_routes(snapshot, LEAF1) == []


def test_host_plan_bridges_and_routes_host():
    payload = leaf_spine_payload(hosts=[HOST_ENTRY])
    snapshot = snapshot_of(payload)
    (host,) = snapshot.hosts()

    bridging, routes = compiler.compute_host_plan(snapshot, host)

    (bridge_rule,) = bridging.rules
    assert bridge_rule.device_id == LEAF1
    assert bridge_rule.table == L2_EXACT_TABLE
    assert bridge_rule.match == ExactMatch(field=ETH_DST_FIELD, value=HOST_MAC)
    assert bridge_rule.action == OutputPortAction(port=3)

    (group,) = routes.groups
    assert group.group_id == mac_to_group_id(HOST_MAC)
    assert group.members == (NextHopAction(dmac=HOST_MAC),)
    (route,) = routes.rules
    assert route.match.prefix == net("2001:db8:1::5/128")
    assert route.action == GroupAction(group_id=group.group_id)


def test_host_without_ipv6_gets_no_routes():
    host = Host(
        mac="AA-BB-CC-00-00-01",
        location=ConnectPoint(LEAF1, 4),
        ips=frozenset({"10.0.0.1"}),
    )

    assert compiler.compute_host_routes(host) is None
    assert compiler.compute_host_bridging_rule(host).match.value == "aa:bb:cc:00:00:01"


def test_leaf_bridging_state():
    snapshot = snapshot_of(leaf_spine_payload())

    clone_batch, broadcast_batch = compiler.compute_bridging_state(snapshot, LEAF1)

    (clone,) = clone_batch.groups
    assert clone.group_id == CPU_CLONE_SESSION_ID
    assert clone.group_type is GroupType.CLONE
    assert clone.members == (OutputPortAction(port=CPU_PORT),)
    assert clone_batch.rules == ()

    (broadcast,) = broadcast_batch.groups
    assert broadcast.group_id == DEFAULT_BROADCAST_GROUP_ID
    assert broadcast.group_type is GroupType.ALL
    assert broadcast.members == (OutputPortAction(port=3),)
    assert [r.table for r in broadcast_batch.rules] == [L2_TERNARY_TABLE] * 2
    assert [r.match for r in broadcast_batch.rules] == [
        TernaryMatch(ETH_DST_FIELD, "ff:ff:ff:ff:ff:ff", "ff:ff:ff:ff:ff:ff"),
        TernaryMatch(ETH_DST_FIELD, "33:33:00:00:00:00", "ff:ff:00:00:00:00"),
    ]
    assert all(
        r.action == MulticastGroupAction(group_id=DEFAULT_BROADCAST_GROUP_ID)
        for r in broadcast_batch.rules
    )


def test_spine_bridging_state_is_clone_only():
    snapshot = snapshot_of(leaf_spine_payload())

    batches = compiler.compute_bridging_state(snapshot, SPINE1)

    assert len(batches) == 1
    assert batches[0].groups[0].group_type is GroupType.CLONE


def test_next_hop_rules_follow_links():
    snapshot = snapshot_of(leaf_spine_payload())

    spine_rules = compiler.compute_next_hop_rules(snapshot, SPINE1)
    assert [(r.match.value, r.action.port) for r in spine_rules] == [
        (LEAF1_MAC, 1),
        (LEAF2_MAC, 2),
    ]

    # No direct link between the leaves.
    leaf_rules = compiler.compute_next_hop_rules(snapshot, LEAF1)
    assert [(r.match.value, r.action.port) for r in leaf_rules] == [(SPINE1_MAC, 1)]


def test_fabric_link_plan_starts_with_my_station():
    snapshot = snapshot_of(leaf_spine_payload())

    batches = compiler.compute_fabric_link_plan(snapshot, SPINE1)

    (station,) = batches[0].rules
    assert station.table == L2_MY_STATION_TABLE
    assert station.match == ExactMatch(field=ETH_DST_FIELD, value=SPINE1_MAC)
    assert batches[-1].rules == tuple(compiler.compute_next_hop_rules(snapshot, SPINE1))


def test_device_plan_is_idempotent():
    payload = leaf_spine_payload(hosts=[HOST_ENTRY])

    first = compiler.compute_device_plan(snapshot_of(payload), LEAF1)
    second = compiler.compute_device_plan(snapshot_of(payload), LEAF1)

    assert first == second
    assert all(batch.device_id == LEAF1 for batch in first)


def test_unconfigured_device_raises_but_peers_compile():
    payload = leaf_spine_payload()
    payload["devices"][LEAF2] = {}
    snapshot = snapshot_of(payload)

    with pytest.raises(ConfigurationError):
        compiler.compute_device_plan(snapshot, LEAF2)

    batches = compiler.compute_device_plan(snapshot, LEAF1)
    assert batches
    assert net("2001:db8:2::/64") not in lpm_prefixes(batches)
