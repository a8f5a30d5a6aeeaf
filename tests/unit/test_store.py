import json
from pathlib import Path

import pytest

from fabric_agent.store import RecordingDeviceStore
from fabric_reconciler.exceptions import InstallError
from fabric_reconciler.pipeline import (
    ETH_DST_FIELD,
    L2_EXACT_TABLE,
    ExactMatch,
    ForwardingRule,
    GroupAction,
    GroupType,
    NextHopAction,
    OutputPortAction,
    ReplicationGroup,
)

OWNER = "test.app"
DEVICE = "device:leaf1"


def bridging_rule(mac, port):
    return ForwardingRule(
        device_id=DEVICE,
        table=L2_EXACT_TABLE,
        match=ExactMatch(field=ETH_DST_FIELD, value=mac),
        action=OutputPortAction(port=port),
    )


def select_group(group_id):
    return ReplicationGroup(
        device_id=DEVICE,
        group_id=group_id,
        group_type=GroupType.SELECT,
        members=(NextHopAction(dmac="00:bb:00:00:00:01"),),
    )


def test_same_key_overwrites_rule():
    store = RecordingDeviceStore()

    store.apply_rules([bridging_rule("aa:bb:cc:dd:ee:ff", 3)], OWNER)
    store.apply_rules([bridging_rule("aa:bb:cc:dd:ee:ff", 4)], OWNER)

    (rule,) = store.list_rules(DEVICE, OWNER)
    assert rule.action == OutputPortAction(port=4)


def test_rules_need_their_group():
    store = RecordingDeviceStore()
    rule = ForwardingRule(
        device_id=DEVICE,
        table="FabricIngress.l3_table",
        match=ExactMatch(field=ETH_DST_FIELD, value="aa:bb:cc:dd:ee:ff"),
        action=GroupAction(group_id=7),
    )

    (failure,) = store.apply_rules([rule], OWNER)
    assert failure.reason == "group 7 not found"

    store.apply_group(select_group(7), OWNER)
    assert store.apply_rules([rule], OWNER) == []


def test_owner_scoped_removal():
    store = RecordingDeviceStore()
    store.apply_rules([bridging_rule("aa:bb:cc:dd:ee:01", 3)], OWNER)
    store.apply_rules([bridging_rule("aa:bb:cc:dd:ee:02", 4)], "other.app")
    store.apply_group(select_group(7), OWNER)

    store.remove_rules_by_owner(DEVICE, OWNER)
    store.remove_group(DEVICE, 7, "other.app")

    assert store.list_rules(DEVICE, OWNER) == []
    assert len(store.list_rules(DEVICE, "other.app")) == 1
    assert store.list_groups(DEVICE, OWNER) == [select_group(7)]


def test_unreachable_device_raises():
    store = RecordingDeviceStore(unreachable=[DEVICE])

    with pytest.raises(InstallError):
        store.apply_group(select_group(7), OWNER)
    with pytest.raises(InstallError):
        store.apply_rules([bridging_rule("aa:bb:cc:dd:ee:01", 3)], OWNER)
    assert store.operations == []


def test_dump_writes_one_file_per_device(tmp_path: Path):
    store = RecordingDeviceStore()
    store.apply_group(select_group(7), OWNER)
    store.apply_rules([bridging_rule("aa:bb:cc:dd:ee:01", 3)], OWNER)

    (written,) = store.dump(tmp_path / "state")

    assert written.name == "device_leaf1.json"
    payload = json.loads(written.read_text())
    assert payload["device"] == DEVICE
    assert payload["groups"] == [
        {
            "id": 7,
            "type": "select",
            "members": [
                {"name": "FabricIngress.set_l2_next_hop", "dmac": "00:bb:00:00:00:01"}
            ],
        }
    ]
    assert payload["rules"][0]["match"] == {
        "type": "exact",
        "field": ETH_DST_FIELD,
        "value": "aa:bb:cc:dd:ee:01",
    }
    assert payload["rules"][0]["action"] == {
        "name": "FabricIngress.set_output_port",
        "port": 3,
    }
