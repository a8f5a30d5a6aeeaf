import pytest

from fabric_agent.topology import InMemoryTopology, StaticMastership
from fabric_agent.watchers.utils import parse_topology
from fabric_app import ListenerRegistry
from fabric_app.events import (
    DeviceEvent,
    DeviceEventType,
    HostEvent,
    HostEventType,
    LinkEvent,
    LinkEventType,
)
from fabric_app.listeners import TopologyListener
from fabric_reconciler.config import DeviceRole
from fabric_reconciler.exceptions import ConfigMissing

from fabric_topologies import HOST_ENTRY, LEAF1, LEAF2, SPINE1, leaf_spine_payload


class CatchAll(TopologyListener):
    def __init__(self, event_class, log):
        self.event_class = event_class
        self.log = log

    def is_relevant(self, event):
        return True

    def event(self, event):
        self.log.append(event)


def recording_topology():
    log = []
    registry = ListenerRegistry()
    for cls in (DeviceEvent, LinkEvent, HostEvent):
        registry.register(cls.__name__, CatchAll(cls, log))
    return InMemoryTopology(registry), log


def test_events_are_ordered_devices_links_hosts():
    topology, log = recording_topology()

    events = topology.apply(parse_topology(leaf_spine_payload(hosts=[HOST_ENTRY])))

    assert events == log
    kinds = [type(e) for e in events]
    assert kinds == [DeviceEvent] * 3 + [LinkEvent] * 4 + [HostEvent]


def test_availability_host_move_and_removal_events():
    topology, log = recording_topology()
    topology.apply(parse_topology(leaf_spine_payload(hosts=[HOST_ENTRY])))
    log.clear()

    payload = leaf_spine_payload(
        hosts=[dict(HOST_ENTRY, location=f"{LEAF1}/4")],
        links=[{"src": f"{LEAF1}/1", "dst": f"{SPINE1}/1"}],
    )
    payload["devices"][LEAF2]["available"] = False
    topology.apply(parse_topology(payload))

    assert [e.type for e in log] == [
        DeviceEventType.DEVICE_AVAILABILITY_CHANGED,
        LinkEventType.LINK_REMOVED,
        LinkEventType.LINK_REMOVED,
        HostEventType.HOST_MOVED,
    ]
    assert not topology.is_available(LEAF2)

    topology.apply(parse_topology({"devices": {}}))
    assert [e.type for e in log[4:]].count(DeviceEventType.DEVICE_REMOVED) == 3
    assert log[-1].type is HostEventType.HOST_REMOVED


def test_config_service_view():
    topology = InMemoryTopology()
    topology.apply(parse_topology(leaf_spine_payload()))

    assert topology.get_device_config(SPINE1).role is DeviceRole.SPINE
    assert sorted(topology.get_device_configs()) == [LEAF1, LEAF2, SPINE1]
    with pytest.raises(ConfigMissing):
        topology.get_device_config("device:unknown")


def test_static_mastership():
    everything = StaticMastership()
    assert everything.is_local_master(LEAF1)

    mastership = StaticMastership([LEAF1])
    assert mastership.is_local_master(LEAF1)
    assert not mastership.is_local_master(SPINE1)

    mastership.set_master(LEAF1, False)
    mastership.set_master(SPINE1, True)
    assert not mastership.is_local_master(LEAF1)
    assert mastership.is_local_master(SPINE1)

    with pytest.raises(ValueError):
        everything.set_master(LEAF1, False)
