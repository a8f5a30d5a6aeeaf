from fabric_agent.store import RecordingDeviceStore
from fabric_agent.topology import InMemoryTopology, StaticMastership
from fabric_agent.watchers.utils import parse_topology
from fabric_app.events import (
    DeviceEvent,
    DeviceEventType,
    HostEvent,
    HostEventType,
    LinkEvent,
    LinkEventType,
)
from fabric_app.listeners import DeviceListener, HostListener, LinkListener
from fabric_reconciler.driver import FabricDriver
from fabric_reconciler.installer import OrderedInstaller
from fabric_reconciler.pipeline import L3_TABLE
from fabric_reconciler.topology import ConnectPoint, Device, Host, Link

from fabric_topologies import HOST_ENTRY, LEAF1, LEAF2, SPINE1, leaf_spine_payload

OWNER = "test.app"


class InlineQueue:
    """Run submitted work immediately, remembering what was submitted."""

    def __init__(self):
        self.submitted = []

    def submit(self, device_id, fn, *args):
        self.submitted.append((device_id, fn.__name__))
        return fn(*args)


def build(payload=None, owned=None):
    topology = InMemoryTopology()
    topology.apply(parse_topology(payload or leaf_spine_payload()))
    mastership = StaticMastership(owned)
    store = RecordingDeviceStore()
    installer = OrderedInstaller(
        store, store, mastership, OWNER, sleep=lambda _: None
    )
    driver = FabricDriver(topology, topology, installer)
    queue = InlineQueue()
    return (driver, mastership, topology, queue), store


def test_device_listener_relevance():
    args, _ = build(owned=[LEAF1])
    listener = DeviceListener(*args)

    assert listener.is_relevant(DeviceEvent(DeviceEventType.DEVICE_ADDED, Device(LEAF1)))
    assert listener.is_relevant(
        DeviceEvent(DeviceEventType.DEVICE_AVAILABILITY_CHANGED, Device(LEAF1))
    )
    assert not listener.is_relevant(DeviceEvent(DeviceEventType.DEVICE_REMOVED, Device(LEAF1)))
    assert not listener.is_relevant(DeviceEvent(DeviceEventType.DEVICE_ADDED, Device(SPINE1)))


def test_device_listener_sets_up_bridging():
    args, store = build()
    listener = DeviceListener(*args)

    listener.event(DeviceEvent(DeviceEventType.DEVICE_ADDED, Device(LEAF1)))

    assert len(store.list_groups(LEAF1, OWNER)) == 2
    assert len(store.list_rules(LEAF1, OWNER)) == 2


def test_device_listener_skips_device_gone_unavailable():
    payload = leaf_spine_payload()
    payload["devices"][LEAF1]["available"] = False
    args, store = build(payload)
    listener = DeviceListener(*args)

    listener.event(DeviceEvent(DeviceEventType.DEVICE_AVAILABILITY_CHANGED, Device(LEAF1)))

    assert store.operations == []


def test_host_listener_only_handles_added_hosts_on_owned_devices():
    args, _ = build(owned=[LEAF1])
    listener = HostListener(*args)
    host = Host(mac="aa:bb:cc:dd:ee:ff", location=ConnectPoint(LEAF1, 3))
    remote = Host(mac="aa:bb:cc:dd:ee:01", location=ConnectPoint(LEAF2, 3))

    assert listener.is_relevant(HostEvent(HostEventType.HOST_ADDED, host))
    assert not listener.is_relevant(HostEvent(HostEventType.HOST_MOVED, host))
    assert not listener.is_relevant(HostEvent(HostEventType.HOST_REMOVED, host))
    assert not listener.is_relevant(HostEvent(HostEventType.HOST_ADDED, remote))


def test_link_listener_submits_each_owned_endpoint_once():
    args, _ = build(owned=[LEAF1, SPINE1])
    queue = args[3]
    listener = LinkListener(*args)
    link = Link(src=ConnectPoint(LEAF1, 1), dst=ConnectPoint(SPINE1, 1))

    assert listener.is_relevant(LinkEvent(LinkEventType.LINK_ADDED, link))
    listener.event(LinkEvent(LinkEventType.LINK_ADDED, link))

    assert queue.submitted == [
        (LEAF1, "setup_fabric_links"),
        (SPINE1, "setup_fabric_links"),
    ]


def test_link_listener_ignores_links_between_unowned_devices():
    args, _ = build(owned=[SPINE1])
    listener = LinkListener(*args)
    link = Link(src=ConnectPoint(LEAF1, 9), dst=ConnectPoint(LEAF2, 9))

    assert not listener.is_relevant(LinkEvent(LinkEventType.LINK_ADDED, link))
    assert not listener.is_relevant(
        LinkEvent(LinkEventType.LINK_REMOVED, link.reversed())
    )


def test_topology_update_drives_listeners():
    args, store = build()
    _, _, topology, _ = args
    topology.add_listener("host", HostListener(*args))
    topology.add_listener("link", LinkListener(*args))

    topology.apply(parse_topology(leaf_spine_payload(hosts=[HOST_ENTRY])))

    routes = [r for r in store.list_rules(LEAF1, OWNER) if r.table == L3_TABLE]
    assert len(routes) == 1
    assert str(routes[0].match.prefix) == "2001:db8:1::5/128"
