"""Event-driven integration layer around the fabric reconciler core.

The core in :mod:`fabric_reconciler` knows how to compile and install state
for one device.  This package adds what a long running control application
needs on top: topology event primitives, a listener registry, listeners that
filter events for relevance and mastership and queue the resulting work, and
the start/stop lifecycle with its delayed convergence pass and cleanup.
"""

from .app import FabricApplication, LifecycleError, LifecycleState  # noqa: F401
from .events import DeviceEvent, HostEvent, LinkEvent  # noqa: F401
from .options import ReconcilerSettings, load_settings  # noqa: F401
from .registry import ListenerRegistry  # noqa: F401

__all__ = [
    "DeviceEvent",
    "FabricApplication",
    "HostEvent",
    "LifecycleError",
    "LifecycleState",
    "LinkEvent",
    "ListenerRegistry",
    "ReconcilerSettings",
    "load_settings",
]
