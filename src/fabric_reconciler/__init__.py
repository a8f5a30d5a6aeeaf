"""Forwarding-state reconciliation core for a P4 leaf-spine fabric.

This package turns a live topology (devices, links, hosts and interface
configuration) into the table entries and replication groups each device
needs for:

* VLAN-free L2 bridging at the edge (my-station, unicast bridging, clone and
  broadcast groups); and
* IPv6 unicast routing across the leaf-spine fabric (host /128 routes,
  per-leaf subnet routes on spines, ECMP towards the spines on leaves and
  SID routes).

The compiler in :mod:`fabric_reconciler.compiler` is pure; the
:class:`fabric_reconciler.installer.OrderedInstaller` is the only place that
writes to devices and it does so groups first.  Topology discovery,
mastership, configuration storage and the device transport are consumed
through the contracts in :mod:`fabric_reconciler.services`.
"""

from .driver import FabricDriver  # noqa: F401
from .exceptions import ConfigurationError, InstallError  # noqa: F401
from .installer import OrderedInstaller  # noqa: F401

__all__ = ["ConfigurationError", "FabricDriver", "InstallError", "OrderedInstaller"]
