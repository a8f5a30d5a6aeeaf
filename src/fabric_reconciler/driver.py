"""Per-device reconciliation driver.

The driver glues the pieces of the core together: it captures a topology
snapshot from the collaborator services, asks the compiler for the batches a
given trigger needs and hands them to the ordered installer.  Lifecycle,
event filtering and worker scheduling live one level up in ``fabric_app``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

from . import compiler
from .installer import InstallReport, OrderedInstaller
from .pipeline import InstallBatch
from .topology import Host, TopologySnapshot

LOG = logging.getLogger(__name__)


@dataclass
class DriverState:
    """Mutable runtime state tracked by the driver."""

    reports: Dict[str, InstallReport] = field(default_factory=dict)


class FabricDriver:
    """Compile and install forwarding state for one device at a time."""

    def __init__(self, topology, config_service, installer: OrderedInstaller) -> None:
        self._topology = topology
        self._config_service = config_service
        self._installer = installer
        self._locks = installer.locks
        self._state = DriverState()

    @property
    def installer(self) -> OrderedInstaller:
        return self._installer

    def snapshot(self) -> TopologySnapshot:
        return TopologySnapshot.capture(self._topology, self._config_service)

    def _require_config(self, device_id: str) -> None:
        # Raises ConfigMissing before anything is compiled.
        self._config_service.get_device_config(device_id)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    def setup_device(self, device_id: str) -> InstallReport:
        """Converge ``device_id`` completely.

        Raises ``ConfigurationError`` before installing anything when the
        device has no fabric config.
        """

        with self._locks.hold(device_id):
            self._require_config(device_id)
            snapshot = self.snapshot()
            batches = compiler.compute_device_plan(snapshot, device_id)
            LOG.info("Setting up %s (%d batches)", device_id, len(batches))
            return self._apply(device_id, batches)

    def setup_bridging(self, device_id: str) -> InstallReport:
        with self._locks.hold(device_id):
            snapshot = self.snapshot()
            batches = compiler.compute_bridging_state(snapshot, device_id)
            LOG.info("Setting up L2 bridging on %s", device_id)
            return self._apply(device_id, batches)

    def setup_host(self, host: Host) -> InstallReport:
        device_id = host.location.device_id
        with self._locks.hold(device_id):
            snapshot = self.snapshot()
            batches = compiler.compute_host_plan(snapshot, host)
            LOG.info(
                "Setting up host %s on %s (port %s) [%s]",
                host.mac,
                device_id,
                host.location.port,
                ", ".join(str(ip) for ip in host.ipv6_addresses),
            )
            return self._apply(device_id, batches)

    def setup_fabric_links(self, device_id: str) -> InstallReport:
        with self._locks.hold(device_id):
            self._require_config(device_id)
            snapshot = self.snapshot()
            batches = compiler.compute_fabric_link_plan(snapshot, device_id)
            LOG.info("Setting up routing and next hops on %s", device_id)
            return self._apply(device_id, batches)

    # ------------------------------------------------------------------
    # Introspection helpers (useful for tests / CLI)
    # ------------------------------------------------------------------
    def last_report(self, device_id: str) -> Optional[InstallReport]:
        return self._state.reports.get(device_id)

    def list_reports(self) -> Dict[str, InstallReport]:
        return dict(self._state.reports)

    def _apply(self, device_id: str, batches: Sequence[InstallBatch]) -> InstallReport:
        report = self._installer.install_all(batches)
        self._state.reports[device_id] = report
        if report.failures:
            LOG.warning(
                "%d install failures on %s", len(report.failures), device_id
            )
        return report
