"""Lifecycle of the fabric reconciler application.

The application owns the listeners, the worker pool and the delayed full
convergence pass.  It moves through ``STOPPED -> STARTING -> RUNNING ->
STOPPING -> STOPPED``; every collaborator is passed in explicitly.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from fabric_reconciler.driver import FabricDriver
from fabric_reconciler.exceptions import ConfigurationError, FabricError
from fabric_reconciler.installer import DeviceLocks, OrderedInstaller

from .listeners import DeviceListener, HostListener, LinkListener, TopologyListener
from .options import ReconcilerSettings
from .workers import WorkQueue

LOG = logging.getLogger(__name__)


class LifecycleState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class LifecycleError(RuntimeError):
    """Raised on an invalid start/stop transition."""


class FabricApplication:
    """Keep the forwarding state of owned devices converged with the topology."""

    def __init__(
        self,
        topology,
        mastership,
        config_service,
        flow_rules,
        groups,
        settings: Optional[ReconcilerSettings] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self._topology = topology
        self._mastership = mastership
        self._flow_rules = flow_rules
        self._groups = groups
        self._settings = settings or ReconcilerSettings()
        self._sleep = sleep
        self._timer_factory = timer_factory

        self._locks = DeviceLocks()
        installer = OrderedInstaller(
            flow_rules,
            groups,
            mastership,
            self._settings.app_name,
            settle_delay=self._settings.group_installation_delay,
            locks=self._locks,
            sleep=sleep,
        )
        self._driver = FabricDriver(topology, config_service, installer)

        self._state = LifecycleState.STOPPED
        self._state_lock = threading.Lock()
        self._full_pass_lock = threading.RLock()
        self._queue: Optional[WorkQueue] = None
        self._timer: Optional[threading.Timer] = None
        self._listener_names: List[str] = []

    @property
    def app_id(self) -> str:
        return self._settings.app_name

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def driver(self) -> FabricDriver:
        return self._driver

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        self._transition(LifecycleState.STOPPED, LifecycleState.STARTING)

        try:
            # Wait to remove flows and groups from previous executions.
            self.wait_previous_cleanup()

            self._queue = WorkQueue(self._locks, self._settings.worker_threads)
            for name, listener in self._build_listeners(self._queue):
                self._topology.add_listener(name, listener)
                self._listener_names.append(name)
        except Exception:
            self._set_state(LifecycleState.STOPPED)
            raise

        # Enter RUNNING before the timer can fire.
        self._set_state(LifecycleState.RUNNING)

        # Schedule set up for all devices.
        self._timer = self._timer_factory(
            self._settings.initial_setup_delay, self._scheduled_full_pass
        )
        self._timer.daemon = True
        self._timer.start()

        LOG.info("Started %s", self.app_id)

    def stop(self) -> None:
        self._transition(LifecycleState.RUNNING, LifecycleState.STOPPING)

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for name in self._listener_names:
            self._topology.remove_listener(name)
        self._listener_names = []
        if self._queue is not None:
            self._queue.shutdown(wait=False)
            self._queue = None

        # A running full pass stops at its next device; clean up after it.
        with self._full_pass_lock:
            self.cleanup()
        self._set_state(LifecycleState.STOPPED)
        LOG.info("Stopped %s", self.app_id)

    def _transition(self, expected: LifecycleState, target: LifecycleState) -> None:
        with self._state_lock:
            if self._state is not expected:
                raise LifecycleError(
                    f"cannot move to {target.value} while {self._state.value}"
                )
            self._state = target

    def _set_state(self, state: LifecycleState) -> None:
        with self._state_lock:
            self._state = state

    def _build_listeners(self, queue: WorkQueue) -> Sequence[Tuple[str, TopologyListener]]:
        args = (self._driver, self._mastership, self._topology, queue)
        return (
            (f"{self.app_id}.device", DeviceListener(*args)),
            (f"{self.app_id}.host", HostListener(*args)),
            (f"{self.app_id}.link", LinkListener(*args)),
        )

    # ------------------------------------------------------------------
    # Convergence
    # ------------------------------------------------------------------
    def _scheduled_full_pass(self) -> None:
        try:
            self.run_full_pass(only_while_running=True)
        except Exception:
            LOG.exception("Full convergence pass failed")

    def run_full_pass(self, only_while_running: bool = False) -> List[str]:
        """Set up every available device this instance is master of.

        Only one pass runs at a time.  A device without config is reported
        and skipped; the others still converge.  A pass started while the
        application is running, or with ``only_while_running``, stops before
        its next device once the application leaves that state.  Returns the
        ids of the devices that were set up.
        """

        with self._full_pass_lock:
            interruptible = only_while_running or self._state is LifecycleState.RUNNING
            converged: List[str] = []
            for device in self._topology.get_devices():
                if interruptible and self._state is not LifecycleState.RUNNING:
                    LOG.info("Full pass interrupted by shutdown of %s", self.app_id)
                    break
                device_id = device.device_id
                if not device.available:
                    continue
                if not self._mastership.is_local_master(device_id):
                    continue
                try:
                    self._driver.setup_device(device_id)
                except ConfigurationError as exc:
                    LOG.error("Cannot set up %s: %s", device_id, exc)
                    continue
                converged.append(device_id)
            LOG.info("Full pass converged %d devices", len(converged))
            return converged

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------
    def _owned_device_ids(self) -> List[str]:
        return [
            d.device_id
            for d in self._topology.get_devices()
            if self._mastership.is_local_master(d.device_id)
        ]

    def has_leftovers(self) -> bool:
        owner = self.app_id
        return any(
            self._flow_rules.list_rules(device_id, owner)
            or self._groups.list_groups(device_id, owner)
            for device_id in self._owned_device_ids()
        )

    def wait_previous_cleanup(self) -> bool:
        """Poll until no state of a previous run remains on owned devices."""

        retries = self._settings.cleanup_retries
        while retries > 0:
            if not self.has_leftovers():
                return True
            LOG.info(
                "Waiting to remove flows and groups from previous execution of %s...",
                self.app_id,
            )
            self._sleep(self._settings.cleanup_delay)
            retries -= 1
        if self.has_leftovers():
            LOG.warning("State from a previous execution of %s is still present", self.app_id)
            return False
        return True

    def cleanup(self) -> List[str]:
        """Remove everything this application installed on owned devices."""

        cleaned: List[str] = []
        for device in self._topology.get_devices():
            device_id = device.device_id
            if not self._mastership.is_local_master(device_id):
                continue
            if self._cleanup_device(device_id):
                cleaned.append(device_id)
        return cleaned

    def _still_master(self, device_id: str) -> bool:
        if self._mastership.is_local_master(device_id):
            return True
        LOG.info("Not master for %s anymore, stopping cleanup", device_id)
        return False

    def _cleanup_device(self, device_id: str) -> bool:
        """Return False if ownership of ``device_id`` was lost midway."""

        owner = self.app_id
        LOG.info("Cleaning up %s on %s...", owner, device_id)
        if not self._still_master(device_id):
            return False
        try:
            self._flow_rules.remove_rules_by_owner(device_id, owner)
        except FabricError as exc:
            LOG.error("Failed to remove rules of %s from %s: %s", owner, device_id, exc)

        try:
            groups = list(self._groups.list_groups(device_id, owner))
        except FabricError as exc:
            LOG.error("Failed to list groups of %s on %s: %s", owner, device_id, exc)
            return True
        for group in groups:
            if not self._still_master(device_id):
                return False
            try:
                self._groups.remove_group(device_id, group.group_id, owner)
            except FabricError as exc:
                LOG.error(
                    "Failed to remove group %s from %s: %s", group.group_id, device_id, exc
                )
        return True
