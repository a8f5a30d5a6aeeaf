"""Apply install batches to devices, groups strictly before dependent rules.

Devices reject a table entry that points at a group they do not hold yet, so
every group of a batch is submitted before any rule of the same batch.  Group
installation is acknowledged asynchronously by the device boundary; lacking a
completion signal the installer waits a fixed settling delay between the two
phases.  The delay is constant regardless of group size or device load, so a
slow device can still see a rule before its group.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List

from .exceptions import InstallError
from .pipeline import ForwardingRule, InstallBatch

LOG = logging.getLogger(__name__)

GROUP_INSTALLATION_DELAY = 0.5


@dataclass(frozen=True)
class InstallFailure:
    """One rule or group the device boundary refused."""

    device_id: str
    kind: str
    detail: str
    reason: str


@dataclass
class InstallReport:
    """Outcome of one or more batches."""

    groups_installed: int = 0
    rules_installed: int = 0
    failures: List[InstallFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.skipped

    def merge(self, other: "InstallReport") -> "InstallReport":
        self.groups_installed += other.groups_installed
        self.rules_installed += other.rules_installed
        self.failures.extend(other.failures)
        self.skipped.extend(other.skipped)
        return self


class DeviceLocks:
    """Lazily created re-entrant lock per device id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, device_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(device_id)
            if lock is None:
                lock = self._locks[device_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, device_id: str) -> Iterator[None]:
        with self.get(device_id):
            yield


class OrderedInstaller:
    """Submit groups then rules for a batch, gated by mastership.

    Ownership is checked immediately before every submission, never cached:
    mastership can move between enumerating a device and writing to it.
    Failures are reported one by one and never roll back the rest of the
    batch.
    """

    def __init__(
        self,
        flow_rules,
        groups,
        mastership,
        owner: str,
        *,
        settle_delay: float = GROUP_INSTALLATION_DELAY,
        locks: DeviceLocks | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._flow_rules = flow_rules
        self._groups = groups
        self._mastership = mastership
        self._owner = owner
        self._settle_delay = settle_delay
        self._locks = locks or DeviceLocks()
        self._sleep = sleep

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def locks(self) -> DeviceLocks:
        return self._locks

    def install(self, batch: InstallBatch) -> InstallReport:
        report = InstallReport()
        with self._locks.hold(batch.device_id):
            submitted = self._install_groups(batch, report)
            if submitted is None:
                return report
            if submitted and batch.depends_on_groups():
                # Wait for groups to be inserted.
                self._sleep(self._settle_delay)
            self._install_rules(batch.device_id, batch.rules, report)
        return report

    def install_all(self, batches: Iterable[InstallBatch]) -> InstallReport:
        report = InstallReport()
        for batch in batches:
            report.merge(self.install(batch))
        return report

    def _owned(self, device_id: str, report: InstallReport) -> bool:
        if self._mastership.is_local_master(device_id):
            return True
        LOG.debug("Not master for %s anymore, skipping install", device_id)
        report.skipped.append(device_id)
        return False

    def _install_groups(self, batch: InstallBatch, report: InstallReport) -> int | None:
        """Return the number of groups submitted, ``None`` if ownership was lost."""

        submitted = 0
        for group in batch.groups:
            if not self._owned(batch.device_id, report):
                return None
            try:
                self._groups.apply_group(group, self._owner)
            except InstallError as exc:
                failure = InstallFailure(
                    device_id=group.device_id,
                    kind="group",
                    detail=f"group {group.group_id} ({group.group_type.value})",
                    reason=exc.detail,
                )
                self._report_failure(failure, report)
                continue
            submitted += 1
            report.groups_installed += 1
        return submitted

    def _install_rules(
        self, device_id: str, rules: Iterable[ForwardingRule], report: InstallReport
    ) -> None:
        rules = list(rules)
        if not rules or not self._owned(device_id, report):
            return
        try:
            failures = list(self._flow_rules.apply_rules(rules, self._owner))
        except InstallError as exc:
            failures = [
                InstallFailure(
                    device_id=device_id,
                    kind="rule",
                    detail=rule.describe(),
                    reason=exc.detail,
                )
                for rule in rules
            ]
        for failure in failures:
            self._report_failure(failure, report)
        report.rules_installed += len(rules) - len(failures)

    @staticmethod
    def _report_failure(failure: InstallFailure, report: InstallReport) -> None:
        LOG.error(
            "Failed to install %s on %s: %s (%s)",
            failure.kind,
            failure.device_id,
            failure.detail,
            failure.reason,
        )
        report.failures.append(failure)
