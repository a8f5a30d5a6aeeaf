"""Abstract interfaces for the collaborators the reconciler depends on.

Topology discovery, mastership, configuration storage and the device
programming transport all live outside this package.  The reconciler only
talks to them through the narrow contracts below.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping, Sequence

from .config import DeviceConfig
from .pipeline import ForwardingRule, ReplicationGroup
from .topology import Device, Host, Interface, Link


class TopologyService(ABC):
    """Read access to the discovered topology plus change notifications."""

    @abstractmethod
    def get_devices(self) -> Sequence[Device]:
        """Return every known device, available or not."""

    @abstractmethod
    def get_links(self) -> Sequence[Link]:
        """Return every discovered directed link."""

    @abstractmethod
    def get_hosts(self) -> Sequence[Host]:
        """Return every learnt host."""

    @abstractmethod
    def get_interfaces(self) -> Sequence[Interface]:
        """Return the configured interfaces of all devices."""

    @abstractmethod
    def is_available(self, device_id: str) -> bool:
        """Return whether ``device_id`` is currently available."""

    @abstractmethod
    def add_listener(self, name: str, listener) -> None:
        """Subscribe ``listener`` to device, host and link events."""

    @abstractmethod
    def remove_listener(self, name: str) -> None:
        """Drop the listener registered as ``name``."""


class MastershipService(ABC):
    @abstractmethod
    def is_local_master(self, device_id: str) -> bool:
        """Return whether this instance may write to ``device_id``."""


class NetworkConfigService(ABC):
    @abstractmethod
    def get_device_config(self, device_id: str) -> DeviceConfig:
        """Return the config of ``device_id`` or raise ``ConfigMissing``."""

    @abstractmethod
    def get_device_configs(self) -> Mapping[str, DeviceConfig]:
        """Return every stored device config keyed by device id."""


class FlowRuleService(ABC):
    @abstractmethod
    def apply_rules(self, rules: Sequence[ForwardingRule], owner: str) -> Sequence:
        """Apply ``rules`` tagged with ``owner``.

        Returns the per-rule failures (``InstallFailure``); an empty sequence
        means every rule was accepted.
        """

    @abstractmethod
    def list_rules(self, device_id: str, owner: str) -> Sequence[ForwardingRule]:
        """Return the rules ``owner`` installed on ``device_id``."""

    @abstractmethod
    def remove_rules_by_owner(self, device_id: str, owner: str) -> None:
        """Remove every rule ``owner`` installed on ``device_id``."""


class GroupService(ABC):
    @abstractmethod
    def apply_group(self, group: ReplicationGroup, owner: str) -> None:
        """Install ``group``; raises ``InstallError`` when rejected."""

    @abstractmethod
    def remove_group(self, device_id: str, group_id: int, owner: str) -> None:
        """Remove group ``group_id`` owned by ``owner`` from ``device_id``."""

    @abstractmethod
    def list_groups(self, device_id: str, owner: str) -> Sequence[ReplicationGroup]:
        """Return the groups ``owner`` installed on ``device_id``."""
