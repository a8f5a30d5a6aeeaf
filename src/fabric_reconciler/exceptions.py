"""Error taxonomy shared by the reconciler and its collaborators."""

from __future__ import annotations


class FabricError(Exception):
    """Base class for every error raised by the fabric reconciler."""


class ConfigurationError(FabricError):
    """A device under reconciliation lacks role/station MAC/SID config.

    Fatal for that device's pass only. Routing depends on knowing spine from
    leaf so the value is never defaulted.
    """

    def __init__(self, device_id: str, field: str = "fabric config") -> None:
        super().__init__(f"Missing {field} for device {device_id}")
        self.device_id = device_id
        self.field = field


class ConfigMissing(ConfigurationError):
    """Raised by a config service when no device config is stored at all."""


class TopologyIncompleteError(FabricError):
    """An expected link or subnet has not been discovered yet.

    The compiler never propagates this: the work is simply skipped and picked
    up again by the next topology event.
    """


class InstallError(FabricError):
    """A device rejected a rule or group, or the transport failed."""

    def __init__(self, device_id: str, detail: str) -> None:
        super().__init__(f"{device_id}: {detail}")
        self.device_id = device_id
        self.detail = detail
