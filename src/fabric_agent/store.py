"""In-memory device store standing in for the device programming boundary.

The store keeps what a device would hold after accepting the writes: table
entries keyed by rule key and groups keyed by type and id.  Like a real
device it refuses a table entry pointing at a group it does not hold.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from fabric_reconciler.exceptions import InstallError
from fabric_reconciler.installer import InstallFailure
from fabric_reconciler.pipeline import (
    ExactMatch,
    ForwardingRule,
    GroupAction,
    GroupType,
    LpmMatch,
    MulticastGroupAction,
    NextHopAction,
    NoAction,
    OutputPortAction,
    ReplicationGroup,
    TernaryMatch,
)
from fabric_reconciler.services import FlowRuleService, GroupService

LOG = logging.getLogger(__name__)

GroupKey = Tuple[GroupType, int]


@dataclass(frozen=True)
class Operation:
    """One accepted write, in the order the store received it."""

    kind: str
    device_id: str
    target: str
    owner: str


def _group_key(group_type: GroupType, group_id: int) -> GroupKey:
    return group_type, group_id


def _referenced_group(rule: ForwardingRule) -> Optional[GroupKey]:
    if isinstance(rule.action, GroupAction):
        return _group_key(GroupType.SELECT, rule.action.group_id)
    if isinstance(rule.action, MulticastGroupAction):
        return _group_key(GroupType.ALL, rule.action.group_id)
    return None


class RecordingDeviceStore(FlowRuleService, GroupService):
    """Per-device rule and group tables with an operation log."""

    def __init__(self, unreachable: Optional[Iterable[str]] = None) -> None:
        self._lock = Lock()
        self._rules: Dict[str, Dict[tuple, Tuple[ForwardingRule, str]]] = {}
        self._groups: Dict[str, Dict[GroupKey, Tuple[ReplicationGroup, str]]] = {}
        self.unreachable: Set[str] = set(unreachable or ())
        self.operations: List[Operation] = []

    def _check_reachable(self, device_id: str) -> None:
        if device_id in self.unreachable:
            raise InstallError(device_id, "device unreachable")

    # ------------------------------------------------------------------
    # GroupService
    # ------------------------------------------------------------------
    def apply_group(self, group: ReplicationGroup, owner: str) -> None:
        self._check_reachable(group.device_id)
        with self._lock:
            table = self._groups.setdefault(group.device_id, {})
            table[_group_key(group.group_type, group.group_id)] = (group, owner)
            self.operations.append(
                Operation("group", group.device_id, str(group.group_id), owner)
            )
        LOG.debug("Stored group %s on %s", group.group_id, group.device_id)

    def remove_group(self, device_id: str, group_id: int, owner: str) -> None:
        self._check_reachable(device_id)
        with self._lock:
            table = self._groups.get(device_id, {})
            for key, (group, group_owner) in list(table.items()):
                if group.group_id == group_id and group_owner == owner:
                    del table[key]
                    self.operations.append(
                        Operation("remove-group", device_id, str(group_id), owner)
                    )

    def list_groups(self, device_id: str, owner: str) -> List[ReplicationGroup]:
        with self._lock:
            return [
                group
                for group, group_owner in self._groups.get(device_id, {}).values()
                if group_owner == owner
            ]

    # ------------------------------------------------------------------
    # FlowRuleService
    # ------------------------------------------------------------------
    def apply_rules(self, rules: Iterable[ForwardingRule], owner: str) -> List[InstallFailure]:
        rules = list(rules)
        for device_id in dict.fromkeys(rule.device_id for rule in rules):
            self._check_reachable(device_id)

        failures: List[InstallFailure] = []
        with self._lock:
            for rule in rules:
                ref = _referenced_group(rule)
                groups = self._groups.get(rule.device_id, {})
                if ref is not None and ref not in groups:
                    failures.append(
                        InstallFailure(
                            device_id=rule.device_id,
                            kind="rule",
                            detail=rule.describe(),
                            reason=f"group {ref[1]} not found",
                        )
                    )
                    continue
                self._rules.setdefault(rule.device_id, {})[rule.key] = (rule, owner)
                self.operations.append(Operation("rule", rule.device_id, rule.table, owner))
        return failures

    def list_rules(self, device_id: str, owner: str) -> List[ForwardingRule]:
        with self._lock:
            return [
                rule
                for rule, rule_owner in self._rules.get(device_id, {}).values()
                if rule_owner == owner
            ]

    def remove_rules_by_owner(self, device_id: str, owner: str) -> None:
        self._check_reachable(device_id)
        with self._lock:
            table = self._rules.get(device_id, {})
            for key in [k for k, (_, rule_owner) in table.items() if rule_owner == owner]:
                del table[key]
            self.operations.append(Operation("remove-rules", device_id, "*", owner))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def device_ids(self) -> List[str]:
        with self._lock:
            return sorted(set(self._rules) | set(self._groups))

    def rules(self, device_id: str) -> List[ForwardingRule]:
        with self._lock:
            return [rule for rule, _ in self._rules.get(device_id, {}).values()]

    def groups(self, device_id: str) -> List[ReplicationGroup]:
        with self._lock:
            return [group for group, _ in self._groups.get(device_id, {}).values()]

    def dump(self, output_dir: Path) -> List[Path]:
        """Write one ``<device>.json`` file per device into ``output_dir``."""

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        written: List[Path] = []
        for device_id in self.device_ids():
            payload = {
                "device": device_id,
                "groups": [group_to_dict(g) for g in self.groups(device_id)],
                "rules": [rule_to_dict(r) for r in self.rules(device_id)],
            }
            target = output_dir / f"{device_id.replace(':', '_')}.json"
            target.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n")
            LOG.info("Wrote state of %s to %s", device_id, target)
            written.append(target)
        return written


# ----------------------------------------------------------------------
# JSON helpers
# ----------------------------------------------------------------------
def match_to_dict(match) -> Dict[str, Any]:
    if isinstance(match, ExactMatch):
        return {"type": "exact", "field": match.field, "value": match.value}
    if isinstance(match, TernaryMatch):
        return {
            "type": "ternary",
            "field": match.field,
            "value": match.value,
            "mask": match.mask,
        }
    if isinstance(match, LpmMatch):
        return {"type": "lpm", "field": match.field, "prefix": str(match.prefix)}
    raise TypeError(f"Unsupported match: {match!r}")


def action_to_dict(action) -> Dict[str, Any]:
    if isinstance(action, NoAction):
        return {"name": action.name}
    if isinstance(action, OutputPortAction):
        return {"name": action.name, "port": action.port}
    if isinstance(action, NextHopAction):
        return {"name": action.name, "dmac": action.dmac}
    if isinstance(action, GroupAction):
        return {"group": action.group_id}
    if isinstance(action, MulticastGroupAction):
        return {"name": action.name, "group": action.group_id}
    raise TypeError(f"Unsupported action: {action!r}")


def rule_to_dict(rule: ForwardingRule) -> Dict[str, Any]:
    return {
        "table": rule.table,
        "match": match_to_dict(rule.match),
        "action": action_to_dict(rule.action),
        "priority": rule.priority,
    }


def group_to_dict(group: ReplicationGroup) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": group.group_id,
        "type": group.group_type.value,
        "members": [action_to_dict(m) for m in group.members],
    }
    if group.table is not None:
        data["table"] = group.table
    if group.action_profile is not None:
        data["action_profile"] = group.action_profile
    return data
