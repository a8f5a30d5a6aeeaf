"""YAML configuration loader for the fabric agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

import yaml


@dataclass
class TopologyConfig:
    path: Path
    interval: float = 5.0
    # None means this instance is master of every device.
    owned_devices: Optional[FrozenSet[str]] = None


@dataclass
class AgentConfig:
    topology: TopologyConfig
    output_dir: Path = Path("/var/lib/fabric-agent")
    app: Dict[str, Any] = field(default_factory=dict)


def _parse_owned(value: Any) -> Optional[FrozenSet[str]]:
    if value is None or value == "all":
        return None
    if isinstance(value, str) or not isinstance(value, list):
        raise ValueError("'owned_devices' must be a list of device ids or 'all'")
    return frozenset(str(device_id) for device_id in value)


def _parse_topology(section: dict) -> TopologyConfig:
    if "path" not in section:
        raise ValueError("'topology' section missing 'path'")
    return TopologyConfig(
        path=Path(section["path"]),
        interval=float(section.get("interval", section.get("poll_interval", 5.0))),
        owned_devices=_parse_owned(section.get("owned_devices")),
    )


def load_config(path: Path) -> AgentConfig:
    data = yaml.safe_load(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("Agent configuration must be a mapping")

    topology_section = data.get("topology")
    if topology_section is None:
        raise ValueError("Configuration missing 'topology' section")
    if not isinstance(topology_section, dict):
        raise ValueError("'topology' section must be a mapping")
    topology = _parse_topology(topology_section)

    app_section = data.get("app") or {}
    if not isinstance(app_section, dict):
        raise ValueError("'app' section must be a mapping")

    config = AgentConfig(topology=topology, app=dict(app_section))
    if "output_dir" in data:
        config.output_dir = Path(data["output_dir"])
    return config
