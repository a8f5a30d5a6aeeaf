#!/usr/bin/env python3
"""Render per-device fabric install plans from a topology file."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Sequence

REPO_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fabric_agent.store import group_to_dict, rule_to_dict  # noqa: E402
from fabric_agent.watchers.utils import TopologyData, parse_topology  # noqa: E402
from fabric_reconciler import compiler  # noqa: E402
from fabric_reconciler.exceptions import ConfigurationError  # noqa: E402
from fabric_reconciler.pipeline import InstallBatch  # noqa: E402
from fabric_reconciler.topology import TopologySnapshot  # noqa: E402


LOG = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--topology",
        type=Path,
        default=Path("deploy/fabric/topology.json"),
        help="Path to the netcfg style topology file",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("deploy/fabric/plans"),
        help="Directory where one <device>.plan.json per device is written",
    )
    parser.add_argument(
        "--device",
        action="append",
        default=[],
        help="Only render this device (may be repeated)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args()


def load_topology(path: Path) -> TopologyData:
    with path.open() as fh:
        return parse_topology(json.load(fh))


def build_snapshot(data: TopologyData) -> TopologySnapshot:
    return TopologySnapshot(
        devices=data.devices.values(),
        links=data.links,
        hosts=data.hosts.values(),
        interfaces=data.interfaces,
        configs=data.configs,
    )


def plan_to_dict(batches: Sequence[InstallBatch]) -> List[Dict[str, Any]]:
    return [
        {
            "groups": [group_to_dict(g) for g in batch.groups],
            "rules": [rule_to_dict(r) for r in batch.rules],
        }
        for batch in batches
    ]


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    snapshot = build_snapshot(load_topology(args.topology))
    selected = set(args.device)
    args.output_dir.mkdir(parents=True, exist_ok=True)

    failed = 0
    for device in snapshot.available_devices():
        device_id = device.device_id
        if selected and device_id not in selected:
            continue
        try:
            batches = compiler.compute_device_plan(snapshot, device_id)
        except ConfigurationError as exc:
            LOG.error("Cannot render %s: %s", device_id, exc)
            failed += 1
            continue
        target = args.output_dir / f"{device_id.replace(':', '_')}.plan.json"
        target.write_text(json.dumps(plan_to_dict(batches), indent=2) + "\n")
        LOG.info("Rendered %d batches for %s to %s", len(batches), device_id, target)

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
