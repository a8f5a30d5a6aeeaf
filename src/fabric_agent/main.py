"""Entry point for the standalone fabric agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event

from fabric_app import FabricApplication, ListenerRegistry, load_settings

from .config import load_config
from .store import RecordingDeviceStore
from .topology import InMemoryTopology, StaticMastership
from .watchers import FileTopologyWatcher

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the fabric reconciler agent")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/fabric-agent/agent.yaml"),
        help="Path to the agent configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = load_config(args.config)
    settings = load_settings(overrides=config.app)

    topology = InMemoryTopology(ListenerRegistry())
    mastership = StaticMastership(config.topology.owned_devices)
    store = RecordingDeviceStore()

    app = FabricApplication(
        topology,
        mastership,
        topology,
        store,
        store,
        settings,
    )

    stop_event = Event()
    watcher = FileTopologyWatcher(
        topology=topology,
        path=config.topology.path,
        interval=config.topology.interval,
        stop_event=stop_event,
    )
    # Load the topology before the convergence pass is scheduled.
    try:
        watcher.poll()
    except Exception:  # pragma: no cover - logged below
        LOG.exception("initial poll failed for %s", config.topology.path)

    app.start()
    watcher.start()

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    watcher.join()
    store.dump(config.output_dir)
    app.stop()

    LOG.info("fabric agent stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
