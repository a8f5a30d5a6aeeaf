"""Worker pool running reconciliation work off the notification path."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from fabric_reconciler.exceptions import ConfigurationError
from fabric_reconciler.installer import DeviceLocks

LOG = logging.getLogger(__name__)


class WorkQueue:
    """Fixed-size pool where work for one device never interleaves.

    Each job runs under its device's lock, so two batches for the same device
    are applied one after the other while different devices proceed in
    parallel.
    """

    def __init__(self, locks: DeviceLocks, num_threads: int = 2) -> None:
        self._locks = locks
        self._executor = ThreadPoolExecutor(
            max_workers=num_threads, thread_name_prefix="fabric-worker"
        )

    def submit(
        self, device_id: str, fn: Callable[..., Any], *args: Any
    ) -> Optional[Future]:
        try:
            return self._executor.submit(self._run, device_id, fn, *args)
        except RuntimeError:
            LOG.debug("Work queue shut down, dropping work for %s", device_id)
            return None

    def shutdown(self, wait: bool = False) -> None:
        # Queued work is cancelled, in-flight work is not awaited.
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def _run(self, device_id: str, fn: Callable[..., Any], *args: Any) -> Any:
        with self._locks.hold(device_id):
            try:
                return fn(*args)
            except ConfigurationError as exc:
                LOG.error("Cannot reconcile %s: %s", device_id, exc)
            except Exception:
                LOG.exception("Reconciliation work for %s failed", device_id)
        return None
