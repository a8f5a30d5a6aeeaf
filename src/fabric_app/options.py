"""Configuration options for the fabric reconciler application.

This module registers the oslo.config options the application needs in a
dedicated ``[fabric]`` group and turns them into a plain settings object so
the rest of the code never touches the global config directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from oslo_config import cfg

from fabric_reconciler.installer import GROUP_INSTALLATION_DELAY

FABRIC_GROUP = "fabric"

fabric_opts = [
    cfg.StrOpt('app_name',
               default='fabric.reconciler',
               help='Application identity stamped on every rule and group '
                    'this instance installs. Cleanup only removes state '
                    'carrying this identity.'),
    cfg.FloatOpt('initial_setup_delay',
                 default=2.0,
                 min=0,
                 help='Seconds to wait after start before the full '
                      'convergence pass, bounding discovery jitter.'),
    cfg.FloatOpt('group_installation_delay',
                 default=GROUP_INSTALLATION_DELAY,
                 min=0,
                 help='Seconds to wait between submitting groups and the '
                      'rules that reference them.'),
    cfg.IntOpt('worker_threads',
               default=2,
               min=1,
               help='Number of workers handling host, link and device '
                    'events.'),
    cfg.IntOpt('cleanup_retries',
               default=10,
               min=0,
               help='How many times to poll for leftovers of a previous '
                    'run before starting anyway.'),
    cfg.FloatOpt('cleanup_delay',
                 default=2.0,
                 min=0,
                 help='Seconds between two leftover polls.'),
]


def register_fabric_opts(conf: Optional[cfg.ConfigOpts] = None) -> cfg.ConfigOpts:
    """Register the fabric options with ``conf`` (the global config by default)."""

    conf = conf if conf is not None else cfg.CONF
    conf.register_opts(fabric_opts, group=FABRIC_GROUP)
    return conf


@dataclass(frozen=True)
class ReconcilerSettings:
    app_name: str = "fabric.reconciler"
    initial_setup_delay: float = 2.0
    group_installation_delay: float = GROUP_INSTALLATION_DELAY
    worker_threads: int = 2
    cleanup_retries: int = 10
    cleanup_delay: float = 2.0

    @classmethod
    def from_conf(cls, conf: cfg.ConfigOpts) -> "ReconcilerSettings":
        group = conf[FABRIC_GROUP]
        return cls(
            app_name=group.app_name,
            initial_setup_delay=group.initial_setup_delay,
            group_installation_delay=group.group_installation_delay,
            worker_threads=group.worker_threads,
            cleanup_retries=group.cleanup_retries,
            cleanup_delay=group.cleanup_delay,
        )


def load_settings(
    conf: Optional[cfg.ConfigOpts] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ReconcilerSettings:
    """Build settings from ``conf`` after applying ``overrides``.

    Unknown override keys raise ``ValueError`` so typos in the agent YAML do
    not go unnoticed.
    """

    conf = register_fabric_opts(conf if conf is not None else cfg.ConfigOpts())
    known = {opt.dest for opt in fabric_opts}
    for key, value in (overrides or {}).items():
        if key not in known:
            raise ValueError(f"Unknown fabric option '{key}'")
        conf.set_override(key, value, group=FABRIC_GROUP)
    return ReconcilerSettings.from_conf(conf)
