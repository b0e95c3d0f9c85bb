import argparse
import logging
from dataclasses import dataclass
from typing import List, Optional

import zklock.settings as default_settings

log = logging.getLogger(__name__)


@dataclass
class LockConfig:
    """
    The effective configuration for a single locked run.

    Values follow a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from the environment / `.env` file (read by `settings.py`).
    3. Overrides from the command line.
    """
    lock_name: str
    command: List[str]
    zookeeper_hosts: str = default_settings.ZOOKEEPER_HOSTS
    root_path: str = default_settings.ROOT_PATH
    identity: str = default_settings.IDENTITY
    session_timeout_ms: int = default_settings.SESSION_TIMEOUT_MS
    connect_timeout: float = default_settings.CONNECT_TIMEOUT
    no_wait: bool = default_settings.NO_WAIT
    wait_timeout: Optional[float] = default_settings.WAIT_TIMEOUT or None
    poll_interval: float = default_settings.POLL_INTERVAL
    sleep_before: float = default_settings.SLEEP_BEFORE
    sleep_after: float = default_settings.SLEEP_AFTER
    dont_kill: bool = default_settings.DONT_KILL
    kill_grace_period: float = default_settings.KILL_GRACE_PERIOD
    kill_tree: bool = default_settings.KILL_TREE
    propagate_exit_code: bool = default_settings.PROPAGATE_EXIT_CODE
    debug: bool = default_settings.DEBUG

    def __post_init__(self) -> None:
        if not self.lock_name or "/" in self.lock_name:
            raise ValueError(f"Invalid lock name '{self.lock_name}': must be non-empty and contain no '/'")
        if not self.command:
            raise ValueError("A command to run is required")
        if not self.root_path.startswith("/"):
            raise ValueError(f"Root path '{self.root_path}' must be absolute")
        if self.poll_interval <= 0:
            raise ValueError("Poll interval must be positive")

    @property
    def session_timeout(self) -> float:
        """Session timeout in seconds, as the ZooKeeper client expects it."""
        return self.session_timeout_ms / 1000.0

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "LockConfig":
        """
        Builds a config from parsed command-line arguments.

        Options left at None on the namespace keep their settings default.

        :param args: The namespace produced by the zklock argument parser.
        :return LockConfig: The merged configuration.
        """
        overrides = {
            "zookeeper_hosts": args.zookeeper,
            "root_path": args.prefix,
            "identity": args.identity,
            "session_timeout_ms": args.session_timeout,
            "wait_timeout": args.wait_timeout,
            "poll_interval": args.poll_interval,
            "sleep_before": args.sleep_before,
            "sleep_after": args.sleep_after,
            "kill_grace_period": args.kill_grace,
        }
        flags = {
            "dont_kill": args.dont_kill,
            "kill_tree": args.kill_tree,
            "propagate_exit_code": args.propagate_exit_code,
            "debug": args.debug,
        }

        values = {key: value for key, value in overrides.items() if value is not None}
        # Flags can only switch a behaviour on; the environment decides otherwise.
        values.update({key: True for key, value in flags.items() if value})

        if args.wait:
            values["no_wait"] = False
        elif args.no_wait:
            values["no_wait"] = True

        config = cls(lock_name=args.lock_name, command=list(args.command), **values)
        log.debug(f"Effective configuration: {config}")
        return config
