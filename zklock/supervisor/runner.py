import time
import logging
from typing import Callable, Optional

from zklock.config import LockConfig
from zklock.errors import LockHeld
from zklock.models import EXIT_FAILURE, EXIT_OK, LockNode, LockState
from zklock.coordination import CoordinationClient, KazooCoordinationClient, LockManager, Watchdog
from .process import ProcessSupervisor
from .shutdown import ShutdownCoordinator
from .signals import SignalCoordinator

log = logging.getLogger(__name__)


class LockRunner:
    """
    Runs one command under one named lock.

    The sequence is: optional pre-delay, connect, install the signal handlers,
    ensure the root node, acquire the lock, spawn the child, then supervise it
    with the watchdog and the signal listener until it exits or a fatal
    condition aborts the run. The lock stays held (and watched) through the
    optional post-delay.
    """

    def __init__(
        self,
        config: LockConfig,
        client: Optional[CoordinationClient] = None,
        sleep: Callable[[float], None] = time.sleep,
        install_signals: bool = True,
    ):
        """
        :param config: The effective run configuration.
        :param client: An already-connected client; one is created from the config if omitted.
        :param sleep: The function used for the pre-lock delay.
        :param install_signals: Set to False when not running in the main thread.
        """
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._install_signals = install_signals

        self.lock: Optional[LockNode] = None
        self.supervisor: Optional[ProcessSupervisor] = None
        self.watchdog: Optional[Watchdog] = None
        self.shutdown = ShutdownCoordinator()

    def run(self) -> int:
        """
        Executes the full locked run.

        :return int: The process exit code.
        :raises CoordinationError: If ZooKeeper cannot be reached or the root cannot be created.
        """
        config = self.config
        if config.sleep_before > 0:
            log.info(f"Sleep {config.sleep_before} seconds")
            self._sleep(config.sleep_before)

        if self._client is None:
            self._client = KazooCoordinationClient.connect(
                config.zookeeper_hosts, config.session_timeout, config.connect_timeout
            )

        signals = SignalCoordinator(self.shutdown)
        if self._install_signals:
            signals.install()
        try:
            return self._run_locked(signals)
        finally:
            if self._install_signals:
                signals.restore()
            if self._owns_client:
                self._client.close()

    @property
    def state(self) -> LockState:
        """Lock ownership as seen by this run: UNACQUIRED until the lock is taken."""
        if self.lock is None:
            return LockState.UNACQUIRED
        if self.watchdog is None:
            return LockState.HELD
        return self.watchdog.state

    def _run_locked(self, signals: SignalCoordinator) -> int:
        config = self.config
        manager = LockManager(self._client)
        manager.ensure_root(config.root_path)

        try:
            if config.no_wait:
                self.lock = manager.acquire(config.root_path, config.lock_name, config.identity)
            else:
                self.lock = manager.acquire_blocking(
                    config.root_path, config.lock_name, config.identity,
                    timeout=config.wait_timeout or None,
                    cancel=signals.requested,
                )
        except LockHeld as e:
            if signals.requested.is_set():
                log.warning(f"Interrupted while waiting for lock {e.path}. Exit {EXIT_FAILURE}")
            else:
                log.info(f"{e}. Exit {EXIT_FAILURE}")
            return EXIT_FAILURE

        if signals.requested.is_set():
            log.warning(f"Interrupted before the command was started. Exit {EXIT_FAILURE}")
            return EXIT_FAILURE

        self.supervisor = ProcessSupervisor(
            config.command,
            dont_kill=config.dont_kill,
            kill_grace_period=config.kill_grace_period,
            kill_tree=config.kill_tree,
        )
        try:
            self.supervisor.start()
        except OSError as e:
            log.error(f"Failed to start {config.command[0]}: {e}")
            return EXIT_FAILURE

        signals.attach(self.supervisor)
        return self._supervise()

    def _supervise(self) -> int:
        config = self.config
        shutdown = self.shutdown
        self.watchdog = Watchdog(self._client, self.lock, self.supervisor, shutdown, config.poll_interval)

        try:
            self.watchdog.start()
            self.supervisor.watch(shutdown.notify_child_exit)
            shutdown.wait_for_completion()

            if not shutdown.aborted and config.sleep_after > 0:
                log.info(f"Sleep {config.sleep_after} seconds")
                shutdown.hold(config.sleep_after)

            if shutdown.aborted:
                return shutdown.exit_code

            shutdown.finish()
            log.info("done")
            if config.propagate_exit_code:
                returncode = shutdown.returncode
                # Killed by a signal: report it the way a shell would.
                return 128 - returncode if returncode < 0 else returncode
            return EXIT_OK
        finally:
            shutdown.finish()
            self.watchdog.join(timeout=config.poll_interval + 1)
