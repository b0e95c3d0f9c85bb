import logging
import threading
from typing import TYPE_CHECKING, Optional

from zklock.errors import CoordinationError, NodeExistsError, NoNodeError
from zklock.models import EXIT_FAILURE, LockNode, LockState

if TYPE_CHECKING:
    from zklock.supervisor.process import ProcessSupervisor
    from zklock.supervisor.shutdown import ShutdownCoordinator
    from .client import CoordinationClient

log = logging.getLogger(__name__)


class Watchdog:
    """
    Verifies, once per poll interval, that this process still owns its lock.

    A vanished or emptied node is re-created once under the same identity.
    A node carrying another identity, or a failed re-creation, is fatal: the
    child is terminated and the run is aborted with a nonzero exit code.
    """

    def __init__(
        self,
        client: "CoordinationClient",
        lock: LockNode,
        supervisor: "ProcessSupervisor",
        shutdown: "ShutdownCoordinator",
        poll_interval: float = 1.0,
    ):
        self._client = client
        self.lock = lock
        self._supervisor = supervisor
        self._shutdown = shutdown
        self.poll_interval = poll_interval
        self.state = LockState.HELD
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True, name="LockWatchdogThread")
        self._thread.start()
        log.debug(f"Watchdog started for {self.lock.path} (interval {self.poll_interval}s)")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._shutdown.done.wait(self.poll_interval):
            self.check()
        log.debug(f"Watchdog for {self.lock.path} stopped.")

    def check(self) -> LockState:
        """Runs a single ownership check and returns the resulting state."""
        if self.state == LockState.TERMINAL:
            return self.state

        path = self.lock.path
        try:
            value = self._client.get(path)
        except NoNodeError:
            value = ""
        except CoordinationError as e:
            # Transient; the service should recover before the next tick.
            log.warning(f"Could not read lock {path}: {e}")
            return self.state

        if not value:
            self.state = LockState.LOST
            log.warning(f"Lock {path} disappeared. Trying to re-acquire...")
            return self._reacquire()

        if value != self.lock.identity:
            self.state = LockState.USURPED
            return self._fatal(f"Lock {path} re-acquired by another host {value}")

        return self.state

    def _reacquire(self) -> LockState:
        path = self.lock.path
        try:
            self._client.create(path, self.lock.identity, ephemeral=True)
        except NodeExistsError:
            try:
                owner = self._client.get(path) or "unknown"
            except CoordinationError:
                owner = "unknown"
            return self._fatal(f"Lock {path} was taken by {owner} before it could be re-acquired")
        except CoordinationError as e:
            return self._fatal(f"Failed to re-acquire lock {path}: {e}")

        self.state = LockState.HELD
        log.info(f"Lock {path} re-acquired")
        return self.state

    def _fatal(self, reason: str) -> LockState:
        self.state = LockState.TERMINAL
        self._supervisor.terminate()
        self._shutdown.abort(EXIT_FAILURE, reason)
        return self.state
