import logging
import threading
from typing import Optional

log = logging.getLogger(__name__)


class ShutdownCoordinator:
    """
    The shared end-of-run signal between the main flow and background threads.

    The watchdog and the signal listener never exit the process themselves:
    they call `abort()`, which records the exit code (first caller wins) and
    sets `done` so every other loop stops too. The main flow waits here for
    either the child to exit or an abort.
    """

    def __init__(self) -> None:
        self.done = threading.Event()
        self.child_exited = threading.Event()
        self._wakeup = threading.Event()
        self._lock = threading.Lock()
        self._exit_code: Optional[int] = None
        self._reason: Optional[str] = None
        self._returncode: Optional[int] = None

    @property
    def aborted(self) -> bool:
        return self._exit_code is not None

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    @property
    def returncode(self) -> Optional[int]:
        """The child's return code, once it has exited."""
        return self._returncode

    def abort(self, exit_code: int, reason: str) -> bool:
        """
        Ends the run immediately with the given exit code.

        :param exit_code: The process exit code to report.
        :param reason: A human-readable reason, logged once.
        :return bool: True if this call won, False if the run was already aborted.
        """
        with self._lock:
            if self._exit_code is not None:
                log.debug(f"Ignoring abort ({reason}); already aborting: {self._reason}")
                return False
            self._exit_code = exit_code
            self._reason = reason
        log.error(f"Aborting with exit code {exit_code}: {reason}")
        self.done.set()
        self._wakeup.set()
        return True

    def notify_child_exit(self, returncode: int) -> None:
        self._returncode = returncode
        self.child_exited.set()
        self._wakeup.set()

    def wait_for_completion(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the child exits or the run is aborted."""
        return self._wakeup.wait(timeout)

    def hold(self, seconds: float) -> bool:
        """
        Sleeps for the post-run delay unless an abort cuts it short.

        :return bool: True if the full delay elapsed without an abort.
        """
        self.done.wait(seconds)
        return not self.aborted

    def finish(self) -> None:
        """Marks a normal end of the run, stopping the background loops."""
        self.done.set()
        self._wakeup.set()
