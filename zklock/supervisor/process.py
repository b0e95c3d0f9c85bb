import logging
import subprocess
import threading
import time
from typing import Callable, List, Optional, Set

import psutil

log = logging.getLogger(__name__)


class ProcessSupervisor:
    """
    Owns the child process running the locked command.

    The child inherits this process's stdin, stdout and stderr. Other threads
    never touch the child directly; they only call `terminate()`, which is
    safe to call any number of times from any thread.
    """

    def __init__(
        self,
        command: List[str],
        dont_kill: bool = False,
        kill_grace_period: float = 0.0,
        kill_tree: bool = False,
    ):
        """
        :param command: The program and its arguments.
        :param dont_kill: If True, `terminate()` leaves the child running.
        :param kill_grace_period: Seconds between SIGTERM and SIGKILL; 0 kills at once.
        :param kill_tree: If True, also stop the child's descendants.
        """
        self.command = command
        self.dont_kill = dont_kill
        self.kill_grace_period = kill_grace_period
        self.kill_tree = kill_tree

        self._popen: Optional[subprocess.Popen] = None
        self._proc: Optional[psutil.Process] = None
        self._terminate_lock = threading.Lock()
        self._terminated = False
        self._termination_done = threading.Event()

    @property
    def pid(self) -> Optional[int]:
        return self._popen.pid if self._popen else None

    @property
    def returncode(self) -> Optional[int]:
        return self._popen.returncode if self._popen else None

    @property
    def terminated(self) -> bool:
        return self._terminated

    def start(self) -> int:
        """
        Spawns the command.

        :return int: The child's PID.
        :raises OSError: If the command cannot be executed.
        """
        log.debug(f"Run: {self.command}")
        self._popen = subprocess.Popen(self.command)
        try:
            self._proc = psutil.Process(self._popen.pid)
        except psutil.NoSuchProcess:
            log.debug(f"Child {self._popen.pid} exited before it could be tracked.")
        log.info(f"Started {self.command[0]} with PID: {self._popen.pid}")
        return self._popen.pid

    def wait(self, timeout: Optional[float] = None) -> int:
        """Waits for the child to exit and returns its return code."""
        if self._popen is None:
            raise RuntimeError("Child process has not been started")
        return self._popen.wait(timeout)

    def watch(self, on_exit: Callable[[int], None]) -> threading.Thread:
        """
        Starts a background thread that reaps the child and reports its exit.

        :param on_exit: Called with the child's return code.
        """
        def _reap() -> None:
            returncode = self.wait()
            log.info(f"Child {self.pid} exited with code {returncode}")
            on_exit(returncode)

        reaper = threading.Thread(target=_reap, daemon=True, name="ChildReaperThread")
        reaper.start()
        return reaper

    def terminate(self) -> bool:
        """
        Stops the child, at most once.

        Later callers block until the first call has finished its kill
        sequence, so nobody returns while the child may still be running.

        :return bool: True if this call sent the termination signals.
        """
        with self._terminate_lock:
            first = not self._terminated
            self._terminated = True
        if not first:
            self._termination_done.wait()
            return False

        try:
            return self._terminate_once()
        finally:
            self._termination_done.set()

    def _terminate_once(self) -> bool:
        if self.dont_kill:
            log.warning(f"Leaving child {self.pid} running (dont-kill mode).")
            return False
        if self._proc is None:
            return False

        descendants = self._collect_descendants()
        if self._popen.poll() is not None and not descendants:
            log.debug("Child already gone, nothing to terminate.")
            return False

        targets = {self._proc} | descendants
        if self.kill_grace_period > 0:
            self._send_sigterm(targets)
            targets = self._wait_for_exit(descendants, self.kill_grace_period)
        self._forceful_kill(list(targets))
        return True

    def _collect_descendants(self) -> Set[psutil.Process]:
        """Returns the child's descendants in kill-tree mode, otherwise nothing."""
        if not self.kill_tree:
            return set()
        try:
            return set(self._proc.children(recursive=True))
        except psutil.NoSuchProcess:
            return set()

    def _wait_for_exit(self, descendants: Set[psutil.Process], timeout: float) -> Set[psutil.Process]:
        """
        Waits up to `timeout` seconds for the child and its descendants to exit.

        The child is waited on through Popen so its exit status is never
        reaped from under the reaper thread.

        :return: The processes still alive afterwards.
        """
        deadline = time.monotonic() + timeout
        alive: Set[psutil.Process] = set()
        try:
            self._popen.wait(timeout)
        except subprocess.TimeoutExpired:
            alive.add(self._proc)
        if descendants:
            remaining = max(0.0, deadline - time.monotonic())
            _, still_running = psutil.wait_procs(list(descendants), timeout=remaining)
            alive.update(still_running)
        return alive

    @staticmethod
    def _send_sigterm(processes: Set[psutil.Process]) -> None:
        for proc in processes:
            try:
                log.debug(f"Sending SIGTERM to PID {proc.pid}")
                proc.terminate()
            except psutil.NoSuchProcess:
                log.debug(f"Process {proc.pid} no longer exists, skipping termination.")

    @staticmethod
    def _forceful_kill(processes: List[psutil.Process]) -> None:
        for proc in processes:
            try:
                log.warning(f"Killing PID {proc.pid}.")
                proc.kill()
            except psutil.NoSuchProcess:
                log.debug(f"Process {proc.pid} no longer exists, skipping kill.")
