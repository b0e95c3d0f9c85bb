import queue
import signal
import logging
import threading
from typing import TYPE_CHECKING, Dict, Optional

from zklock.models import EXIT_FAILURE

if TYPE_CHECKING:
    from .process import ProcessSupervisor
    from .shutdown import ShutdownCoordinator

log = logging.getLogger(__name__)

_STOP = object()


class SignalCoordinator:
    """
    Turns SIGINT and SIGTERM into termination requests.

    SIGINT is the soft level: the child is terminated and the run ends through
    the normal completion path once the child has exited. SIGTERM is the hard
    level: the child is terminated and the run is aborted with exit code 1
    without waiting for the child or the post-run delay.

    The handlers only queue the signal number; a listener thread does the work,
    so nothing blocking ever runs inside a signal handler.

    The coordinator is installed before the lock is taken, so a signal can
    arrive before there is a child. It then only sets `requested`, which
    cancels a lock wait and stops the runner from spawning; a child attached
    after that point is terminated at once.
    """

    SOFT_SIGNALS = (signal.SIGINT,)
    HARD_SIGNALS = (signal.SIGTERM,)

    def __init__(self, shutdown: "ShutdownCoordinator", supervisor: Optional["ProcessSupervisor"] = None):
        self._shutdown = shutdown
        self._supervisor = supervisor
        self._attach_lock = threading.Lock()
        self.requested = threading.Event()
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._previous: Dict[int, object] = {}
        self._thread: Optional[threading.Thread] = None

    def install(self) -> None:
        """
        Registers the handlers and starts the listener thread.

        Must be called from the main thread.
        """
        for signum in self.SOFT_SIGNALS + self.HARD_SIGNALS:
            self._previous[signum] = signal.signal(signum, self.handle_signal)
        self._thread = threading.Thread(target=self._listen, daemon=True, name="SignalListenerThread")
        self._thread.start()

    def restore(self) -> None:
        """Reinstates the previous handlers and stops the listener."""
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()
        self._queue.put(_STOP)
        if self._thread is not None:
            self._thread.join(timeout=1)

    def handle_signal(self, signum: int, frame=None) -> None:
        self._queue.put(signum)

    def _listen(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            self.dispatch(item)

    def attach(self, supervisor: "ProcessSupervisor") -> None:
        """Hands over the spawned child, terminating it if a signal already came in."""
        with self._attach_lock:
            self._supervisor = supervisor
            pending = self.requested.is_set()
        if pending:
            log.info("Signal received while starting; terminating the child.")
            supervisor.terminate()

    def dispatch(self, signum: int) -> None:
        """Applies the urgency level of a received signal."""
        name = signal.Signals(signum).name
        log.info(f"{name} received")
        with self._attach_lock:
            self.requested.set()
            supervisor = self._supervisor
        if supervisor is not None:
            supervisor.terminate()
        if signum in self.HARD_SIGNALS:
            self._shutdown.abort(EXIT_FAILURE, f"{name} received")
