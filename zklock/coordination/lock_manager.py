import time
import logging
import threading
from typing import TYPE_CHECKING, Optional

from zklock.errors import CoordinationError, LockHeld, NodeExistsError, NoNodeError
from zklock.models import LockNode, join_path

if TYPE_CHECKING:
    from .client import CoordinationClient

log = logging.getLogger(__name__)


class LockManager:
    """
    Acquires named locks as ephemeral nodes under a persistent root.

    Mutual exclusion rests entirely on the atomic create of the coordination
    service: whoever creates `<root>/<name>` first owns the lock until its
    session ends.
    """

    def __init__(self, client: "CoordinationClient"):
        self._client = client

    def ensure_root(self, path: str) -> None:
        """
        Makes sure the persistent root node exists.

        A concurrent creation by another process is not an error.

        :param path: The root namespace path (e.g., '/zklock').
        :raises CoordinationError: If the root can neither be found nor created.
        """
        if self._client.exists(path):
            return
        try:
            self._client.create(path, "", ephemeral=False, makepath=True)
            log.info(f"Created root node {path}")
        except NodeExistsError:
            log.debug(f"Root node {path} was created concurrently by another process.")

    def read_owner(self, path: str) -> Optional[str]:
        """Best-effort read of the identity stored in a lock node."""
        try:
            return self._client.get(path) or None
        except CoordinationError:
            return None

    def acquire(self, root: str, name: str, identity: str) -> LockNode:
        """
        Attempts a single atomic ephemeral create of the lock node.

        :param root: The root namespace path.
        :param name: The lock name.
        :param identity: The value stored in the node, naming this owner.
        :return LockNode: The acquired lock.
        :raises LockHeld: If the node already exists.
        :raises CoordinationError: On any other failure.
        """
        path = join_path(root, name)
        try:
            self._client.create(path, identity, ephemeral=True)
        except NodeExistsError:
            raise LockHeld(path, self.read_owner(path)) from None
        except NoNodeError as e:
            raise CoordinationError(f"Cannot create {path}: parent node is missing") from e

        log.info(f"Lock {path} acquired as {identity}")
        return LockNode(root=root, name=name, identity=identity)

    def acquire_blocking(
        self,
        root: str,
        name: str,
        identity: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> LockNode:
        """
        Acquires the lock, waiting for the current holder to release it.

        Each contested attempt sets an exists-watch on the lock node and sleeps
        until the watch fires, then retries the atomic create. Only used when
        waiting is explicitly requested; `acquire` is the default.

        :param timeout: Give up after this many seconds (None waits forever).
        :param cancel: An event that aborts the wait when set.
        :raises LockHeld: If the timeout expires or the wait is cancelled.
        """
        path = join_path(root, name)
        deadline = time.monotonic() + timeout if timeout else None

        while True:
            try:
                return self.acquire(root, name, identity)
            except LockHeld as held:
                changed = threading.Event()
                if not self._client.exists(path, watch=lambda event: changed.set()):
                    # Released between our create and the watch being set.
                    continue

                log.info(f"Lock {path} is held by {held.owner or 'unknown owner'}. Waiting for release...")
                while not changed.is_set():
                    if cancel is not None and cancel.is_set():
                        raise LockHeld(path, held.owner) from None
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        log.info(f"Gave up waiting for lock {path} after {timeout} seconds.")
                        raise LockHeld(path, held.owner) from None
                    changed.wait(0.5 if remaining is None else min(0.5, remaining))
