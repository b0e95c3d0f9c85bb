import logging
from typing import Callable, Optional, Protocol

from kazoo.client import KazooClient, KazooState
from kazoo.exceptions import KazooException, NodeExistsError as KazooNodeExistsError, NoNodeError as KazooNoNodeError
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.security import OPEN_ACL_UNSAFE

from zklock.errors import CoordinationError, NodeExistsError, NoNodeError

log = logging.getLogger(__name__)

WatchCallback = Callable[[object], None]


class CoordinationClient(Protocol):
    """The subset of a ZooKeeper client that the lock code relies on."""

    def create(self, path: str, value: str = "", ephemeral: bool = False, makepath: bool = False) -> str: ...

    def exists(self, path: str, watch: Optional[WatchCallback] = None) -> bool: ...

    def get(self, path: str) -> str: ...

    def close(self) -> None: ...


class KazooCoordinationClient:
    """
    A CoordinationClient backed by a kazoo session.

    Node values are stored as UTF-8 strings and every node is created with the
    world-open ACL. Kazoo errors are translated into zklock errors so callers
    only ever deal with NodeExistsError, NoNodeError and CoordinationError.
    """

    def __init__(self, hosts: str, session_timeout: float, connect_timeout: float = 15.0):
        """
        :param hosts: Comma-separated ZooKeeper endpoints (e.g., 'zk1:2181,zk2:2181').
        :param session_timeout: Session timeout in seconds.
        :param connect_timeout: How long to wait for the initial connection, in seconds.
        """
        self.hosts = hosts
        self.connect_timeout = connect_timeout
        self._zk = KazooClient(hosts=hosts, timeout=session_timeout, default_acl=OPEN_ACL_UNSAFE)
        self._zk.add_listener(self._on_state_change)

    @classmethod
    def connect(cls, hosts: str, session_timeout: float, connect_timeout: float = 15.0) -> "KazooCoordinationClient":
        """Creates a client and opens its session, raising CoordinationError on failure."""
        client = cls(hosts, session_timeout, connect_timeout)
        client.start()
        return client

    def start(self) -> None:
        log.debug(f"Connecting to ZooKeeper at {self.hosts}...")
        try:
            self._zk.start(timeout=self.connect_timeout)
        except KazooTimeoutError as e:
            self._zk.close()
            raise CoordinationError(f"Could not connect to ZooKeeper at {self.hosts}: {e}") from e
        log.debug(f"Connected to ZooKeeper at {self.hosts}")

    @staticmethod
    def _on_state_change(state: str) -> None:
        # Runs on a kazoo thread; must not block.
        if state == KazooState.LOST:
            log.warning("ZooKeeper session lost. Ephemeral lock nodes are gone.")
        elif state == KazooState.SUSPENDED:
            log.warning("ZooKeeper connection suspended.")
        else:
            log.debug(f"ZooKeeper connection state: {state}")

    def create(self, path: str, value: str = "", ephemeral: bool = False, makepath: bool = False) -> str:
        try:
            return self._zk.create(path, value.encode("utf-8"), ephemeral=ephemeral, makepath=makepath)
        except KazooNodeExistsError as e:
            raise NodeExistsError(path) from e
        except KazooNoNodeError as e:
            raise NoNodeError(path) from e
        except (KazooException, KazooTimeoutError) as e:
            raise CoordinationError(f"Failed to create {path}: {e!r}") from e

    def exists(self, path: str, watch: Optional[WatchCallback] = None) -> bool:
        try:
            return self._zk.exists(path, watch=watch) is not None
        except (KazooException, KazooTimeoutError) as e:
            raise CoordinationError(f"Failed to check {path}: {e!r}") from e

    def get(self, path: str) -> str:
        try:
            data, _ = self._zk.get(path)
        except KazooNoNodeError as e:
            raise NoNodeError(path) from e
        except (KazooException, KazooTimeoutError) as e:
            raise CoordinationError(f"Failed to read {path}: {e!r}") from e
        return (data or b"").decode("utf-8", errors="replace")

    def close(self) -> None:
        """Ends the session, which removes every ephemeral node it owns."""
        try:
            self._zk.stop()
            self._zk.close()
        except KazooException as e:
            log.warning(f"Error while closing ZooKeeper session: {e}")
