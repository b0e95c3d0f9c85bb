import sys
import threading
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from zklock.config import LockConfig
from zklock.errors import NodeExistsError, NoNodeError


class FakeZooKeeper:
    """
    An in-memory ZooKeeper ensemble.

    Node creation is atomic under a single lock, ephemeral nodes belong to the
    session that created them and vanish when it closes, and exists-watches
    fire once on the next change or deletion of the node.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.nodes: Dict[str, Tuple[str, Optional["FakeCoordinationClient"]]] = {"/": ("", None)}
        self.watches: Dict[str, List[Callable[[object], None]]] = {}

    def session(self) -> "FakeCoordinationClient":
        return FakeCoordinationClient(self)

    def _fire(self, path: str, event: str) -> None:
        for callback in self.watches.pop(path, []):
            callback(event)

    def set(self, path: str, value: str) -> None:
        """Overwrites a node's value, as another party would."""
        with self.lock:
            _, owner = self.nodes[path]
            self.nodes[path] = (value, owner)
        self._fire(path, "CHANGED")

    def delete(self, path: str) -> None:
        with self.lock:
            self.nodes.pop(path, None)
        self._fire(path, "DELETED")

    def value(self, path: str) -> Optional[str]:
        with self.lock:
            node = self.nodes.get(path)
        return node[0] if node else None


class FakeCoordinationClient:
    """One session against a FakeZooKeeper."""

    def __init__(self, zookeeper: FakeZooKeeper):
        self.zookeeper = zookeeper
        self.closed = False
        self.get_errors: List[Exception] = []
        self.create_errors: List[Exception] = []
        self.calls: List[Tuple[str, str]] = []

    @staticmethod
    def _parent(path: str) -> str:
        return path.rsplit("/", 1)[0] or "/"

    def create(self, path: str, value: str = "", ephemeral: bool = False, makepath: bool = False) -> str:
        self.calls.append(("create", path))
        if self.create_errors:
            raise self.create_errors.pop(0)
        zk = self.zookeeper
        with zk.lock:
            if path in zk.nodes:
                raise NodeExistsError(path)
            parent = self._parent(path)
            if parent not in zk.nodes:
                if not makepath:
                    raise NoNodeError(parent)
                parts = [p for p in parent.split("/") if p]
                for i in range(1, len(parts) + 1):
                    zk.nodes.setdefault("/" + "/".join(parts[:i]), ("", None))
            zk.nodes[path] = (value, self if ephemeral else None)
        zk._fire(path, "CREATED")
        return path

    def exists(self, path: str, watch: Optional[Callable[[object], None]] = None) -> bool:
        self.calls.append(("exists", path))
        zk = self.zookeeper
        with zk.lock:
            found = path in zk.nodes
            if watch is not None:
                zk.watches.setdefault(path, []).append(watch)
        return found

    def get(self, path: str) -> str:
        self.calls.append(("get", path))
        if self.get_errors:
            raise self.get_errors.pop(0)
        with self.zookeeper.lock:
            if path not in self.zookeeper.nodes:
                raise NoNodeError(path)
            return self.zookeeper.nodes[path][0]

    def close(self) -> None:
        """Ends the session, removing every ephemeral node it owns."""
        zk = self.zookeeper
        with zk.lock:
            owned = [path for path, (_, owner) in zk.nodes.items() if owner is self]
        for path in owned:
            zk.delete(path)
        self.closed = True


@pytest.fixture
def zookeeper() -> FakeZooKeeper:
    return FakeZooKeeper()


@pytest.fixture
def client(zookeeper: FakeZooKeeper) -> FakeCoordinationClient:
    return zookeeper.session()


def python_command(code: str) -> List[str]:
    """A command running a short Python snippet in a child interpreter."""
    return [sys.executable, "-c", code]


@pytest.fixture
def make_config():
    def _make_config(command: List[str], **overrides) -> LockConfig:
        values = dict(
            lock_name="job1",
            command=command,
            root_path="/zklock",
            identity="host-a",
            no_wait=True,
            poll_interval=0.05,
            sleep_before=0,
            sleep_after=0,
            dont_kill=False,
            kill_grace_period=0,
            kill_tree=False,
            propagate_exit_code=False,
            debug=False,
        )
        values.update(overrides)
        return LockConfig(**values)
    return _make_config


