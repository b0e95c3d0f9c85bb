from enum import Enum
from dataclasses import dataclass

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_STARTUP_ERROR = 2


class LockState(Enum):
    """Ownership state of the lock as observed by this process."""
    UNACQUIRED = "unacquired"
    HELD = "held"
    LOST = "lost"          # Node vanished or was emptied
    USURPED = "usurped"    # Node carries another identity
    TERMINAL = "terminal"  # Fatal path taken, run is over


def join_path(root: str, name: str) -> str:
    """Joins a root namespace and a lock name into a node path."""
    return f"{root.rstrip('/')}/{name}"


@dataclass(frozen=True)
class LockNode:
    """An acquired lock: where it lives and who we claim to be."""
    root: str
    name: str
    identity: str

    @property
    def path(self) -> str:
        return join_path(self.root, self.name)
