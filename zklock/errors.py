"""
Exceptions raised by the zklock package.

Everything that talks to ZooKeeper translates client library errors into
these types, so the lock and watchdog code never depends on kazoo directly.
"""

from typing import Optional


class ZKLockError(Exception):
    """Base class for all zklock errors."""


class CoordinationError(ZKLockError):
    """Any failure reported by the coordination service (network, ACL, timeout...)."""


class NodeExistsError(CoordinationError):
    """The node being created already exists."""

    def __init__(self, path: str):
        super().__init__(f"Node {path} already exists")
        self.path = path


class NoNodeError(CoordinationError):
    """The node being read does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Node {path} does not exist")
        self.path = path


class LockHeld(ZKLockError):
    """
    The lock is held by someone else.

    :param path: The lock node path.
    :param owner: The identity stored in the lock node, if it could be read.
    """

    def __init__(self, path: str, owner: Optional[str] = None):
        message = f"Lock {path} is held"
        if owner:
            message += f" by {owner}"
        super().__init__(message)
        self.path = path
        self.owner = owner
