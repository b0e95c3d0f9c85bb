"""
The coordination package.
Talks to ZooKeeper: connecting, acquiring named locks and watching them.
"""
from .client import CoordinationClient, KazooCoordinationClient
from .lock_manager import LockManager
from .watchdog import Watchdog

__all__ = ['CoordinationClient', 'KazooCoordinationClient', 'LockManager', 'Watchdog']
