"""
The Supervisor package.
Manages the lifecycle of the locked child process.

This package contains the LockRunner and its helper modules, which together
handle spawning, watching, signalling and terminating the child.
"""
from .process import ProcessSupervisor
from .runner import LockRunner
from .shutdown import ShutdownCoordinator
from .signals import SignalCoordinator

__all__ = ['LockRunner', 'ProcessSupervisor', 'ShutdownCoordinator', 'SignalCoordinator']
