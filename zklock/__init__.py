"""
zklock runs a command while holding a named lock in ZooKeeper.

The lock is an ephemeral node under a persistent root; a watchdog keeps
checking it while the command runs and kills the command if the lock is lost
or taken over by another host.
"""

__version__ = "0.1.0"
