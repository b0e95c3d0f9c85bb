"""
Test: Lock acquisition over ZooKeeper

This test validates the LockManager implementation:
1. Root creation is idempotent, including under a creation race
2. Root creation failures other than "already exists" are fatal
3. Acquisition creates an ephemeral node holding the identity
4. Contested acquisition fails fast with LockHeld naming the owner
5. Concurrent acquisitions on one name: exactly one wins
6. The lock frees itself when the owning session ends
7. Opt-in waiting acquires once the holder releases, and honours its timeout

Run with: pytest tests/test_lock_manager.py
"""

import threading
import time

import pytest

from zklock.coordination import LockManager
from zklock.errors import CoordinationError, LockHeld, NodeExistsError
from zklock.models import LockNode


def test_ensure_root_creates_missing_root(zookeeper, client):
    """Test that a missing root node is created as a persistent empty node."""
    LockManager(client).ensure_root("/zklock")

    assert zookeeper.value("/zklock") == ""
    client.close()
    assert zookeeper.value("/zklock") == "", "Root must survive the session"


def test_ensure_root_creates_nested_root(zookeeper, client):
    """Test that intermediate parents of a nested root are created too."""
    LockManager(client).ensure_root("/ops/locks")

    assert zookeeper.value("/ops") == ""
    assert zookeeper.value("/ops/locks") == ""


def test_ensure_root_is_idempotent(zookeeper, client):
    """Test that an existing root is left alone."""
    manager = LockManager(client)
    manager.ensure_root("/zklock")
    manager.ensure_root("/zklock")

    assert [call for call in client.calls if call[0] == "create"] == [("create", "/zklock")]


def test_ensure_root_tolerates_creation_race(client):
    """Test that losing the root creation race to another process is not an error."""
    client.create_errors.append(NodeExistsError("/zklock"))

    LockManager(client).ensure_root("/zklock")


def test_ensure_root_propagates_other_errors(client):
    """Test that any other root creation failure is fatal."""
    client.create_errors.append(CoordinationError("not authorized"))

    with pytest.raises(CoordinationError):
        LockManager(client).ensure_root("/zklock")


def test_concurrent_first_startups_never_fail(zookeeper):
    """Test that many processes racing to create a missing root all succeed."""
    errors = []
    barrier = threading.Barrier(8)

    def start():
        barrier.wait()
        try:
            LockManager(zookeeper.session()).ensure_root("/zklock")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=start) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert zookeeper.value("/zklock") == ""


def test_acquire_creates_ephemeral_node(zookeeper, client):
    """Test that acquiring an unclaimed lock stores our identity in an ephemeral node."""
    manager = LockManager(client)
    manager.ensure_root("/zklock")

    lock = manager.acquire("/zklock", "job1", "host-a")

    assert lock == LockNode(root="/zklock", name="job1", identity="host-a")
    assert lock.path == "/zklock/job1"
    assert zookeeper.value("/zklock/job1") == "host-a"


def test_acquire_held_lock_fails_fast(zookeeper):
    """Test that a contested acquisition fails at once and reports the holder."""
    first = zookeeper.session()
    second = zookeeper.session()
    LockManager(first).ensure_root("/zklock")
    LockManager(first).acquire("/zklock", "job1", "host-a")

    started = time.monotonic()
    with pytest.raises(LockHeld) as excinfo:
        LockManager(second).acquire("/zklock", "job1", "host-b")

    assert time.monotonic() - started < 0.5, "Contention must not wait"
    assert excinfo.value.path == "/zklock/job1"
    assert excinfo.value.owner == "host-a"


def test_acquire_other_errors_are_coordination_errors(client):
    """Test that failures other than contention surface as CoordinationError."""
    LockManager(client).ensure_root("/zklock")
    client.create_errors.append(CoordinationError("connection loss"))

    with pytest.raises(CoordinationError):
        LockManager(client).acquire("/zklock", "job1", "host-a")


def test_acquire_without_root_is_coordination_error(client):
    """Test that acquiring under a missing root is reported as a coordination failure."""
    with pytest.raises(CoordinationError):
        LockManager(client).acquire("/missing", "job1", "host-a")


def test_mutual_exclusion_under_contention(zookeeper):
    """Test that of many concurrent attempts on one name exactly one succeeds."""
    LockManager(zookeeper.session()).ensure_root("/zklock")
    winners, losers = [], []
    barrier = threading.Barrier(10)

    def attempt(identity):
        manager = LockManager(zookeeper.session())
        barrier.wait()
        try:
            manager.acquire("/zklock", "job1", identity)
            winners.append(identity)
        except LockHeld:
            losers.append(identity)

    threads = [threading.Thread(target=attempt, args=(f"host-{i}",)) for i in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(winners) == 1
    assert len(losers) == 9
    assert zookeeper.value("/zklock/job1") == winners[0]


def test_lock_freed_when_session_ends(zookeeper):
    """Test that a crashed owner's lock can be acquired once its session is gone."""
    owner = zookeeper.session()
    LockManager(owner).ensure_root("/zklock")
    LockManager(owner).acquire("/zklock", "job1", "host-a")

    owner.close()

    lock = LockManager(zookeeper.session()).acquire("/zklock", "job1", "host-b")
    assert lock.identity == "host-b"
    assert zookeeper.value("/zklock/job1") == "host-b"


def test_acquire_blocking_waits_for_release(zookeeper):
    """Test that opt-in waiting acquires the lock after the holder releases it."""
    owner = zookeeper.session()
    LockManager(owner).ensure_root("/zklock")
    LockManager(owner).acquire("/zklock", "job1", "host-a")

    timer = threading.Timer(0.2, owner.close)
    timer.start()
    started = time.monotonic()
    lock = LockManager(zookeeper.session()).acquire_blocking("/zklock", "job1", "host-b", timeout=5)
    timer.join()

    assert time.monotonic() - started >= 0.15
    assert lock.identity == "host-b"
    assert zookeeper.value("/zklock/job1") == "host-b"


def test_acquire_blocking_times_out(zookeeper):
    """Test that waiting gives up with LockHeld once the timeout expires."""
    owner = zookeeper.session()
    LockManager(owner).ensure_root("/zklock")
    LockManager(owner).acquire("/zklock", "job1", "host-a")

    with pytest.raises(LockHeld) as excinfo:
        LockManager(zookeeper.session()).acquire_blocking("/zklock", "job1", "host-b", timeout=0.2)

    assert excinfo.value.owner == "host-a"
    assert zookeeper.value("/zklock/job1") == "host-a"


def test_acquire_blocking_can_be_cancelled(zookeeper):
    """Test that setting the cancel event stops the wait."""
    owner = zookeeper.session()
    LockManager(owner).ensure_root("/zklock")
    LockManager(owner).acquire("/zklock", "job1", "host-a")
    cancel = threading.Event()
    threading.Timer(0.1, cancel.set).start()

    with pytest.raises(LockHeld):
        LockManager(zookeeper.session()).acquire_blocking("/zklock", "job1", "host-b", cancel=cancel)
