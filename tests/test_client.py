"""
Test: Kazoo-backed coordination client

This test validates the KazooCoordinationClient with kazoo mocked out:
1. Nodes are created with UTF-8 values and the requested flags
2. Kazoo errors are translated into zklock errors
3. A connection timeout becomes a CoordinationError

Run with: pytest tests/test_client.py
"""

from unittest import mock

import pytest
from kazoo.exceptions import ConnectionLoss, NodeExistsError as KazooNodeExistsError, NoNodeError as KazooNoNodeError
from kazoo.handlers.threading import KazooTimeoutError

from zklock.coordination import KazooCoordinationClient
from zklock.errors import CoordinationError, NodeExistsError, NoNodeError


@pytest.fixture
def kazoo():
    with mock.patch("zklock.coordination.client.KazooClient") as kazoo_class:
        yield kazoo_class.return_value


@pytest.fixture
def client(kazoo):
    return KazooCoordinationClient("zk1:2181,zk2:2181", session_timeout=4.0)


def test_create_encodes_value(client, kazoo):
    """Test that create passes the UTF-8 value and flags through to kazoo."""
    kazoo.create.return_value = "/zklock/job1"

    assert client.create("/zklock/job1", "host-a", ephemeral=True) == "/zklock/job1"
    kazoo.create.assert_called_once_with("/zklock/job1", b"host-a", ephemeral=True, makepath=False)


def test_create_translates_errors(client, kazoo):
    """Test that kazoo create errors surface as zklock errors."""
    kazoo.create.side_effect = KazooNodeExistsError()
    with pytest.raises(NodeExistsError):
        client.create("/zklock/job1", "host-a", ephemeral=True)

    kazoo.create.side_effect = KazooNoNodeError()
    with pytest.raises(NoNodeError):
        client.create("/zklock/job1", "host-a", ephemeral=True)

    kazoo.create.side_effect = ConnectionLoss()
    with pytest.raises(CoordinationError):
        client.create("/zklock/job1", "host-a", ephemeral=True)


def test_get_decodes_value(client, kazoo):
    """Test that get returns the node value as text, and missing nodes raise NoNodeError."""
    kazoo.get.return_value = (b"host-a", object())
    assert client.get("/zklock/job1") == "host-a"

    kazoo.get.return_value = (None, object())
    assert client.get("/zklock/job1") == ""

    kazoo.get.side_effect = KazooNoNodeError()
    with pytest.raises(NoNodeError):
        client.get("/zklock/job1")


def test_exists_registers_watch(client, kazoo):
    """Test that exists reports presence and forwards the watch callback."""
    def watch(event):
        pass

    kazoo.exists.return_value = None
    assert client.exists("/zklock/job1", watch=watch) is False
    kazoo.exists.assert_called_once_with("/zklock/job1", watch=watch)


def test_connect_timeout_is_coordination_error(kazoo):
    """Test that failing to connect in time raises CoordinationError and cleans up."""
    kazoo.start.side_effect = KazooTimeoutError("Connection time-out")

    with pytest.raises(CoordinationError):
        KazooCoordinationClient.connect("zk1:2181", session_timeout=4.0, connect_timeout=0.1)
    kazoo.close.assert_called_once()


def test_close_stops_session(client, kazoo):
    client.close()

    kazoo.stop.assert_called_once()
    kazoo.close.assert_called_once()
