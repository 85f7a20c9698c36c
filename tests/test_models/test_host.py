"""Tests for SSH host models."""

from unittest.mock import MagicMock

from broker_ssh.models import PooledConnection, SSHHost


def test_endpoint() -> None:
    host = SSHHost(address="10.0.0.1", user="mq", port=2222)

    assert host.endpoint == "mq@10.0.0.1:2222"


def test_defaults() -> None:
    host = SSHHost(address="10.0.0.1")

    assert host.user == "root"
    assert host.port == 22
    assert host.password is None
    assert host.identity_file is None


def test_pooled_connection_staleness() -> None:
    conn = MagicMock()
    conn.is_closed = False
    pooled = PooledConnection(connection=conn)

    assert pooled.is_stale is False
    conn.is_closed = True
    assert pooled.is_stale is True
