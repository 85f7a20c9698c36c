"""Data models for broker_ssh."""

from broker_ssh.models.result import SSHResult
from broker_ssh.models.ssh import PooledConnection, SSHHost

__all__ = [
    "PooledConnection",
    "SSHHost",
    "SSHResult",
]
