"""broker_ssh: pooled remote command execution and file transfer for broker hosts."""

from broker_ssh.dependencies import Dependencies
from broker_ssh.errors import (
    CapacityExceeded,
    CommandExecutionFailure,
    CommandTimeout,
    ExecutionError,
    InterruptedDuringWait,
    PoolAcquireFailure,
    SessionOpenFailure,
    SessionOpenTimeout,
    SSHError,
    TransferFailure,
)
from broker_ssh.models import SSHResult
from broker_ssh.services import (
    BaseLineProcessor,
    BufferingLineProcessor,
    CallbackLineProcessor,
    SSHSession,
    SSHTemplate,
)

__all__ = [
    "BaseLineProcessor",
    "BufferingLineProcessor",
    "CallbackLineProcessor",
    "CapacityExceeded",
    "CommandExecutionFailure",
    "CommandTimeout",
    "Dependencies",
    "ExecutionError",
    "InterruptedDuringWait",
    "PoolAcquireFailure",
    "SSHError",
    "SSHResult",
    "SSHSession",
    "SSHTemplate",
    "SessionOpenFailure",
    "SessionOpenTimeout",
    "TransferFailure",
]
