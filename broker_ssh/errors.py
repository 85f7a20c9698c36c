"""Error taxonomy for remote command execution.

Infrastructure failures (``ExecutionError`` and subclasses) are raised out of
``SSHTemplate.execute``. Every other error type is captured into an
``SSHResult`` as its ``cause`` and returned normally.
"""


class SSHError(Exception):
    """Base class for all broker_ssh errors."""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        command: str | None = None,
        original_error: BaseException | None = None,
    ):
        """Initialize error.

        Args:
            message: Human readable description
            host: Address of the remote host, when known
            command: Command being executed, when relevant
            original_error: Underlying exception that caused the failure
        """
        self.host = host
        self.command = command
        self.original_error = original_error
        super().__init__(message)
        if original_error is not None:
            self.__cause__ = original_error


class ExecutionError(SSHError):
    """Hard failure raised out of the execution facade."""


class PoolAcquireFailure(ExecutionError):
    """A connection could not be borrowed from the pool."""


class SessionOpenTimeout(SSHError):
    """Opening a channel did not finish before the deadline."""


class SessionOpenFailure(SSHError):
    """Opening a channel raised."""


class CapacityExceeded(SSHError):
    """A bounded worker pool rejected a submission because it is full."""


class CommandTimeout(SSHError):
    """A command did not finish before the deadline."""


class CommandExecutionFailure(SSHError):
    """A command produced no stdout lines but wrote to stderr."""

    def __init__(self, stderr: str, host: str | None = None, command: str | None = None):
        self.stderr = stderr
        super().__init__(stderr, host=host, command=command)


class TransferFailure(SSHError):
    """Copying files or bytes to a remote host failed."""


class InterruptedDuringWait(SSHError):
    """A worker task was cancelled while the caller waited on it."""


__all__ = [
    "CapacityExceeded",
    "CommandExecutionFailure",
    "CommandTimeout",
    "ExecutionError",
    "InterruptedDuringWait",
    "PoolAcquireFailure",
    "SSHError",
    "SessionOpenFailure",
    "SessionOpenTimeout",
    "TransferFailure",
]
