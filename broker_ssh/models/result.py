"""Result envelope for command and transfer operations."""

from dataclasses import dataclass


@dataclass
class SSHResult:
    """Outcome of a remote command or transfer.

    On success ``output`` may carry captured text (or be None). On failure
    ``cause`` holds the error and ``output`` is None.
    """

    success: bool
    output: str | None = None
    cause: BaseException | None = None

    @classmethod
    def ok(cls, output: str | None = None) -> "SSHResult":
        """Build a success result, optionally carrying output."""
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, cause: BaseException) -> "SSHResult":
        """Build a failure result carrying its cause."""
        return cls(success=False, cause=cause)

    def __bool__(self) -> bool:
        return self.success

    def raise_for_failure(self) -> "SSHResult":
        """Raise the failure cause, or return self on success.

        Raises:
            BaseException: The stored cause when the result is a failure
        """
        if not self.success:
            if self.cause is not None:
                raise self.cause
            raise RuntimeError("command failed without a recorded cause")
        return self
