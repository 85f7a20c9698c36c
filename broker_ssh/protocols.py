"""Protocol interfaces for dependency inversion.

Defines the capabilities the execution core consumes, so the asyncssh
adapters in ``broker_ssh.services.transport`` can be swapped for fakes in
tests or for another transport entirely.

Usage Example:

    from broker_ssh.protocols import SSHConnectionPool

    async def probe(pool: SSHConnectionPool, host: str) -> None:
        conn = await pool.borrow(host)
        try:
            channel = await conn.open_channel()
            ...
        finally:
            await pool.release(host, conn)

Protocol Benefits:
    - Execution core depends on abstractions, not asyncssh
    - Fakes in tests only need the handful of methods listed here
    - @runtime_checkable enables isinstance() checks
"""

from collections.abc import AsyncIterator, Sequence
from typing import Protocol, runtime_checkable


@runtime_checkable
class Channel(Protocol):
    """One command-execution channel opened from a connection.

    A channel is used for exactly one command and closed afterwards.
    """

    async def run(self, command: str) -> None:
        """Issue the command on this channel."""
        ...

    def stdout(self) -> AsyncIterator[str]:
        """Iterate over stdout lines without trailing line breaks."""
        ...

    def stderr(self) -> AsyncIterator[str]:
        """Iterate over stderr lines without trailing line breaks."""
        ...

    def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        ...


@runtime_checkable
class TransferClient(Protocol):
    """File transfer capability of a connection."""

    async def put_files(
        self,
        local_paths: Sequence[str],
        remote_names: Sequence[str] | None,
        remote_dir: str,
        mode: str,
    ) -> None:
        """Upload local files into ``remote_dir`` with permission ``mode``.

        Args:
            local_paths: Paths of local files
            remote_names: Target file names, or None to keep local basenames
            remote_dir: Remote target directory ("" for the default directory)
            mode: Four digit octal string, e.g. "0744"
        """
        ...

    async def put_bytes(
        self, data: bytes, remote_name: str, remote_dir: str, mode: str
    ) -> None:
        """Write ``data`` to ``remote_dir/remote_name`` with permission ``mode``."""
        ...


@runtime_checkable
class Connection(Protocol):
    """Authenticated handle to one remote host."""

    @property
    def is_closed(self) -> bool:
        """Whether the underlying transport has been closed."""
        ...

    async def open_channel(self) -> Channel:
        """Open a fresh channel for one command.

        Raises:
            Exception: If the remote side refuses or the transport fails
        """
        ...

    def create_transfer_client(self) -> TransferClient:
        """Return a client for copying files to this host."""
        ...

    def close(self) -> None:
        """Close the connection."""
        ...


@runtime_checkable
class SSHConnectionPool(Protocol):
    """Keyed pool lending exclusive connections per host address."""

    async def borrow(self, host: str, timeout: float | None = None) -> Connection:
        """Borrow a connection for ``host``.

        Args:
            host: Host address used as the pool key
            timeout: Seconds to wait for a free connection

        Raises:
            PoolAcquireFailure: On exhaustion, timeout or connect failure
        """
        ...

    async def release(self, host: str, connection: Connection) -> None:
        """Return a borrowed connection to the pool."""
        ...

    async def close_all(self) -> None:
        """Close every pooled connection."""
        ...


@runtime_checkable
class LineProcessor(Protocol):
    """Consumer of streamed command output, one call per line."""

    def process(self, line: str, line_number: int) -> None:
        """Handle one line.

        Args:
            line: Line content without trailing line break
            line_number: 1-based line number

        Raises:
            Exception: Logged by the streaming loop, which keeps reading
        """
        ...

    @property
    def lines_processed(self) -> int:
        """Number of lines seen so far."""
        ...


__all__ = [
    "Channel",
    "Connection",
    "LineProcessor",
    "SSHConnectionPool",
    "TransferClient",
]
