"""Execution facade: borrow a connection, hand out a session, give it back.

Usage Example:

    async def broker_status(session: SSHSession) -> SSHResult:
        return await session.run_command("jps -l", timeout_ms=3000)

    result = await template.execute("10.0.0.12", broker_status)

Commands are opaque shell strings. No escaping or validation is done here;
callers are responsible for building safe commands.
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import TypeVar

from broker_ssh.errors import ExecutionError
from broker_ssh.models import SSHResult
from broker_ssh.protocols import Connection, LineProcessor, SSHConnectionPool
from broker_ssh.services import transfer
from broker_ssh.services.processors import LineHandler, as_line_processor
from broker_ssh.services.runner import SessionRunner

logger = logging.getLogger(__name__)

T = TypeVar("T")

VALIDATE_COMMAND = "date"


class SSHSession:
    """Session-scoped handle over one borrowed connection.

    Every command runs on its own fresh channel, so several commands may be
    issued one after another within the same operation.
    """

    def __init__(
        self,
        runner: SessionRunner,
        connection: Connection,
        host: str,
        default_timeout_ms: int,
    ) -> None:
        self._runner = runner
        self._connection = connection
        self.host = host
        self.default_timeout_ms = default_timeout_ms

    async def run_command(
        self,
        command: str,
        processor: LineProcessor | LineHandler | int | None = None,
        timeout_ms: int | None = None,
    ) -> SSHResult:
        """Run a command and return its result.

        ``run_command(cmd, 3000)`` is shorthand for
        ``run_command(cmd, timeout_ms=3000)``.

        Args:
            command: Shell command
            processor: Per-line consumer of stdout (object or callable). When
                given, the result carries no output.
            timeout_ms: Deadline in milliseconds; defaults to the configured
                operation timeout

        Returns:
            SSHResult; never raises for command-level failures
        """
        if isinstance(processor, int) and not isinstance(processor, bool):
            if timeout_ms is not None:
                raise TypeError("timeout_ms given both positionally and by keyword")
            processor, timeout_ms = None, processor
        return await self._runner.run(
            self._connection,
            self.host,
            command,
            self.default_timeout_ms if timeout_ms is None else timeout_ms,
            as_line_processor(processor),
        )

    async def copy_files(
        self,
        local_paths: Sequence[str],
        remote_dir: str,
        remote_names: Sequence[str] | None = None,
        mode: str = transfer.DEFAULT_MODE,
    ) -> SSHResult:
        """Copy local files into ``remote_dir``."""
        return await transfer.copy_files(
            self._connection, self.host, local_paths, remote_dir, remote_names, mode
        )

    async def copy_bytes(
        self,
        data: bytes,
        remote_file_name: str,
        remote_dir: str,
        mode: str = transfer.DEFAULT_BYTES_MODE,
    ) -> SSHResult:
        """Write ``data`` to ``remote_dir/remote_file_name``."""
        return await transfer.copy_bytes(
            self._connection, self.host, data, remote_file_name, remote_dir, mode
        )

    async def copy_to_directory(
        self,
        local_paths: str | Sequence[str],
        remote_dir: str,
        mode: str = transfer.DEFAULT_MODE,
    ) -> SSHResult:
        return await transfer.copy_to_directory(
            self._connection, self.host, local_paths, remote_dir, mode
        )

    async def copy_to_file(
        self,
        local_path: str,
        remote_file_name: str,
        remote_dir: str,
        mode: str = transfer.DEFAULT_MODE,
    ) -> SSHResult:
        return await transfer.copy_to_file(
            self._connection, self.host, local_path, remote_file_name, remote_dir, mode
        )


class SSHTemplate:
    """Runs caller operations against pooled connections."""

    def __init__(
        self,
        pool: SSHConnectionPool,
        runner: SessionRunner,
        op_timeout_ms: int = 10_000,
        borrow_timeout: float | None = None,
    ) -> None:
        """Initialize template.

        Args:
            pool: Connection pool to borrow from
            runner: Session runner holding the channel-open and command-run pools
            op_timeout_ms: Default command deadline in milliseconds
            borrow_timeout: Seconds to wait for a connection; None uses the
                pool's default
        """
        self.pool = pool
        self.runner = runner
        self.op_timeout_ms = op_timeout_ms
        self.borrow_timeout = borrow_timeout

    @asynccontextmanager
    async def session(self, host: str) -> AsyncIterator[SSHSession]:
        """Borrow a connection to ``host`` for the duration of the block.

        The connection is released exactly once when the block exits,
        whether it returns, raises or is cancelled.

        Raises:
            PoolAcquireFailure: If no connection can be borrowed
        """
        connection = await self.pool.borrow(host, self.borrow_timeout)
        try:
            yield SSHSession(self.runner, connection, host, self.op_timeout_ms)
        finally:
            try:
                await self.pool.release(host, connection)
            except Exception:
                logger.exception("Failed to return connection to pool for %s", host)

    async def execute(self, host: str, operation: Callable[[SSHSession], Awaitable[T]]) -> T:
        """Run ``operation`` with a session bound to a borrowed connection.

        Args:
            host: Host address
            operation: Coroutine function receiving an ``SSHSession``

        Returns:
            Whatever ``operation`` returns

        Raises:
            PoolAcquireFailure: If no connection can be borrowed
            ExecutionError: If ``operation`` raised; the original exception is
                chained as ``__cause__``
        """
        try:
            async with self.session(host) as session:
                return await operation(session)
        except ExecutionError:
            raise
        except Exception as e:
            logger.error("Operation on %s raised: %s", host, e)
            raise ExecutionError(f"SSH err: {e}", host=host, original_error=e) from e

    async def validate(self, host: str) -> bool:
        """Return True if a trivial probe command succeeds on ``host``."""

        async def probe(session: SSHSession) -> SSHResult:
            return await session.run_command(VALIDATE_COMMAND)

        try:
            result = await self.execute(host, probe)
        except ExecutionError as e:
            logger.warning("Validation of %s failed: %s", host, e)
            return False
        return result.success
