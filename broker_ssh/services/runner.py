"""Session runner: one channel per command, bounded by a deadline.

Each command goes through two pooled stages:

1. OPENING: ``connection.open_channel()`` runs on the channel-open pool.
2. RUNNING: the command is issued and its output streamed on the
   command-run pool.

The caller waits on each stage with whatever remains of the command's
deadline. On timeout the worker task is cancelled, but the remote process
may keep running after the local call has returned.

The channel is closed on every path out of RUNNING.
"""

import asyncio
import logging
from typing import Any

from broker_ssh.errors import (
    CapacityExceeded,
    CommandExecutionFailure,
    CommandTimeout,
    InterruptedDuringWait,
    SessionOpenFailure,
    SessionOpenTimeout,
    SSHError,
)
from broker_ssh.models import SSHResult
from broker_ssh.protocols import Channel, Connection, LineProcessor
from broker_ssh.services.processors import BufferingLineProcessor, process_stream
from broker_ssh.services.workers import BoundedWorkerPool

logger = logging.getLogger(__name__)


def _retrieve_outcome(task: "asyncio.Task[Any]") -> None:
    # Abandoned tasks: mark exceptions as retrieved so asyncio does not warn.
    if not task.cancelled():
        task.exception()


def _close_late_channel(task: "asyncio.Task[Channel]") -> None:
    # An open that completes after its waiter gave up must not leak a channel.
    if task.cancelled() or task.exception() is not None:
        return
    logger.debug("Closing channel that opened after its deadline")
    task.result().close()


def _close_channel(channel: Channel, host: str) -> None:
    try:
        channel.close()
    except Exception:
        logger.exception("Error closing channel on %s", host)


class SessionRunner:
    """Runs single commands over a borrowed connection."""

    def __init__(self, open_pool: BoundedWorkerPool, run_pool: BoundedWorkerPool) -> None:
        """Initialize runner.

        Args:
            open_pool: Pool used for opening channels
            run_pool: Pool used for running commands and streaming output
        """
        self.open_pool = open_pool
        self.run_pool = run_pool

    async def run(
        self,
        connection: Connection,
        host: str,
        command: str,
        timeout_ms: int,
        processor: LineProcessor | None = None,
    ) -> SSHResult:
        """Run ``command`` on a fresh channel of ``connection``.

        Args:
            connection: Borrowed connection to ``host``
            host: Host address, for errors and logging
            command: Shell command, passed through unmodified
            timeout_ms: Deadline for opening the channel and running the command
            processor: Per-line consumer of stdout; None buffers stdout into
                the result's output

        Returns:
            SSHResult. Failures carry an ``SSHError`` subclass, or the
            exception raised while running the command, as ``cause``.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000

        try:
            channel = await self._open(connection, host, command, timeout_ms)
        except SSHError as e:
            logger.error("Cannot open channel on %s for %r: %s", host, command, e)
            return SSHResult.fail(e)

        try:
            remaining = max(deadline - loop.time(), 0.0)
            return await self._execute(
                channel, host, command, processor, remaining, timeout_ms
            )
        except Exception as e:
            logger.error("Command %r on %s failed: %s", command, host, e)
            return SSHResult.fail(e)
        finally:
            _close_channel(channel, host)

    async def _open(
        self, connection: Connection, host: str, command: str, timeout_ms: int
    ) -> Channel:
        try:
            task = self.open_pool.submit(connection.open_channel)
        except CapacityExceeded as e:
            e.host, e.command = host, command
            raise

        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            task.add_done_callback(_close_late_channel)
            raise

        if not done:
            task.cancel()
            task.add_done_callback(_close_late_channel)
            raise SessionOpenTimeout(
                f"Opening channel timed out after {timeout_ms}ms",
                host=host,
                command=command,
            )
        if task.cancelled():
            raise InterruptedDuringWait(
                "Channel open task was cancelled", host=host, command=command
            )
        error = task.exception()
        if error is not None:
            raise SessionOpenFailure(
                f"Cannot open channel: {error}",
                host=host,
                command=command,
                original_error=error,
            )
        return task.result()

    async def _execute(
        self,
        channel: Channel,
        host: str,
        command: str,
        processor: LineProcessor | None,
        timeout: float,
        timeout_ms: int,
    ) -> SSHResult:
        try:
            task = self.run_pool.submit(self._stream, channel, host, command, processor)
        except CapacityExceeded as e:
            e.host, e.command = host, command
            raise
        task.add_done_callback(_retrieve_outcome)

        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            # Local cancellation only; the remote process may still be running.
            task.cancel()
            raise CommandTimeout(
                f"Command timed out after {timeout_ms}ms", host=host, command=command
            )
        if task.cancelled():
            raise InterruptedDuringWait(
                "Command task was cancelled", host=host, command=command
            )
        return task.result()

    async def _stream(
        self,
        channel: Channel,
        host: str,
        command: str,
        processor: LineProcessor | None,
    ) -> SSHResult:
        await channel.run(command)

        buffer: BufferingLineProcessor | None = None
        if processor is None:
            buffer = BufferingLineProcessor()
            processor = buffer

        # Drain both streams together so a full stderr cannot stall stdout.
        errors = BufferingLineProcessor()
        await asyncio.gather(
            process_stream(channel.stdout(), processor, host=host, command=command),
            process_stream(channel.stderr(), errors, host=host, command=command),
        )
        if buffer is not None and buffer.output:
            return SSHResult.ok(buffer.output)

        if processor.lines_processed == 0 and errors.output:
            # No stdout at all: stderr tells that the command failed.
            logger.error(
                "Command %r on %s wrote to stderr: %s", command, host, errors.output
            )
            return SSHResult.fail(
                CommandExecutionFailure(errors.output, host=host, command=command)
            )

        return SSHResult.ok()
