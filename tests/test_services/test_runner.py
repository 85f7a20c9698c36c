"""Tests for the session runner."""

import asyncio
import logging

import pytest

from broker_ssh.errors import (
    CapacityExceeded,
    CommandExecutionFailure,
    CommandTimeout,
    SessionOpenFailure,
    SessionOpenTimeout,
)
from broker_ssh.services.processors import BufferingLineProcessor, CallbackLineProcessor
from broker_ssh.services.runner import SessionRunner
from broker_ssh.services.workers import BoundedWorkerPool
from fakes import FakeChannel, FakeConnection


@pytest.mark.asyncio
async def test_date_returns_single_line_output(runner: SessionRunner) -> None:
    """A command without processor returns its stdout as output."""
    channel = FakeChannel(stdout=["Mon Oct 19 10:00:00 CST 2026"], delay=0.01)
    conn = FakeConnection([channel])

    result = await runner.run(conn, "10.0.0.1", "date", 5000)

    assert result.success is True
    assert result.output == "Mon Oct 19 10:00:00 CST 2026"
    assert result.cause is None
    assert channel.commands == ["date"]
    assert channel.close_calls == 1


@pytest.mark.asyncio
async def test_multiline_output_joined_with_newlines(runner: SessionRunner) -> None:
    conn = FakeConnection([FakeChannel(stdout=["a", "b", "c"])])

    result = await runner.run(conn, "h", "ls", 5000)

    assert result.output == "a\nb\nc"


@pytest.mark.asyncio
async def test_no_output_and_no_stderr_is_bare_success(runner: SessionRunner) -> None:
    channel = FakeChannel()
    conn = FakeConnection([channel])

    result = await runner.run(conn, "h", "touch /tmp/x", 5000)

    assert result.success is True
    assert result.output is None
    assert result.cause is None
    assert channel.close_calls == 1


@pytest.mark.asyncio
async def test_stderr_without_stdout_is_failure(runner: SessionRunner) -> None:
    """Zero stdout lines plus stderr text yields a failure carrying that text."""
    channel = FakeChannel(stderr=["permission denied"])
    conn = FakeConnection([channel])

    result = await runner.run(conn, "h", "cat /root/secret", 5000)

    assert result.success is False
    assert isinstance(result.cause, CommandExecutionFailure)
    assert str(result.cause) == "permission denied"
    assert result.cause.stderr == "permission denied"
    assert result.cause.host == "h"
    assert result.output is None
    assert channel.close_calls == 1


@pytest.mark.asyncio
async def test_stderr_ignored_when_stdout_has_lines(runner: SessionRunner) -> None:
    conn = FakeConnection([FakeChannel(stdout=["ok"], stderr=["warning: deprecated"])])

    result = await runner.run(conn, "h", "cmd", 5000)

    assert result.success is True
    assert result.output == "ok"


@pytest.mark.asyncio
async def test_supplied_processor_receives_lines_and_result_has_no_output(
    runner: SessionRunner,
) -> None:
    seen: list[tuple[str, int]] = []
    processor = CallbackLineProcessor(lambda line, n: seen.append((line, n)))
    channel = FakeChannel(stdout=["x", "y"], stderr=["noise"])
    conn = FakeConnection([channel])

    result = await runner.run(conn, "h", "cmd", 5000, processor)

    assert result.success is True
    assert result.output is None
    assert seen == [("x", 1), ("y", 2)]
    assert processor.lines_processed == 2
    assert channel.close_calls == 1


@pytest.mark.asyncio
async def test_supplied_processor_with_zero_lines_checks_stderr(
    runner: SessionRunner,
) -> None:
    processor = BufferingLineProcessor()
    conn = FakeConnection([FakeChannel(stderr=["No such file or directory"])])

    result = await runner.run(conn, "h", "cat missing", 5000, processor)

    assert result.success is False
    assert isinstance(result.cause, CommandExecutionFailure)


@pytest.mark.asyncio
async def test_processor_error_on_one_line_keeps_reading(runner: SessionRunner) -> None:
    seen: list[str] = []

    def handler(line: str, n: int) -> None:
        if n == 2:
            raise ValueError("malformed")
        seen.append(line)

    processor = CallbackLineProcessor(handler)
    conn = FakeConnection([FakeChannel(stdout=["1", "bad", "3"])])

    result = await runner.run(conn, "h", "cmd", 5000, processor)

    assert result.success is True
    assert seen == ["1", "3"]
    assert processor.lines_processed == 3


@pytest.mark.asyncio
async def test_slow_command_times_out_near_deadline(runner: SessionRunner) -> None:
    """A 10s command with a 100ms deadline fails fast and still closes the channel."""
    channel = FakeChannel(stdout=["never"], delay=10)
    conn = FakeConnection([channel])

    loop = asyncio.get_running_loop()
    start = loop.time()
    result = await runner.run(conn, "h", "sleep 10", 100)
    elapsed = loop.time() - start

    assert result.success is False
    assert isinstance(result.cause, CommandTimeout)
    assert elapsed < 1.0, f"Expected ~0.1s, got {elapsed:.3f}s"
    assert channel.close_calls == 1


@pytest.mark.asyncio
async def test_open_timeout(runner: SessionRunner) -> None:
    conn = FakeConnection(open_delay=10)

    loop = asyncio.get_running_loop()
    start = loop.time()
    result = await runner.run(conn, "h", "date", 100)
    elapsed = loop.time() - start

    assert result.success is False
    assert isinstance(result.cause, SessionOpenTimeout)
    assert elapsed < 1.0
    assert conn.opened == []


@pytest.mark.asyncio
async def test_open_failure(runner: SessionRunner) -> None:
    error = OSError("channel open refused")
    conn = FakeConnection(open_error=error)

    result = await runner.run(conn, "h", "date", 1000)

    assert result.success is False
    assert isinstance(result.cause, SessionOpenFailure)
    assert result.cause.original_error is error
    assert result.cause.__cause__ is error


@pytest.mark.asyncio
async def test_error_while_running_is_failure_and_closes_channel(
    runner: SessionRunner,
) -> None:
    channel = FakeChannel()
    error = ConnectionResetError("connection lost")

    async def broken_run(command: str) -> None:
        raise error

    channel.run = broken_run
    conn = FakeConnection([channel])

    result = await runner.run(conn, "h", "date", 1000)

    assert result.success is False
    assert result.cause is error
    assert channel.close_calls == 1


@pytest.mark.asyncio
async def test_each_command_gets_its_own_channel(runner: SessionRunner) -> None:
    first, second = FakeChannel(stdout=["1"]), FakeChannel(stdout=["2"])
    conn = FakeConnection([first, second])

    r1 = await runner.run(conn, "h", "echo 1", 1000)
    r2 = await runner.run(conn, "h", "echo 2", 1000)

    assert (r1.output, r2.output) == ("1", "2")
    assert first.close_calls == 1
    assert second.close_calls == 1


@pytest.mark.asyncio
async def test_full_run_pool_fails_fast(open_pool: BoundedWorkerPool) -> None:
    run_pool = BoundedWorkerPool("tiny", max_workers=1, max_queue=0)
    runner = SessionRunner(open_pool, run_pool)
    busy = FakeChannel(delay=0.5)
    conn = FakeConnection([busy, FakeChannel()])

    first = asyncio.create_task(runner.run(conn, "h", "sleep", 2000))
    await asyncio.sleep(0.05)
    result = await runner.run(conn, "h", "date", 2000)

    assert result.success is False
    assert isinstance(result.cause, CapacityExceeded)
    assert conn.opened[1].close_calls == 1
    assert (await first).success is True


@pytest.mark.asyncio
async def test_capacity_rejection_is_logged_once(open_pool: BoundedWorkerPool, caplog) -> None:
    run_pool = BoundedWorkerPool("tiny", max_workers=1, max_queue=0)
    runner = SessionRunner(open_pool, run_pool)
    conn = FakeConnection([FakeChannel(delay=0.5), FakeChannel()])

    first = asyncio.create_task(runner.run(conn, "h", "sleep", 2000))
    await asyncio.sleep(0.05)
    with caplog.at_level(logging.DEBUG, logger="broker_ssh"):
        await runner.run(conn, "h", "date", 2000)

    rejections = [r for r in caplog.records if "tiny is full" in r.getMessage()]
    assert len(rejections) == 1
    assert rejections[0].levelno == logging.ERROR
    await first


@pytest.mark.asyncio
async def test_caller_cancellation_closes_channel(runner: SessionRunner) -> None:
    channel = FakeChannel(delay=10)
    conn = FakeConnection([channel])

    task = asyncio.create_task(runner.run(conn, "h", "sleep 10", 5000))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert channel.close_calls == 1


class StderrFirstChannel(FakeChannel):
    """Holds stdout back until all of stderr has been read.

    Models a remote that blocks on a full stderr window before writing
    stdout.
    """

    def __init__(self, stdout: list[str], stderr: list[str]) -> None:
        super().__init__(stdout=stdout, stderr=stderr)
        self.stderr_drained = asyncio.Event()

    async def _stdout_after_stderr(self):
        await self.stderr_drained.wait()
        for line in self.stdout_lines:
            yield line

    async def _stderr_then_signal(self):
        for line in self.stderr_lines:
            yield line
        self.stderr_drained.set()

    def stdout(self):
        return self._stdout_after_stderr()

    def stderr(self):
        return self._stderr_then_signal()


@pytest.mark.asyncio
async def test_stderr_is_drained_while_stdout_is_read(runner: SessionRunner) -> None:
    noise = [f"find: '/proc/{pid}': Permission denied" for pid in range(1000)]
    conn = FakeConnection([StderrFirstChannel(stdout=["done"], stderr=noise)])

    result = await runner.run(conn, "h", "find / -name broker.conf", 1000)

    assert result.success is True
    assert result.output == "done"
