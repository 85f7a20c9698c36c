"""Tests for line processors and the streaming loop."""

import pytest

from broker_ssh.protocols import LineProcessor
from broker_ssh.services.processors import (
    BufferingLineProcessor,
    CallbackLineProcessor,
    as_line_processor,
    process_stream,
)


async def _lines(*lines: str):
    for line in lines:
        yield line


async def _broken_after(*lines: str):
    for line in lines:
        yield line
    raise ConnectionError("stream reset")


def test_buffering_processor_joins_lines() -> None:
    processor = BufferingLineProcessor()
    processor.process("first", 1)
    processor.process("second", 2)

    assert processor.output == "first\nsecond"


def test_buffering_processor_starts_empty() -> None:
    processor = BufferingLineProcessor()

    assert processor.output == ""
    assert processor.lines_processed == 0


def test_processors_satisfy_protocol() -> None:
    assert isinstance(BufferingLineProcessor(), LineProcessor)
    assert isinstance(CallbackLineProcessor(lambda line, n: None), LineProcessor)


def test_as_line_processor_wraps_callables() -> None:
    seen = []
    processor = as_line_processor(lambda line, n: seen.append(n))

    assert isinstance(processor, CallbackLineProcessor)
    processor.process("x", 7)
    assert seen == [7]


def test_as_line_processor_passes_through() -> None:
    buffering = BufferingLineProcessor()

    assert as_line_processor(buffering) is buffering
    assert as_line_processor(None) is None


def test_as_line_processor_rejects_other_types() -> None:
    with pytest.raises(TypeError):
        as_line_processor(42)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_process_stream_counts_lines() -> None:
    processor = BufferingLineProcessor()

    count = await process_stream(_lines("a", "b", "c"), processor)

    assert count == 3
    assert processor.lines_processed == 3
    assert processor.output == "a\nb\nc"


@pytest.mark.asyncio
async def test_process_stream_numbers_lines_from_one() -> None:
    numbers = []
    processor = CallbackLineProcessor(lambda line, n: numbers.append(n))

    await process_stream(_lines("a", "b"), processor)

    assert numbers == [1, 2]


@pytest.mark.asyncio
async def test_process_stream_survives_processor_errors(caplog) -> None:
    kept = []

    def handler(line: str, n: int) -> None:
        if line == "bad":
            raise ValueError("cannot parse")
        kept.append(line)

    processor = CallbackLineProcessor(handler)

    count = await process_stream(_lines("ok", "bad", "fine"), processor, host="h", command="c")

    assert count == 3
    assert kept == ["ok", "fine"]
    assert processor.lines_processed == 3
    assert "line 2" in caplog.text


@pytest.mark.asyncio
async def test_process_stream_stops_on_read_error() -> None:
    processor = BufferingLineProcessor()

    count = await process_stream(_broken_after("a", "b"), processor)

    assert count == 2
    assert processor.output == "a\nb"
