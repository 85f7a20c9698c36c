"""Line processors for streamed command output."""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable

from broker_ssh.protocols import LineProcessor

logger = logging.getLogger(__name__)

LineHandler = Callable[[str, int], None]


class BaseLineProcessor(ABC):
    """Line processor whose line count is maintained by ``process_stream``."""

    def __init__(self) -> None:
        self._lines_processed = 0

    @abstractmethod
    def process(self, line: str, line_number: int) -> None:
        """Handle one line of output."""

    @property
    def lines_processed(self) -> int:
        return self._lines_processed

    def record_line(self, line_number: int) -> None:
        """Record that ``line_number`` lines have been read."""
        self._lines_processed = line_number


class BufferingLineProcessor(BaseLineProcessor):
    """Default processor: joins every line into a single string."""

    def __init__(self) -> None:
        super().__init__()
        self._lines: list[str] = []

    def process(self, line: str, line_number: int) -> None:
        self._lines.append(line)

    @property
    def output(self) -> str:
        """All lines seen so far, separated by line breaks."""
        return "\n".join(self._lines)


class CallbackLineProcessor(BaseLineProcessor):
    """Adapts a plain ``handler(line, line_number)`` callable."""

    def __init__(self, handler: LineHandler) -> None:
        super().__init__()
        self._handler = handler

    def process(self, line: str, line_number: int) -> None:
        self._handler(line, line_number)


def as_line_processor(
    processor: LineProcessor | LineHandler | None,
) -> LineProcessor | None:
    """Wrap bare callables so callers can pass a function as a processor."""
    if processor is None or isinstance(processor, LineProcessor):
        return processor
    if callable(processor):
        return CallbackLineProcessor(processor)
    raise TypeError(f"Expected a LineProcessor or callable, got {type(processor).__name__}")


async def process_stream(
    lines: AsyncIterator[str],
    processor: LineProcessor,
    host: str | None = None,
    command: str | None = None,
) -> int:
    """Feed every line of ``lines`` to ``processor``.

    A processor error on one line is logged and reading continues with the
    next line. A read error ends the stream early and is logged.

    Returns:
        Number of lines read
    """
    line_number = 0
    try:
        async for line in lines:
            line_number += 1
            try:
                processor.process(line, line_number)
            except Exception:
                logger.exception(
                    "Line processor failed on %s (%s) line %d: %r",
                    host,
                    command,
                    line_number,
                    line,
                )
            if isinstance(processor, BaseLineProcessor):
                processor.record_line(line_number)
    except OSError as e:
        logger.error(
            "Error reading output from %s (%s) after %d line(s): %s",
            host,
            command,
            line_number,
            e,
        )
    return line_number
