"""Byte stream -> lines -> samples -> fixed-size batches."""

import logging
import re
from typing import Iterator, List, Optional

logger = logging.getLogger("serial2sse.pipeline")

DEFAULT_DELIMITER = b"\r\n"
DEFAULT_MAX_LINE = 4096
DEFAULT_BATCH_SIZE = 10

SAMPLE_PATTERN = re.compile(r"Pulse Width:\s*(\d+)")


class LineExtractor:
    """Split an unbounded byte stream into delimiter-terminated text lines."""

    def __init__(self, delimiter: bytes = DEFAULT_DELIMITER, max_line: int = DEFAULT_MAX_LINE):
        if not delimiter:
            raise ValueError("Line delimiter must be non-empty")
        if max_line <= 0:
            raise ValueError("Maximum line length must be positive")
        self.delimiter = delimiter
        self.max_line = max_line
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a delimiter."""
        return len(self._buffer)

    def feed(self, data: bytes) -> Iterator[str]:
        """Buffer data and yield each complete line, delimiter stripped."""
        self._buffer.extend(data)
        while True:
            idx = self._buffer.find(self.delimiter)
            if idx < 0:
                if len(self._buffer) > self.max_line:
                    logger.warning(
                        "Discarding %d bytes with no line delimiter", len(self._buffer)
                    )
                    self._buffer.clear()
                return
            raw = bytes(self._buffer[:idx])
            del self._buffer[: idx + len(self.delimiter)]
            yield raw.decode("utf-8", errors="replace")


def parse_sample(line: str) -> Optional[int]:
    """Return the pulse width carried by line, or None for anything else."""
    match = SAMPLE_PATTERN.search(line)
    if match is None:
        return None
    try:
        return int(match.group(1))
    except ValueError:
        return None


class SampleBatcher:
    """Accumulate samples and hand back a batch every `size` samples."""

    def __init__(self, size: int = DEFAULT_BATCH_SIZE):
        if size <= 0:
            raise ValueError("Batch size must be positive")
        self.size = size
        self._samples: List[int] = []

    @property
    def pending(self) -> List[int]:
        return list(self._samples)

    def add(self, sample: int) -> Optional[List[int]]:
        self._samples.append(sample)
        if len(self._samples) < self.size:
            return None
        batch, self._samples = self._samples, []
        return batch

    def reset(self) -> int:
        """Drop the batch in progress; return how many samples were dropped."""
        dropped = len(self._samples)
        self._samples = []
        return dropped


def format_payload(batch: List[int]) -> str:
    """Join a batch into the comma-separated text pushed to subscribers."""
    return ",".join(str(value) for value in batch)


def format_event(batch: List[int]) -> str:
    """Render a batch as one Server-Sent Events data frame."""
    return f"data: {format_payload(batch)}\n\n"
