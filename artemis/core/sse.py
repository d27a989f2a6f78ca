"""Server-sent event framing for the orchestration stream."""

import json
from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ValidationError

from artemis.core.logging import get_logger
from artemis.core.schemas_events import StreamEvent, parse_event

logger = get_logger(__name__)

DATA_PREFIX = "data: "

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_event(event: BaseModel | dict[str, Any]) -> str:
    """Format one event as an SSE data frame."""
    if isinstance(event, BaseModel):
        data = event.to_wire() if hasattr(event, "to_wire") else event.model_dump(mode="json")
    else:
        data = event
    return f"{DATA_PREFIX}{json.dumps(data)}\n\n"


class SSEDecoder:
    """
    Incremental decoder for ``data:`` frames split across network reads.

    The last incomplete line of every chunk is held back and prefixed to the
    next one. Lines without the data prefix (comments, blank separators) are
    ignored; malformed frames are logged and skipped.
    """

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text held back waiting for its line terminator."""
        return self._buffer

    def feed(self, chunk: str) -> list[StreamEvent]:
        """
        Consume one read from the transport.

        Args:
            chunk: Decoded text exactly as received

        Returns:
            Events completed by this chunk, in stream order
        """
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return list(self._decode_lines(lines))

    def close(self) -> list[StreamEvent]:
        """Flush a final frame that arrived without a trailing newline."""
        remaining, self._buffer = self._buffer, ""
        if not remaining:
            return []
        return list(self._decode_lines([remaining]))

    def _decode_lines(self, lines: list[str]) -> Iterator[StreamEvent]:
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue

            raw = line[len(DATA_PREFIX):]
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping malformed SSE frame: {e}")
                continue

            if not isinstance(data, dict):
                logger.warning(f"Skipping non-object SSE frame: {raw[:80]}")
                continue

            try:
                yield parse_event(data)
            except ValidationError as e:
                logger.warning(
                    f"Skipping invalid '{data.get('type')}' event: {e.error_count()} errors"
                )
