import codecs
import json
import logging
from typing import Any, AsyncGenerator, AsyncIterator, List, Optional

from .error_handler import STREAM_ERROR_MESSAGE
from .types import Delta, Done, Error, OutboundEvent

lib_logger = logging.getLogger("relay_core")

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def extract_delta_content(chunk: Any) -> str:
    """Return choices[0].delta.content, or "" if the chunk has none."""
    if not isinstance(chunk, dict):
        return ""
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    choice = choices[0]
    if not isinstance(choice, dict):
        return ""
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class StreamReframer:
    """
    Turns the upstream's SSE byte stream into outbound events.

    Bytes arrive in arbitrary chunks, so a frame (or a multi-byte UTF-8
    character) may be split across reads. Complete lines are processed as
    soon as they are available; the trailing fragment waits in the buffer
    for the next chunk. Once a terminal event has been produced the
    reframer ignores further input.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.finished = False

    def feed(self, chunk: bytes) -> List[OutboundEvent]:
        """Consume one chunk and return the events it completes."""
        if self.finished:
            return []

        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")

        events: List[OutboundEvent] = []
        for line in lines:
            event = self._process_line(line)
            if event is None:
                continue
            events.append(event)
            if event.terminal:
                self._close()
                break
        return events

    def finish(self) -> List[OutboundEvent]:
        """
        Signal transport EOF. A final line without a trailing newline is
        still processed; the stream then completes with Done if the
        upstream never sent its sentinel.
        """
        if self.finished:
            return []

        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""

        events: List[OutboundEvent] = []
        event = self._process_line(tail) if tail else None
        if event is not None:
            events.append(event)
        if not events or not events[-1].terminal:
            events.append(Done())
        self._close()
        return events

    def _close(self) -> None:
        self.finished = True
        self._buffer = ""

    def _process_line(self, line: str) -> Optional[OutboundEvent]:
        if not line.startswith(DATA_PREFIX):
            return None

        data = line[len(DATA_PREFIX) :].strip()
        if not data:
            return None
        if data == DONE_SENTINEL:
            return Done()

        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            # Incomplete or malformed frame
            return None

        content = extract_delta_content(parsed)
        if content:
            return Delta(content)
        return None

    async def reframe(
        self, byte_stream: AsyncIterator[bytes]
    ) -> AsyncGenerator[OutboundEvent, None]:
        """
        Lazily yield events read from `byte_stream` until a terminal event.

        A transport failure after streaming has begun ends the sequence with
        a single Error event; it is never raised to the caller.
        """
        stream_iterator = byte_stream.__aiter__()

        while not self.finished:
            try:
                chunk = await stream_iterator.__anext__()
            except StopAsyncIteration:
                break
            except Exception as e:
                lib_logger.error(f"Stream error: {type(e).__name__}: {e}")
                self._close()
                yield Error(STREAM_ERROR_MESSAGE)
                return

            for event in self.feed(chunk):
                yield event

        for event in self.finish():
            yield event
