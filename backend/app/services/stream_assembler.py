"""
Stream assembler for OpenAI-compatible chat completion streams.

Consumes the raw bytes of a streamed completion response and turns them
into an ordered sequence of text deltas. Handles records that may be split
across arbitrary chunk boundaries, including splits inside a multi-byte
UTF-8 character.

Wire assumptions:
- An optional leading UTF-8 byte order mark is skipped
- Records are separated by line feeds, an optional carriage return is stripped
- Lines starting with ":" are keepalive comments
- Only "data: " lines carry payloads, anything else is skipped
- "data: [DONE]" terminates the stream
- Payloads look like {"choices": [{"delta": {"content": "..."}}]}
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncGenerator
from contextlib import aclosing, nullcontext

from app.models.stream_types import DeltaSink

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

# Distinct from every JSON value, including null
_MALFORMED = object()


class TextBufferSink:
    """In-memory sink that concatenates every delta it receives"""

    def __init__(self):
        self._parts: list[str] = []

    def append(self, delta: str) -> None:
        self._parts.append(delta)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def reset(self) -> None:
        """Discard a half-built message"""
        self._parts = []


class StreamingResponseAssembler:
    """
    Assemble text deltas from a chunked server-sent event stream.

    One instance handles exactly one response body. Calls must be
    serialized by the caller; nothing here is thread-safe.

    Usage:
        assembler = StreamingResponseAssembler()
        async for chunk in response.aiter_bytes():
            for delta in assembler.feed(chunk):
                sink.append(delta)
        for delta in assembler.finish():
            sink.append(delta)
    """

    def __init__(self):
        """Initialize assembler with clean state"""
        # "replace" only affects invalid bytes; incomplete trailing
        # sequences stay buffered inside the decoder until more bytes arrive.
        # utf-8-sig drops a leading BOM, even one split across chunks.
        self._decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
        self._pending = ""
        self._carried: str | None = None
        self._done = False
        self._finished = False

    def is_done(self) -> bool:
        """True once the [DONE] sentinel has been observed"""
        return self._done

    def feed(self, chunk: bytes) -> list[str]:
        """
        Process the next chunk of the response body.

        Args:
            chunk: Raw bytes in arrival order

        Returns:
            Deltas extracted from every record completed by this chunk
        """
        if self._done or self._finished:
            return []

        self._pending += self._decoder.decode(chunk)
        return self._drain(final=False)

    def finish(self) -> list[str]:
        """
        Call when the transport reports end of stream.

        An unterminated last line is treated as complete. A record that
        still fails to parse is dropped, as is an incomplete trailing
        UTF-8 sequence.

        Returns:
            Any remaining deltas
        """
        if self._finished:
            return []
        self._finished = True

        if self._done:
            return []

        buffered, _ = self._decoder.getstate()
        if buffered:
            logger.debug(
                f"[StreamAssembler] Dropping {len(buffered)} bytes of incomplete UTF-8 at end of stream"
            )
        self._decoder.reset()

        if self._pending and not self._pending.endswith("\n"):
            self._pending += "\n"

        deltas = self._drain(final=True)

        if self._carried is not None:
            logger.info(
                f"[StreamAssembler] Stream ended with unparsed record, dropped {len(self._carried)} chars"
            )
            self._carried = None

        return deltas

    def _drain(self, final: bool) -> list[str]:
        """Extract and process every complete line in the pending buffer"""
        deltas: list[str] = []

        while not self._done:
            newline = self._pending.find("\n")
            if newline == -1:
                break

            line = self._pending[:newline]
            self._pending = self._pending[newline + 1 :]

            # A freshly carried record waits for the next call
            if self._process_line(line, deltas) and not final:
                break

        return deltas

    def _process_line(self, line: str, deltas: list[str]) -> bool:
        """
        Classify one complete line and collect its delta, if any.

        A carried record is joined with the next non-blank line before
        that line is classified, so a continuation that happens to start
        with ":" is still recovered. A comment that does not complete the
        carried record is skipped and the record stays carried.

        Returns:
            True if the line was kept as the carried record
        """
        if line.endswith("\r"):
            line = line[:-1]

        if not line.strip():
            return False

        if self._carried is not None:
            joined = self._carried + line
            payload = self._parse_payload(joined[len(DATA_PREFIX) :].strip())
            if payload is not _MALFORMED:
                self._carried = None
                logger.debug("[StreamAssembler] Recovered record split across lines")
                self._collect_delta(payload, deltas)
                return False
            if line.startswith(":"):
                return False
            self._carried = None
            logger.debug("[StreamAssembler] Carried record still malformed, dropping it")

        if line.startswith(":") or not line.startswith(DATA_PREFIX):
            return False

        data = line[len(DATA_PREFIX) :].strip()

        if data == DONE_SENTINEL:
            self._done = True
            self._pending = ""
            logger.info("[StreamAssembler] Received [DONE] sentinel")
            return False

        payload = self._parse_payload(data)
        if payload is _MALFORMED:
            self._carried = line
            return True

        self._collect_delta(payload, deltas)
        return False

    @staticmethod
    def _parse_payload(data: str) -> object:
        """Decode a JSON payload, or return _MALFORMED"""
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            return _MALFORMED

    @staticmethod
    def _collect_delta(payload: object, deltas: list[str]) -> None:
        """Pull choices[0].delta.content out of a parsed payload"""
        if not isinstance(payload, dict):
            return
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return
        choice = choices[0]
        if not isinstance(choice, dict):
            return
        delta = choice.get("delta")
        if not isinstance(delta, dict):
            return
        content = delta.get("content")
        if isinstance(content, str) and content:
            deltas.append(content)


async def iter_deltas(chunks: AsyncIterable[bytes]) -> AsyncGenerator[str, None]:
    """
    Yield text deltas from a byte stream, one per completed record.

    A source with ``aclose`` is closed when iteration ends, including the
    early stop after [DONE], so the upstream response is released at once.
    Transport errors raised while iterating ``chunks`` propagate unchanged.
    """
    assembler = StreamingResponseAssembler()
    closer = aclosing(chunks) if hasattr(chunks, "aclose") else nullcontext(chunks)
    async with closer as source:
        async for chunk in source:
            for delta in assembler.feed(chunk):
                yield delta
            if assembler.is_done():
                break
    for delta in assembler.finish():
        yield delta


async def assemble_stream(chunks: AsyncIterable[bytes], sink: DeltaSink) -> str:
    """
    Drive a byte stream through a fresh assembler into ``sink``.

    Each delta reaches the sink before the next chunk is requested.

    Returns:
        The concatenation of every delta appended to the sink
    """
    parts: list[str] = []
    async for delta in iter_deltas(chunks):
        sink.append(delta)
        parts.append(delta)
    return "".join(parts)
