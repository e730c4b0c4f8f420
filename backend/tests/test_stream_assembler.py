"""
Unit tests for StreamingResponseAssembler.

Tests cover:
- Records split across chunks at every byte offset
- Multi-byte UTF-8 characters split across chunks
- [DONE] sentinel handling and closing the source
- Byte order marks, null payloads and comment-like continuations
- Comment, blank and non-data lines
- Malformed JSON carried into the next call
- finish() on unterminated lines and incomplete UTF-8
- The async drivers and transport error propagation
"""

import json

import pytest

from app.services.stream_assembler import (
    StreamingResponseAssembler,
    TextBufferSink,
    assemble_stream,
    iter_deltas,
)


def record(content: str) -> str:
    """Build one data line carrying a single content delta"""
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n"


def run(chunks: list[bytes]) -> list[str]:
    """Feed chunks in order, then finish, collecting every delta"""
    assembler = StreamingResponseAssembler()
    deltas = []
    for chunk in chunks:
        deltas.extend(assembler.feed(chunk))
    deltas.extend(assembler.finish())
    return deltas


async def chunk_source(chunks: list[bytes]):
    for chunk in chunks:
        yield chunk


WIRE = (
    ": keepalive\n"
    + record("Hel")
    + "\n"
    + record("lo, ")
    + "event: message\r\n"
    + record("wörld 🚀")
    + 'data: {"choices":[{"delta":{}}]}\n'
    + "data: [DONE]\n"
    + record("ignored")
).encode("utf-8")


class TestChunkBoundaries:
    def test_single_chunk(self):
        assert run([WIRE]) == ["Hel", "lo, ", "wörld 🚀"]

    def test_every_two_way_split_matches_single_chunk(self):
        expected = "".join(run([WIRE]))
        for i in range(len(WIRE) + 1):
            assert "".join(run([WIRE[:i], WIRE[i:]])) == expected, f"split at {i}"

    def test_byte_by_byte(self):
        chunks = [WIRE[i : i + 1] for i in range(len(WIRE))]
        assert "".join(run(chunks)) == "Hello, wörld 🚀"

    def test_multibyte_character_split_inside_sequence(self):
        data = record("🚀").encode("utf-8")
        rocket_start = data.index("🚀".encode("utf-8"))

        assembler = StreamingResponseAssembler()
        assert assembler.feed(data[: rocket_start + 2]) == []
        assert assembler.feed(data[rocket_start + 2 :]) == ["🚀"]
        assert assembler.finish() == []

    def test_partial_line_waits_for_line_feed(self):
        assembler = StreamingResponseAssembler()
        line = record("abc")

        assert assembler.feed(line[:-1].encode()) == []
        assert assembler.feed(b"\n") == ["abc"]


class TestRecordClassification:
    def test_comment_blank_and_foreign_lines_produce_nothing(self):
        wire = b": ping\n\n   \nevent: update\nid: 7\nretry: 100\n"
        assembler = StreamingResponseAssembler()

        assert assembler.feed(wire) == []
        assert assembler.finish() == []
        assert not assembler.is_done()

    def test_null_and_scalar_payloads_are_not_carried(self):
        assembler = StreamingResponseAssembler()

        assert assembler.feed(b"data: null\n" + record("x").encode()) == ["x"]
        assert assembler.feed(b'data: 42\ndata: "str"\n' + record("y").encode()) == ["y"]

    def test_leading_byte_order_mark_is_skipped(self):
        wire = b"\xef\xbb\xbf" + record("x").encode()

        assert run([wire]) == ["x"]
        assert run([wire[i : i + 1] for i in range(len(wire))]) == ["x"]

    def test_data_prefix_requires_space(self):
        assert run([b'data:{"choices":[{"delta":{"content":"x"}}]}\n']) == []

    def test_carriage_return_is_stripped(self):
        wire = record("crlf").replace("\n", "\r\n").encode()
        assert run([wire]) == ["crlf"]

    def test_missing_or_empty_content_yields_no_delta(self):
        wire = (
            'data: {"choices":[]}\n'
            'data: {"choices":[{"delta":{"role":"assistant"}}]}\n'
            'data: {"choices":[{"delta":{"content":""}}]}\n'
            'data: {"choices":[{"delta":{"content":null}}]}\n'
            'data: {"choices":[{"delta":{"content":42}}]}\n'
            'data: {"usage":{"total_tokens":3}}\n'
            "data: [1, 2]\n"
        ).encode()
        assembler = StreamingResponseAssembler()

        assert assembler.feed(wire) == []
        assert assembler.finish() == []

    def test_only_first_choice_is_used(self):
        wire = (
            'data: {"choices":[{"delta":{"content":"A"}},{"delta":{"content":"B"}}]}\n'
        ).encode()
        assert run([wire]) == ["A"]

    def test_deltas_emitted_in_arrival_order(self):
        wire = (record("A") + record("B") + record("C")).encode()
        assert run([wire]) == ["A", "B", "C"]


class TestDoneSentinel:
    def test_worked_example(self):
        assembler = StreamingResponseAssembler()
        emitted = []

        emitted.extend(assembler.feed(record("Hel").encode()))
        emitted.extend(assembler.feed(record("lo").encode()))
        emitted.extend(assembler.feed(b"data: [DONE]\n"))
        emitted.extend(assembler.finish())

        assert emitted == ["Hel", "lo"]
        assert assembler.is_done()
        assert assembler.feed(record("more").encode()) == []

    def test_records_after_done_in_same_chunk_are_ignored(self):
        wire = (record("kept") + "data: [DONE]\n" + record("dropped")).encode()
        assembler = StreamingResponseAssembler()

        assert assembler.feed(wire) == ["kept"]
        assert assembler.is_done()
        assert assembler.finish() == []

    def test_done_without_trailing_line_feed(self):
        assembler = StreamingResponseAssembler()
        assembler.feed(record("x").encode() + b"data: [DONE]")

        assert not assembler.is_done()
        assembler.finish()
        assert assembler.is_done()

    def test_not_done_before_sentinel(self):
        assembler = StreamingResponseAssembler()
        assembler.feed(record("x").encode())
        assert not assembler.is_done()


class TestMalformedRecords:
    def test_payload_split_across_chunks(self):
        assembler = StreamingResponseAssembler()

        assert assembler.feed(b'data: {"choices":[{"del') == []
        assert assembler.feed(b'ta":{"content":"hi"}}]}\n') == ["hi"]

    def test_payload_split_by_stray_line_feed_is_rejoined(self):
        assembler = StreamingResponseAssembler()

        assert assembler.feed(b'data: {"choices":[{"delta":{"con\n') == []
        assert assembler.feed(b'tent":"hi"}}]}\n') == ["hi"]

    def test_continuation_starting_with_colon_is_rejoined(self):
        assembler = StreamingResponseAssembler()

        assert assembler.feed(b'data: {"choices":[{"delta":{"content"\n') == []
        assert assembler.feed(b':"hi"}}]}\n' + record("z").encode()) == ["hi", "z"]

    def test_keepalive_between_split_halves(self):
        chunks = [b'data: {"choices":[{"del\n', b": ping\n", b'ta":{"content":"ok"}}]}\n']
        assert run(chunks) == ["ok"]
        assert run([b"".join(chunks)]) == ["ok"]

    def test_malformed_then_finish_yields_nothing(self):
        assembler = StreamingResponseAssembler()

        assert assembler.feed(b"data: {not json\n") == []
        assert assembler.finish() == []

    def test_malformed_record_does_not_swallow_next_valid_record(self):
        wire = ("data: {broken\n" + record("ok")).encode()
        assert run([wire]) == ["ok"]

    def test_malformed_record_defers_rest_of_chunk(self):
        assembler = StreamingResponseAssembler()

        assert assembler.feed(("data: {broken\n" + record("later")).encode()) == []
        assert assembler.feed(b"") == ["later"]

    def test_consecutive_malformed_records_are_dropped(self):
        wire = ("data: {one\n" + "data: {two\n" + record("three")).encode()
        assert run([wire]) == ["three"]

        chunks = [b"data: {one\n", b"data: {two\n", record("three").encode()]
        assert run(chunks) == ["three"]

    def test_malformed_record_never_raises(self):
        assembler = StreamingResponseAssembler()
        assembler.feed(b"data: }}}{{{\n")
        assembler.feed(b"data: [\n")
        assert assembler.finish() == []


class TestFinish:
    def test_unterminated_final_line_is_processed(self):
        wire = record("tail").rstrip("\n").encode()
        assembler = StreamingResponseAssembler()

        assert assembler.feed(wire) == []
        assert assembler.finish() == ["tail"]

    def test_finish_on_record_boundary(self):
        assembler = StreamingResponseAssembler()
        assembler.feed(record("a").encode())
        assert assembler.finish() == []

    def test_finish_drops_incomplete_utf8(self):
        wire = record("ok").encode() + "🚀".encode("utf-8")[:2]
        assert run([wire]) == ["ok"]

    def test_finish_is_idempotent(self):
        assembler = StreamingResponseAssembler()
        assembler.feed(record("once").rstrip("\n").encode())

        assert assembler.finish() == ["once"]
        assert assembler.finish() == []
        assert assembler.feed(record("after").encode()) == []

    def test_empty_stream(self):
        assert run([]) == []
        assert run([b""]) == []


class TestDrivers:
    @pytest.mark.asyncio
    async def test_iter_deltas_stops_after_done(self):
        pulled = []

        async def source():
            for chunk in [record("a").encode(), b"data: [DONE]\n", record("b").encode()]:
                pulled.append(chunk)
                yield chunk

        deltas = [d async for d in iter_deltas(source())]

        assert deltas == ["a"]
        assert len(pulled) == 2

    @pytest.mark.asyncio
    async def test_iter_deltas_closes_source_after_done(self):
        closed = False

        async def source():
            nonlocal closed
            try:
                for chunk in [record("a").encode(), b"data: [DONE]\n", record("b").encode()]:
                    yield chunk
            finally:
                closed = True

        deltas = [d async for d in iter_deltas(source())]

        assert deltas == ["a"]
        assert closed

    @pytest.mark.asyncio
    async def test_assemble_stream_fills_sink(self):
        sink = TextBufferSink()
        chunks = [record("Hel").encode(), record("lo").encode()[:10], record("lo").encode()[10:]]

        text = await assemble_stream(chunk_source(chunks), sink)

        assert text == "Hello"
        assert sink.text == "Hello"

    @pytest.mark.asyncio
    async def test_sink_receives_delta_before_next_chunk(self):
        sink = TextBufferSink()
        seen = []

        async def source():
            yield record("one").encode()
            seen.append(sink.text)
            yield record("two").encode()

        await assemble_stream(source(), sink)

        assert seen == ["one"]

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        sink = TextBufferSink()

        async def failing_source():
            yield record("partial").encode()
            raise ConnectionError("connection reset")

        with pytest.raises(ConnectionError, match="connection reset"):
            await assemble_stream(failing_source(), sink)

        assert sink.text == "partial"

    def test_text_buffer_sink_reset(self):
        sink = TextBufferSink()
        sink.append("a")
        sink.append("b")
        assert sink.text == "ab"

        sink.reset()
        assert sink.text == ""
