"""Tests for chatz_core.pipeline.sse: line decoding and stream reassembly."""

import json
import logging

from chatz_core.core.segmentation import SegmentKind
from chatz_core.pipeline.sse import (
    SSELineDecoder,
    StreamPhase,
    StreamReassembler,
    delta_extractor,
)
from tests.harness import (
    DONE_FRAME,
    anthropic_frame,
    make_sse_stream,
    openai_frame,
    split_bytes,
)


def raw_openai_frame(text):
    """openai_frame() without ASCII escaping, so multi-byte UTF-8 reaches the wire."""
    event = {"choices": [{"delta": {"content": text}}]}
    return b"data: " + json.dumps(event, ensure_ascii=False).encode("utf-8") + b"\n\n"


def feed_all(reassembler, chunks):
    updates = []
    for chunk in chunks:
        updates.extend(reassembler.feed(chunk))
    return updates


# ─── SSELineDecoder ──────────────────────────────────────────────────────────


class TestLineDecoder:
    def test_split_multibyte_sequence(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: caf\xc3") == []
        assert decoder.feed(b"\xa9\n") == ["data: café"]

    def test_partial_line_carried(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: a") == []
        assert decoder.feed(b"bc\ndata: d") == ["data: abc"]
        assert decoder.feed(b"\n") == ["data: d"]

    def test_crlf_terminators(self):
        assert SSELineDecoder().feed(b"a\r\nb\r\n") == ["a", "b"]

    def test_flush_returns_tail_once(self):
        decoder = SSELineDecoder()
        decoder.feed(b"tail")
        assert decoder.flush() == ["tail"]
        assert decoder.flush() == []

    def test_release_drops_pending(self):
        decoder = SSELineDecoder()
        decoder.feed(b"half a line")
        decoder.release()
        assert decoder.feed(b"\n") == [""]


# ─── Reassembly ──────────────────────────────────────────────────────────────


class TestReassembly:
    def test_byte_sized_chunks_rebuild_text(self):
        stream = b"".join(raw_openai_frame(d) for d in ["héllo ", "wörld ✓"]) + DONE_FRAME
        reassembler = StreamReassembler()
        feed_all(reassembler, split_bytes(stream, 1))
        assert reassembler.accumulated_text == "héllo wörld ✓"
        assert reassembler.phase is StreamPhase.DONE

    def test_one_update_per_delta(self):
        reassembler = StreamReassembler()
        updates = feed_all(reassembler, split_bytes(make_sse_stream(["a", "b", "c"]), 7))
        assert len(updates) == 3
        assert [u.segments[0].content for u in updates] == ["a", "ab", "abc"]

    def test_code_block_appears_once_closed(self):
        reassembler = StreamReassembler()
        first = reassembler.feed(openai_frame("```py\nprint("))
        second = reassembler.feed(openai_frame("1)\n```"))
        assert [seg.kind for seg in first[0].segments] == [SegmentKind.TEXT]
        final = second[0].segments
        assert len(final) == 1
        assert final[0].kind is SegmentKind.CODE
        assert final[0].content == "print(1)"
        assert final[0].language == "py"

    def test_done_marker_stops_consumption(self):
        reassembler = StreamReassembler()
        reassembler.feed(openai_frame("kept") + DONE_FRAME + openai_frame(" dropped"))
        assert reassembler.accumulated_text == "kept"
        assert reassembler.feed(openai_frame("more")) == []
        assert reassembler.phase is StreamPhase.DONE

    def test_finish_flushes_unterminated_last_line(self):
        reassembler = StreamReassembler()
        assert reassembler.feed(openai_frame("tail").rstrip(b"\n")) == []
        updates = reassembler.finish()
        assert len(updates) == 1
        assert reassembler.accumulated_text == "tail"
        assert reassembler.phase is StreamPhase.DONE

    def test_role_only_delta_is_not_an_update(self):
        frame = b'data: {"choices": [{"delta": {"role": "assistant"}}]}\n\n'
        reassembler = StreamReassembler()
        assert reassembler.feed(frame) == []
        assert reassembler.accumulated_text == ""

    def test_comments_and_event_lines_ignored(self):
        reassembler = StreamReassembler()
        reassembler.feed(b": keep-alive\nid: 4\nevent: message\n\n" + openai_frame("x"))
        assert reassembler.accumulated_text == "x"


class TestMalformedFrames:
    def test_malformed_payload_skipped(self, caplog):
        reassembler = StreamReassembler()
        with caplog.at_level(logging.WARNING, logger="chatz_core.pipeline.sse"):
            reassembler.feed(b"data: {not json\n\n" + openai_frame("ok"))
        assert reassembler.accumulated_text == "ok"
        assert reassembler.skipped_frames == 1
        assert reassembler.is_streaming
        assert any("malformed" in r.getMessage() for r in caplog.records)

    def test_unexpected_shapes_yield_nothing(self):
        reassembler = StreamReassembler()
        reassembler.feed(b'data: []\n\ndata: {"choices": "x"}\n\ndata: {"choices": [{"delta": {"content": 5}}]}\n\n')
        assert reassembler.accumulated_text == ""
        assert reassembler.skipped_frames == 0


class TestProtocolFamilies:
    def test_anthropic_deltas(self):
        reassembler = StreamReassembler(protocol_family="anthropic")
        start = b'event: message_start\ndata: {"type": "message_start"}\n\n'
        feed_all(reassembler, [start, make_sse_stream(["Hi ", "there"], frame=anthropic_frame, done=False)])
        reassembler.finish()
        assert reassembler.accumulated_text == "Hi there"
        assert reassembler.phase is StreamPhase.DONE

    def test_openai_frames_ignored_by_anthropic_family(self):
        reassembler = StreamReassembler(protocol_family="anthropic")
        reassembler.feed(openai_frame("nope"))
        assert reassembler.accumulated_text == ""

    def test_unknown_family_uses_openai_shape(self):
        extract = delta_extractor("something-else")
        assert extract({"choices": [{"delta": {"content": "z"}}]}) == "z"


# ─── Terminal phases ─────────────────────────────────────────────────────────


class TestTerminalPhases:
    def test_cancel_is_final(self):
        reassembler = StreamReassembler()
        reassembler.feed(openai_frame("partial"))
        reassembler.cancel()
        assert reassembler.feed(openai_frame(" more")) == []
        assert reassembler.finish() == []
        reassembler.fail()
        assert reassembler.phase is StreamPhase.CANCELLED
        assert reassembler.accumulated_text == "partial"

    def test_fail_keeps_partial_text(self):
        reassembler = StreamReassembler()
        reassembler.feed(openai_frame("half"))
        reassembler.fail()
        assert reassembler.phase is StreamPhase.FAILED
        assert reassembler.rendered_text == "half"

    def test_done_is_not_overwritten_by_cancel(self):
        reassembler = StreamReassembler()
        reassembler.feed(make_sse_stream(["x"]))
        reassembler.cancel()
        assert reassembler.phase is StreamPhase.DONE


def test_transform_applies_to_views_only():
    reassembler = StreamReassembler()
    reassembler.feed(openai_frame("I am Groq"))
    assert reassembler.accumulated_text == "I am Groq"
    assert reassembler.rendered_text == "I am intgo"
    assert reassembler.snapshot().segments[0].content == "I am intgo"
