"""Tests for chatz_core.pipeline.response_assembler.assemble_response."""

import logging
import threading

import pytest

from chatz_core.pipeline.response_assembler import (
    AssembledResponse,
    RecordingSink,
    StreamSink,
    assemble_response,
)
from chatz_core.pipeline.sse import StreamPhase
from tests.harness import (
    DONE_FRAME,
    ClosableStream,
    anthropic_frame,
    make_sse_stream,
    openai_frame,
    split_bytes,
)


class BrokenSink(StreamSink):
    def on_update(self, parsed):
        raise RuntimeError("sink exploded")

    def on_done(self, response):
        raise RuntimeError("sink exploded again")


class CancelOnFirstUpdate(StreamSink):
    def __init__(self, event):
        self.event = event

    def on_update(self, parsed):
        self.event.set()


# ─── Complete strings ────────────────────────────────────────────────────────


class TestStringResult:
    def test_single_update_then_done(self):
        sink = RecordingSink()
        response = assemble_response("Hello from Groq", [sink])
        assert response.text == "Hello from intgo"
        assert response.phase is StreamPhase.DONE
        assert len(sink.updates) == 1
        assert sink.result == response

    def test_code_is_parsed(self):
        response = assemble_response("See:\n```py\nx = 1\n```")
        assert response.parsed.has_code

    def test_custom_transform(self):
        response = assemble_response("abc", transform=str.upper)
        assert response.text == "ABC"


# ─── Streams ─────────────────────────────────────────────────────────────────


class TestStreamResult:
    def test_chunks_reassembled_and_closed(self):
        sink = RecordingSink()
        stream = ClosableStream(split_bytes(make_sse_stream(["Hel", "lo"]), 5))
        response = assemble_response(stream, [sink])
        assert response.text == "Hello"
        assert response.phase is StreamPhase.DONE
        assert [u.segments[0].content for u in sink.updates] == ["Hel", "Hello"]
        assert isinstance(sink.result, AssembledResponse)
        assert stream.closed

    def test_done_marker_stops_reading(self):
        stream = ClosableStream([openai_frame("a") + DONE_FRAME, openai_frame("b")])
        response = assemble_response(stream)
        assert response.text == "a"
        assert stream.reads == 1
        assert stream.closed

    def test_exhaustion_without_done_marker(self):
        stream = ClosableStream([make_sse_stream(["x", "y"], done=False)])
        response = assemble_response(stream)
        assert response.text == "xy"
        assert response.phase is StreamPhase.DONE

    def test_anthropic_family(self):
        stream = ClosableStream([make_sse_stream(["a", "b"], frame=anthropic_frame, done=False)])
        response = assemble_response(stream, protocol_family="anthropic")
        assert response.text == "ab"

    def test_plain_iterable_without_close(self):
        response = assemble_response(iter([make_sse_stream(["ok"])]))
        assert response.text == "ok"

    def test_empty_stream_can_hold_done(self):
        sink = RecordingSink()
        response = assemble_response(ClosableStream([DONE_FRAME]), [sink], hold_empty_done=True)
        assert response.text == ""
        assert response.phase is StreamPhase.DONE
        assert sink.result is None

    def test_empty_stream_reports_done_by_default(self):
        sink = RecordingSink()
        assemble_response(ClosableStream([DONE_FRAME]), [sink])
        assert sink.result is not None


class TestStreamFailure:
    def test_transport_error_keeps_partial_text(self, caplog):
        sink = RecordingSink()
        stream = ClosableStream([openai_frame("half"), openai_frame("more")], error_after=1)
        with caplog.at_level(logging.WARNING, logger="chatz_core.pipeline.response_assembler"):
            response = assemble_response(stream, [sink])
        assert response.phase is StreamPhase.FAILED
        assert response.text == "half"
        assert sink.result is response
        assert stream.closed
        assert any("transport failed" in r.getMessage() for r in caplog.records)

    def test_programming_error_propagates_after_cleanup(self):
        stream = ClosableStream([openai_frame("a"), openai_frame("b")], error_after=1, error=RuntimeError("bug"))
        with pytest.raises(RuntimeError, match="bug"):
            assemble_response(stream)
        assert stream.closed


class TestCancellation:
    def test_cancelled_before_first_chunk(self):
        event = threading.Event()
        event.set()
        sink = RecordingSink()
        stream = ClosableStream([openai_frame("never")])
        response = assemble_response(stream, [sink], cancel_event=event)
        assert response.phase is StreamPhase.CANCELLED
        assert response.text == ""
        assert sink.updates == []
        assert stream.closed

    def test_cancelled_mid_stream(self):
        event = threading.Event()
        stream = ClosableStream([openai_frame("a"), openai_frame("b"), openai_frame("c")])
        response = assemble_response(stream, [CancelOnFirstUpdate(event)], cancel_event=event)
        assert response.phase is StreamPhase.CANCELLED
        assert response.text == "a"
        assert stream.closed

    def test_error_after_cancel_counts_as_cancellation(self):
        event = threading.Event()
        stream = ClosableStream([openai_frame("a"), openai_frame("b")], error_after=1, error=ValueError("closed"))
        response = assemble_response(stream, [CancelOnFirstUpdate(event)], cancel_event=event)
        assert response.phase is StreamPhase.CANCELLED
        assert response.text == "a"


def test_broken_sink_does_not_starve_others(caplog):
    good = RecordingSink()
    with caplog.at_level(logging.ERROR, logger="chatz_core.pipeline.response_assembler"):
        response = assemble_response(ClosableStream([make_sse_stream(["a", "b"])]), [BrokenSink(), good])
    assert response.text == "ab"
    assert len(good.updates) == 2
    assert good.result is response
    assert any("BrokenSink" in r.getMessage() for r in caplog.records)
