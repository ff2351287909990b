"""Provider-result assembler.

Takes whatever a completion provider returned (a complete string or an
iterable of SSE byte chunks) and drives it to a final AssembledResponse,
pushing ParsedMessage updates to every sink along the way.

// [LAW:one-source-of-truth] Canonical location for provider result → rendered document.
// [LAW:single-enforcer] Stream close and decoder release happen here, on every exit path.
"""

from __future__ import annotations

import http.client
import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from chatz_core.core.output_filter import filter_sensitive_response
from chatz_core.core.segmentation import ParsedMessage, parse_message
from chatz_core.pipeline.sse import StreamPhase, StreamReassembler

logger = logging.getLogger(__name__)


# ─── Types ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AssembledResponse:
    text: str
    parsed: ParsedMessage
    phase: StreamPhase


ProviderResult = str | Iterable[bytes]


class StreamSink:
    """Consumer of assembly updates. Each method is called in its own error boundary."""

    def on_update(self, parsed: ParsedMessage) -> None:
        pass

    def on_done(self, response: AssembledResponse) -> None:
        pass


class RecordingSink(StreamSink):
    """Keeps every update and the final response; used by replay and tests."""

    def __init__(self) -> None:
        self.updates: list[ParsedMessage] = []
        self.result: AssembledResponse | None = None

    def on_update(self, parsed: ParsedMessage) -> None:
        self.updates.append(parsed)

    def on_done(self, response: AssembledResponse) -> None:
        self.result = response


def _notify(sinks: Sequence[StreamSink], method: str, payload) -> None:
    # [LAW:dataflow-not-control-flow] All sinks called unconditionally
    for sink in sinks:
        try:
            getattr(sink, method)(payload)
        except Exception:
            logger.exception("stream sink %s.%s failed", type(sink).__name__, method)


def _close(stream: object) -> None:
    close = getattr(stream, "close", None)
    if not callable(close):
        return
    try:
        close()
    except OSError as e:
        logger.debug("closing stream: %s", e)


# Errors a live HTTP body can raise mid-read
_TRANSPORT_ERRORS = (OSError, ValueError, http.client.HTTPException)


# ─── Assembly ────────────────────────────────────────────────────────────────


def assemble_response(
    result: ProviderResult,
    sinks: Sequence[StreamSink] = (),
    cancel_event: threading.Event | None = None,
    protocol_family: str = "openai",
    transform: Callable[[str], str] = filter_sensitive_response,
    hold_empty_done: bool = False,
) -> AssembledResponse:
    """Drive a provider result to completion, notifying sinks.

    A string is one complete update. A chunk iterable goes through a
    StreamReassembler until exhaustion, `[DONE]`, a transport error
    (FAILED, partial text kept), or cancel_event (CANCELLED).

    With hold_empty_done, a result that finished DONE without any text
    skips on_done so the caller can try another provider first.
    """
    if isinstance(result, str):
        text = transform(result)
        response = AssembledResponse(text, parse_message(text), StreamPhase.DONE)
        _notify(sinks, "on_update", response.parsed)
        if not (hold_empty_done and not text.strip()):
            _notify(sinks, "on_done", response)
        return response

    reassembler = StreamReassembler(protocol_family, transform)

    def cancelled() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    try:
        for chunk in result:
            if cancelled():
                reassembler.cancel()
                break
            for parsed in reassembler.feed(chunk):
                _notify(sinks, "on_update", parsed)
            if not reassembler.is_streaming:
                break
        if cancelled():
            reassembler.cancel()
        for parsed in reassembler.finish():
            _notify(sinks, "on_update", parsed)
    except Exception as e:
        # A canceller may close the body under us; whatever that raises is cancellation
        if cancelled():
            reassembler.cancel()
        elif isinstance(e, _TRANSPORT_ERRORS):
            logger.warning("stream transport failed after %d chars: %s", len(reassembler.accumulated_text), e)
            reassembler.fail()
        else:
            raise
    finally:
        reassembler.release()
        _close(result)

    response = AssembledResponse(reassembler.rendered_text, reassembler.snapshot(), reassembler.phase)
    if hold_empty_done and response.phase is StreamPhase.DONE and not response.text.strip():
        return response
    _notify(sinks, "on_done", response)
    return response
