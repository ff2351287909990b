"""Incremental SSE decoding and streaming-text reassembly.

SSELineDecoder turns arbitrary byte chunks into complete lines, carrying
split UTF-8 sequences and partial lines across chunk boundaries.
StreamReassembler drives the STREAMING -> DONE | CANCELLED | FAILED phase
machine and re-parses the full accumulated text on every delta.

// [LAW:one-source-of-truth] accumulated_text is the only stream state; views are derived from it.
// [LAW:dataflow-not-control-flow] Protocol family selects the delta extractor via table lookup.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import Callable
from enum import Enum

from chatz_core.core.output_filter import filter_sensitive_response
from chatz_core.core.segmentation import ParsedMessage, parse_message

logger = logging.getLogger(__name__)


DONE_MARKER = "[DONE]"


class StreamPhase(Enum):
    STREAMING = "streaming"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


# ─── Line decoding ───────────────────────────────────────────────────────────


class SSELineDecoder:
    """Bytes in, complete `\\n`-terminated lines out (without the terminator)."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        text = self._pending + self._decoder.decode(chunk)
        *lines, self._pending = text.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return whatever is left as a final line, then reset."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self.release()
        tail = tail.rstrip("\r")
        return [tail] if tail else []

    def release(self) -> None:
        self._decoder.reset()
        self._pending = ""


# ─── Delta extraction ────────────────────────────────────────────────────────


def _extract_openai_delta(event: object) -> str:
    if not isinstance(event, dict):
        return ""
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def _extract_anthropic_delta(event: object) -> str:
    if not isinstance(event, dict) or event.get("type") != "content_block_delta":
        return ""
    delta = event.get("delta")
    if not isinstance(delta, dict) or delta.get("type") != "text_delta":
        return ""
    text = delta.get("text")
    return text if isinstance(text, str) else ""


# [LAW:dataflow-not-control-flow] Provider family → delta extractor.
_DELTA_EXTRACTORS_BY_FAMILY: dict[str, Callable[[object], str]] = {
    "openai": _extract_openai_delta,
    "anthropic": _extract_anthropic_delta,
}


def delta_extractor(protocol_family: str) -> Callable[[object], str]:
    return _DELTA_EXTRACTORS_BY_FAMILY.get(protocol_family, _extract_openai_delta)


# ─── Reassembly ──────────────────────────────────────────────────────────────


class StreamReassembler:
    """Owns one in-flight response: accumulated text, decoder, phase.

    Single writer. Once the phase leaves STREAMING it never returns, so a
    cancelled or finished stream produces no further updates.
    """

    def __init__(
        self,
        protocol_family: str = "openai",
        transform: Callable[[str], str] = filter_sensitive_response,
    ) -> None:
        self._decoder = SSELineDecoder()
        self._extract = delta_extractor(protocol_family)
        self._transform = transform
        self.accumulated_text = ""
        self.phase = StreamPhase.STREAMING
        self.skipped_frames = 0

    @property
    def is_streaming(self) -> bool:
        return self.phase is StreamPhase.STREAMING

    @property
    def rendered_text(self) -> str:
        return self._transform(self.accumulated_text)

    def snapshot(self) -> ParsedMessage:
        return parse_message(self.rendered_text)

    def feed(self, chunk: bytes) -> list[ParsedMessage]:
        """Consume one transport chunk; one ParsedMessage per non-empty delta."""
        if not self.is_streaming:
            return []
        return self._consume(self._decoder.feed(chunk))

    def finish(self) -> list[ParsedMessage]:
        """End of transport: flush the trailing partial line and settle on DONE."""
        if not self.is_streaming:
            return []
        updates = self._consume(self._decoder.flush())
        self._settle(StreamPhase.DONE)
        return updates

    def cancel(self) -> None:
        self._settle(StreamPhase.CANCELLED)

    def fail(self) -> None:
        self._settle(StreamPhase.FAILED)

    def release(self) -> None:
        self._decoder.release()

    def _settle(self, phase: StreamPhase) -> None:
        if self.is_streaming:
            self.phase = phase
        self._decoder.release()

    def _consume(self, lines: list[str]) -> list[ParsedMessage]:
        updates: list[ParsedMessage] = []
        for line in lines:
            if not self.is_streaming:
                break
            delta = self._handle_line(line)
            if delta:
                self.accumulated_text += delta
                updates.append(self.snapshot())
        return updates

    def _handle_line(self, line: str) -> str:
        # Comments, event:, id: and blank separator lines carry no text
        if not line.startswith("data:"):
            return ""
        payload = line[5:].strip()
        if payload == DONE_MARKER:
            self._settle(StreamPhase.DONE)
            return ""
        if not payload:
            return ""
        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            self.skipped_frames += 1
            logger.warning("skipping malformed SSE payload: %r", payload[:80])
            return ""
        return self._extract(event)
