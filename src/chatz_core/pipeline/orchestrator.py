"""One chat turn: validate, route, call providers in priority order, assemble.

Phases:
  1. validate the latest user message (blocked → canned refusal)
  2. quick response for greetings, clock and capability questions (no provider call)
  3. build outgoing messages: system prompt, subject prompt, recent history
  4. providers in order; first non-None result that yields text wins
  5. string → post_process → assemble; stream → reassemble
  6. every provider failed → FALLBACK_RESPONSE

A new turn cancels the previous in-flight one before anything else runs.

// [LAW:single-enforcer] The fallback chain is walked here and nowhere else.
"""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from functools import partial

from chatz_core.core.input_validator import REASON_TOO_LONG, InjectionCategory, validate_message
from chatz_core.core.output_filter import DEFAULT_ASSISTANT_NAME, filter_sensitive_response
from chatz_core.core.post_processing import post_process
from chatz_core.core.prompts import (
    ERROR_RESPONSE,
    FALLBACK_RESPONSE,
    SYSTEM_PROMPT,
    TOO_LONG_RESPONSE,
    detect_subject,
    get_injection_blocked_response,
    quick_response,
    subject_system_prompt,
)
from chatz_core.core.segmentation import ParsedMessage, parse_message
from chatz_core.pipeline.providers import CompletionProvider, build_providers
from chatz_core.pipeline.response_assembler import StreamSink, assemble_response
from chatz_core.pipeline.sse import StreamPhase
import chatz_core.io.settings
from chatz_core.io.settings import DEFAULT_HISTORY_LIMIT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatResult:
    text: str
    parsed: ParsedMessage
    phase: StreamPhase
    provider: str | None = None
    blocked: bool = False


def _latest_user_text(messages: Sequence[Mapping[str, str]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return str(message.get("content") or "")
    return ""


class ChatPipeline:
    """Runs chat turns against an ordered provider list."""

    def __init__(
        self,
        providers: Sequence[CompletionProvider],
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        assistant_name: str = DEFAULT_ASSISTANT_NAME,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.providers = tuple(providers)
        self.history_limit = history_limit
        self._filter = partial(filter_sensitive_response, assistant_name=assistant_name)
        self._rng = rng or random.Random()
        self._clock = clock
        self._lock = threading.Lock()
        self._active_cancel: threading.Event | None = None
        self._active_stream: object | None = None

    @classmethod
    def from_settings(cls) -> ChatPipeline:
        settings = chatz_core.io.settings
        providers = build_providers(
            settings.load_provider_order(), stream=settings.load_stream_enabled()
        )
        return cls(
            providers,
            history_limit=settings.load_history_limit(),
            assistant_name=settings.load_assistant_name(),
        )

    # ─── Turn lifecycle ──────────────────────────────────────────────────────

    def _abort_active(self) -> None:
        # Caller holds self._lock
        if self._active_cancel is not None:
            self._active_cancel.set()
        stream, self._active_stream = self._active_stream, None
        close = getattr(stream, "close", None)
        if callable(close):
            try:
                close()
            except OSError as e:
                logger.debug("aborting stream: %s", e)

    def _begin_turn(self, cancel_event: threading.Event | None) -> threading.Event:
        event = cancel_event or threading.Event()
        with self._lock:
            self._abort_active()
            self._active_cancel = event
        return event

    def _end_turn(self, event: threading.Event) -> None:
        with self._lock:
            if self._active_cancel is event:
                self._active_cancel = None
                self._active_stream = None

    def _track_stream(self, event: threading.Event, stream: object) -> None:
        with self._lock:
            if self._active_cancel is event:
                self._active_stream = stream

    def cancel(self) -> None:
        """Cancel the in-flight turn, if any, closing its transport."""
        with self._lock:
            self._abort_active()

    # ─── Message building ────────────────────────────────────────────────────

    def build_messages(
        self,
        messages: Sequence[Mapping[str, str]],
        latest_user_text: str,
    ) -> list[dict[str, str]]:
        """System prompt, optional subject prompt, then the most recent history."""
        history = [
            {"role": str(m.get("role", "user")), "content": str(m.get("content") or "")}
            for m in messages[-self.history_limit:]
        ]
        for message in reversed(history):
            if message["role"] == "user":
                message["content"] = latest_user_text
                break

        outgoing = [{"role": "system", "content": SYSTEM_PROMPT}]
        subject = detect_subject(latest_user_text)
        if subject is not None:
            outgoing.append({"role": "system", "content": subject_system_prompt(subject)})
        return outgoing + history

    # ─── Turn ────────────────────────────────────────────────────────────────

    def respond(
        self,
        messages: Sequence[Mapping[str, str]],
        cancel_event: threading.Event | None = None,
        sinks: Sequence[StreamSink] = (),
    ) -> ChatResult:
        turn_cancel = self._begin_turn(cancel_event)
        try:
            return self._respond(messages, turn_cancel, sinks)
        except Exception:
            logger.exception("chat turn failed")
            return self._canned(ERROR_RESPONSE, sinks)
        finally:
            self._end_turn(turn_cancel)

    def _canned(self, text: str, sinks: Sequence[StreamSink], blocked: bool = False) -> ChatResult:
        assembled = assemble_response(text, sinks, transform=self._filter)
        return ChatResult(assembled.text, assembled.parsed, assembled.phase, blocked=blocked)

    def _respond(
        self,
        messages: Sequence[Mapping[str, str]],
        turn_cancel: threading.Event,
        sinks: Sequence[StreamSink],
    ) -> ChatResult:
        user_text = _latest_user_text(messages)
        validation = validate_message(user_text)
        if not validation.is_valid:
            if validation.reason == REASON_TOO_LONG:
                return self._canned(TOO_LONG_RESPONSE, sinks, blocked=True)
            refusal = get_injection_blocked_response(
                validation.injection_category is InjectionCategory.SYSTEM_PROMPT, self._rng
            )
            return self._canned(refusal, sinks, blocked=True)

        quick = quick_response(user_text, self._clock)
        if quick is not None:
            return self._canned(quick, sinks)

        outgoing = self.build_messages(messages, validation.sanitized)
        for provider in self.providers:
            if turn_cancel.is_set():
                return ChatResult("", parse_message(""), StreamPhase.CANCELLED)
            try:
                result = provider.send(outgoing, turn_cancel)
            except Exception:
                logger.exception("provider %s raised; falling through", provider.key)
                continue
            if result is None:
                logger.info("provider %s returned nothing; falling through", provider.key)
                continue
            if isinstance(result, str):
                result = post_process(result)
            else:
                self._track_stream(turn_cancel, result)
            assembled = assemble_response(
                result,
                sinks,
                turn_cancel,
                protocol_family=provider.protocol_family,
                transform=self._filter,
                hold_empty_done=True,
            )
            if assembled.phase is StreamPhase.DONE and not assembled.text.strip():
                logger.info("provider %s finished without text; falling through", provider.key)
                continue
            return ChatResult(assembled.text, assembled.parsed, assembled.phase, provider=provider.key)

        logger.warning("all %d providers failed", len(self.providers))
        return self._canned(FALLBACK_RESPONSE, sinks)
