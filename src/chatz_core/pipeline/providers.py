"""Completion provider registry and the urllib-based HTTP provider.

// [LAW:one-source-of-truth] Provider metadata lives in _PROVIDERS only.
// [LAW:single-enforcer] Transport failures are turned into None here; callers never see them.
"""

from __future__ import annotations

import json
import logging
import os
import ssl
import threading
import urllib.error
import urllib.request
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

import truststore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSpec:
    """Canonical metadata for one completion service."""

    key: str
    display_name: str
    protocol_family: str  # "openai" | "anthropic"
    url: str
    model: str
    api_key_env: str
    extra_headers: tuple[tuple[str, str], ...] = ()
    temperature: float = 0.7
    max_tokens: int = 4000
    top_p: float = 0.9


# // [LAW:one-source-of-truth] All supported providers are declared in this registry.
_PROVIDERS: dict[str, ProviderSpec] = {
    "groq": ProviderSpec(
        key="groq",
        display_name="Groq",
        protocol_family="openai",
        url="https://api.groq.com/openai/v1/chat/completions",
        model="llama-3.3-70b-versatile",
        api_key_env="GROQ_API_KEY",
    ),
    "deepseek": ProviderSpec(
        key="deepseek",
        display_name="DeepSeek (OpenRouter)",
        protocol_family="openai",
        url="https://openrouter.ai/api/v1/chat/completions",
        model="deepseek/deepseek-chat",
        api_key_env="DEEPSEEK_API_KEY",
        extra_headers=(
            ("HTTP-Referer", "https://chatz.local"),
            ("X-Title", "chatz-core"),
        ),
    ),
}

# Fallback chain order when settings do not override it
DEFAULT_PROVIDER_ORDER: tuple[str, ...] = ("groq", "deepseek")


def normalize_provider(provider: str) -> str:
    return str(provider or "").strip().lower()


def is_known_provider(provider: str) -> bool:
    return normalize_provider(provider) in _PROVIDERS


def get_provider_spec(provider: str) -> ProviderSpec | None:
    return _PROVIDERS.get(normalize_provider(provider))


def require_provider_spec(provider: str) -> ProviderSpec:
    """Return provider spec or raise for unknown provider keys."""
    key = normalize_provider(provider)
    if key not in _PROVIDERS:
        raise ValueError(f"unknown provider: {provider!r}")
    return _PROVIDERS[key]


def all_provider_specs() -> tuple[ProviderSpec, ...]:
    return tuple(_PROVIDERS.values())


# ─── Provider protocol ───────────────────────────────────────────────────────


class CompletionProvider(Protocol):
    key: str
    protocol_family: str

    def send(
        self,
        messages: Sequence[Mapping[str, str]],
        cancel_event: threading.Event | None = None,
    ) -> str | Iterable[bytes] | None:
        """Complete string, SSE byte-chunk iterable, or None on failure."""


# ─── HTTP provider ───────────────────────────────────────────────────────────


def _extract_openai_message(body: object) -> str:
    if not isinstance(body, dict):
        return ""
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""


def _extract_anthropic_message(body: object) -> str:
    if not isinstance(body, dict):
        return ""
    blocks = body.get("content")
    if not isinstance(blocks, list):
        return ""
    return "".join(
        b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text"
    )


# [LAW:dataflow-not-control-flow] Provider family → complete-body extractor.
_MESSAGE_EXTRACTORS_BY_FAMILY = {
    "openai": _extract_openai_message,
    "anthropic": _extract_anthropic_message,
}


def _is_event_stream(resp) -> bool:
    headers = getattr(resp, "headers", None)
    content_type = headers.get("Content-Type", "") if headers is not None else ""
    return "text/event-stream" in (content_type or "")


class HttpCompletionProvider:
    """POSTs an OpenAI-shaped chat request for one ProviderSpec."""

    def __init__(
        self,
        spec: ProviderSpec,
        *,
        stream: bool = True,
        api_key: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.spec = spec
        self.stream = stream
        self._api_key = api_key
        self.timeout = timeout

    @property
    def key(self) -> str:
        return self.spec.key

    @property
    def protocol_family(self) -> str:
        return self.spec.protocol_family

    def api_key(self) -> str:
        return self._api_key or os.environ.get(self.spec.api_key_env, "")

    def build_payload(self, messages: Sequence[Mapping[str, str]]) -> dict:
        return {
            "model": self.spec.model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "temperature": self.spec.temperature,
            "max_tokens": self.spec.max_tokens,
            "top_p": self.spec.top_p,
            "stream": self.stream,
        }

    def build_request(self, messages: Sequence[Mapping[str, str]], api_key: str) -> urllib.request.Request:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        headers.update(self.spec.extra_headers)
        if self.stream:
            headers["Accept"] = "text/event-stream"
        data = json.dumps(self.build_payload(messages)).encode("utf-8")
        return urllib.request.Request(self.spec.url, data=data, headers=headers, method="POST")

    def send(
        self,
        messages: Sequence[Mapping[str, str]],
        cancel_event: threading.Event | None = None,
    ) -> str | Iterable[bytes] | None:
        api_key = self.api_key()
        if not api_key:
            logger.info("%s: %s not set, skipping", self.key, self.spec.api_key_env)
            return None
        if cancel_event is not None and cancel_event.is_set():
            return None

        req = self.build_request(messages, api_key)
        try:
            ctx = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            resp = urllib.request.urlopen(req, context=ctx, timeout=self.timeout)
        except urllib.error.HTTPError as e:
            logger.warning("%s: HTTP %s %s", self.key, e.code, e.reason)
            e.close()
            return None
        except (urllib.error.URLError, OSError) as e:
            logger.warning("%s: request failed: %s", self.key, e)
            return None

        if self.stream and _is_event_stream(resp):
            # Caller owns the response from here and closes it when done
            return resp

        try:
            with resp:
                body = json.loads(resp.read())
        except (ValueError, OSError) as e:
            logger.warning("%s: unreadable response body: %s", self.key, e)
            return None

        extract = _MESSAGE_EXTRACTORS_BY_FAMILY.get(self.protocol_family, _extract_openai_message)
        content = extract(body)
        if not content:
            logger.warning("%s: empty completion", self.key)
            return None
        return content


def build_providers(order: Sequence[str], *, stream: bool = True) -> list[HttpCompletionProvider]:
    """HTTP providers for the given keys, in order. Unknown keys raise ValueError."""
    return [HttpCompletionProvider(require_provider_spec(key), stream=stream) for key in order]
