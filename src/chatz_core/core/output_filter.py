"""Textual scrub of model output before display.

Best-effort only: the system prompt already tells the model not to name its
vendor, and this pass catches what slips through.
"""

from __future__ import annotations

import re


DEFAULT_ASSISTANT_NAME = "intgo"
SERVICE_PLACEHOLDER = "our AI service"
REDACTED = "[REDACTED]"

_IDENTITY_RES = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"deepseek",
        r"groq",
        # A version number is consumed only when one follows the name
        r"llama(?:[\s-]*\d+(?:\.\d+)?)?",
        r"gpt(?:[\s-]*\d+)?",
        r"claude",
    )
)
_SERVICE_RE = re.compile(r"openrouter", re.IGNORECASE)
_CREDENTIAL_RES = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"api[\s-]*keys?",
        r"bearer[\s-]*token",
        r"authorization",
    )
)


def filter_sensitive_response(text: str, assistant_name: str = DEFAULT_ASSISTANT_NAME) -> str:
    """Swap vendor/model names for the assistant identity and redact credential words."""
    for pattern in _IDENTITY_RES:
        # Callable replacement keeps the configured name literal
        text = pattern.sub(lambda _m: assistant_name, text)
    text = _SERVICE_RE.sub(SERVICE_PLACEHOLDER, text)
    for pattern in _CREDENTIAL_RES:
        text = pattern.sub(REDACTED, text)
    return text
