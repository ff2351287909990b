"""Screening of untrusted user text before it is forwarded to a provider.

Rejection is a classification result, never an exception: callers read the
ValidationResult and pick a canned reply.

// [LAW:single-enforcer] Injection policy is decided here and nowhere else.
// [LAW:dataflow-not-control-flow] Pattern categories are static tables walked in order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

logger = logging.getLogger(__name__)


MAX_MESSAGE_LENGTH = 10_000
SPECIAL_CHAR_THRESHOLD = 10

REASON_TOO_LONG = "message_too_long"
REASON_INJECTION = "prompt_injection_detected"


class InjectionCategory(Enum):
    SYSTEM_PROMPT = "system_prompt"
    GENERAL = "general"
    NONE = "none"


@dataclass(frozen=True)
class InjectionVerdict:
    detected: bool
    category: InjectionCategory = InjectionCategory.NONE


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    sanitized: str
    reason: str | None = None
    injection_category: InjectionCategory | None = None


_NO_INJECTION = InjectionVerdict(detected=False)


def _compile(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# ─── Pattern tables ──────────────────────────────────────────────────────────

# Checked first; a hit here wins over every other category.
SYSTEM_PROMPT_PATTERNS = _compile(
    r"system\s*prompt",
    r"show\s*(me\s*)?(your\s*)?((system|original|initial|base)\s*)?(prompt|instruction)",
    r"what(\s+is|\s+are)\s+(your\s+)?(system\s+)?(prompt|instruction)",
    r"tell\s+me\s+(your\s+)?(system\s+)?(prompt|instruction)",
    r"reveal\s+(your\s+)?(system\s+)?(prompt|instruction)",
    r"repeat\s+(your\s+)?(first|initial|original)\s*(message|instruction|prompt)",
)

INJECTION_PATTERNS = MappingProxyType({
    "system_prompt": SYSTEM_PROMPT_PATTERNS + _compile(
        r"display\s+(your\s+)?(system\s+)?(prompt|instruction)",
    ),
    "credentials": _compile(
        r"api\s*key",
        r"secret\s*key",
        r"authorization\s*key",
        r"access\s*token",
        r"bearer\s*token",
        r"(show|tell|reveal|display|what(\s+is|\s+are))\s+(me\s+)?(your\s+)?key",
    ),
    "model_identity": _compile(
        r"what(\s+is|\s+are)\s+(your\s+)?(real|actual|original|true)\s*(model|name)",
        r"(which|what)\s+model\s+(are\s+you|do\s+you\s+use)",
        r"tell\s+me\s+(your\s+)?(real|actual|original|true)\s*(model|name)",
        r"(gpt|claude|llama|deepseek|groq|openai|anthropic)",
    ),
    "backend": _compile(
        r"backend",
        r"server\s*config",
        r"environment\s*variable",
        r"\.env",
        r"configuration",
        r"database",
        r"(show|tell|reveal|display)\s+(me\s+)?(your\s+)?(code|source|config|setup)",
    ),
    "jailbreak": _compile(
        r"(ignore|forget|disregard|override)\s+(previous|all|above)\s*(instruction|prompt|rule)",
        r"new\s*(instruction|prompt|rule|mode)",
        r"(developer|debug|admin|god)\s*mode",
        r"you\s+are\s+now",
        r"act\s+as\s+(if\s+)?(you\s+are|a)",
        r"pretend\s+(to\s+be|you\s+are)",
        r"simulate",
    ),
    "system_tags": _compile(
        r"\[SYSTEM\]",
        r"\[ADMIN\]",
        r"\[ROOT\]",
        r"<system>",
        r"(execute|run)\s+command",
    ),
    "encoding": _compile(
        r"base64",
        r"hex\s*encode",
        r"rot13",
        r"unicode",
    ),
    "prompt_leak": _compile(
        r"what\s+(were|was)\s+(your\s+)?(first|initial|original)\s*(message|instruction|prompt)",
    ),
})

_SPECIAL_CHARS_RE = re.compile(r"[<>{}\[\]\\|]")

_SYSTEM_TAG_RES = _compile(r"\[SYSTEM\]", r"\[ADMIN\]", r"\[ROOT\]", r"<system>", r"<admin>")

_SUSPICIOUS_IDENTITY_RES = _compile(
    r"what\s+(are\s+you|is\s+your\s+name)\s+(really|actually)",
    r"true\s+(identity|name)",
    r"real\s+(identity|name|model)",
    r"based\s+on\s+what\s+model",
    r"powered\s+by\s+what",
)

# XSS stripping, applied outside fenced code only
_XSS_SUBS = (
    (re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL), ""),
    (re.compile(r"<iframe[^>]*>.*?</iframe>", re.IGNORECASE | re.DOTALL), ""),
    (re.compile(r"\bon\w+\s*=\s*[\"'][^\"']*[\"']", re.IGNORECASE), ""),
    (re.compile(r"javascript:", re.IGNORECASE), ""),
    (re.compile(r"<embed[^>]*>", re.IGNORECASE), ""),
    (re.compile(r"<object[^>]*>.*?</object>", re.IGNORECASE | re.DOTALL), ""),
)
_FENCED_RE = re.compile(r"```[\s\S]*?```")


# ─── Detection ───────────────────────────────────────────────────────────────


def _preview(text: str) -> str:
    return text[:100]


def detect_prompt_injection(text: str) -> InjectionVerdict:
    """Classify text against the injection battery.

    Order: system-prompt extraction, every other category, the code-fence
    plus system/prompt rule, then special-character density.
    """
    normalized = (text or "").strip()
    lower = normalized.lower()

    if any(p.search(normalized) for p in SYSTEM_PROMPT_PATTERNS):
        logger.warning("system prompt extraction attempt: %r", _preview(normalized))
        return InjectionVerdict(True, InjectionCategory.SYSTEM_PROMPT)

    for category, patterns in INJECTION_PATTERNS.items():
        if any(p.search(normalized) for p in patterns):
            logger.warning("prompt injection (%s): %r", category, _preview(normalized))
            return InjectionVerdict(True, InjectionCategory.GENERAL)

    if "```" in normalized and ("system" in lower or "prompt" in lower):
        logger.warning("fenced system/prompt request: %r", _preview(normalized))
        return InjectionVerdict(True, InjectionCategory.GENERAL)

    # Fires on density alone, with no keyword match needed
    if len(_SPECIAL_CHARS_RE.findall(normalized)) > SPECIAL_CHAR_THRESHOLD:
        logger.warning("special character density exceeded: %r", _preview(normalized))
        return InjectionVerdict(True, InjectionCategory.GENERAL)

    return _NO_INJECTION


def is_suspicious_identity_question(text: str) -> bool:
    return any(p.search(text or "") for p in _SUSPICIOUS_IDENTITY_RES)


# ─── Sanitizing ──────────────────────────────────────────────────────────────


def sanitize_input(text: str) -> str:
    """Replace privileged role tags with [REDACTED]."""
    for pattern in _SYSTEM_TAG_RES:
        text = pattern.sub("[REDACTED]", text)
    return text


def strip_xss(text: str) -> str:
    for pattern, replacement in _XSS_SUBS:
        text = pattern.sub(replacement, text)
    return text


def strip_xss_preserve_code(text: str) -> str:
    """strip_xss() on everything except fenced code blocks, which pass through verbatim."""
    out: list[str] = []
    pos = 0
    for m in _FENCED_RE.finditer(text):
        out.append(strip_xss(text[pos:m.start()]))
        out.append(m.group(0))
        pos = m.end()
    out.append(strip_xss(text[pos:]))
    return "".join(out)


# ─── Entry point ─────────────────────────────────────────────────────────────


def validate_message(text: str) -> ValidationResult:
    """Length cap first, then injection screening, then sanitizing."""
    text = text or ""
    sanitized = strip_xss_preserve_code(sanitize_input(text))

    if len(text) > MAX_MESSAGE_LENGTH:
        return ValidationResult(False, sanitized, reason=REASON_TOO_LONG)

    verdict = detect_prompt_injection(text)
    if verdict.detected:
        return ValidationResult(
            False,
            text,
            reason=REASON_INJECTION,
            injection_category=verdict.category,
        )

    return ValidationResult(True, sanitized)
