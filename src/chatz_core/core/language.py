"""Heuristic programming-language detection for code snippets.

Ordered fingerprint table, first match wins. The order is load-bearing:
JSX must be tested before HTML (both contain tags), and CSS before Python
(a `{...}` body would otherwise fall through to the JS/TS check).

// [LAW:dataflow-not-control-flow] detect_language() walks a static table.
// [LAW:one-source-of-truth] The fallback tag lives in FALLBACK_LANGUAGE only.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable


FALLBACK_LANGUAGE = "javascript"


# ─── Fingerprints ────────────────────────────────────────────────────────────

_JSX_HOOKS_RE = re.compile(r"\bReact\.|\buseState|\buseEffect|\bprops\.|className=")
_JSX_TAG_RE = re.compile(r"<\w+[^>]*>")
_JSX_RETURN_RE = re.compile(r"\breturn\s*\(")
_TSX_TYPES_RE = re.compile(
    r"\b(interface|type)\s+\w+|:\s*React\.|:\s*(string|number|boolean)"
)
_HTML_TAG_RE = re.compile(r"</?[a-z][\s\S]*>", re.IGNORECASE)
_HTML_CLOSE_RE = re.compile(r"</(html|body|div|p|span|h[1-6])>", re.IGNORECASE)
# Rule block needs a selector in front of the brace and a `prop:` inside,
# so bare JSON objects and `return {...}` bodies are not claimed here.
_CSS_RE = re.compile(
    r"^[ \t]*(?![ \t])(?!(?:return|const|let|var|def|if|else|for|while|class|function)\b)"
    r"[\w.#:*>+~\-\[\], ]+\{[^}]*?[\w-]+\s*:[^}]*\}"
    r"|\.[a-z-]+\s*\{|#[a-z-]+\s*\{|@media|@import",
    re.MULTILINE,
)
_PYTHON_RE = re.compile(
    r"\bdef\s+\w+\s*\(|\bimport\s+\w+|\bfrom\s+\w+\s+import|\bprint\s*\("
)
_JS_RE = re.compile(r"\b(const|let|var)\s+\w+|\bfunction\s+\w+|\bconsole\.log|=>")
_TS_TYPES_RE = re.compile(
    r"\b(interface|type)\s+\w+|:\s*\w+\[\]|:\s*(string|number|boolean)"
)
_JAVA_RE = re.compile(r"\bpublic\s+(class|static)|\bSystem\.out\.print")
_SQL_RE = re.compile(
    r"\b(SELECT|INSERT|UPDATE|DELETE|CREATE|ALTER|DROP)\b", re.IGNORECASE
)
_JSON_OPEN_RE = re.compile(r"^\s*[{\[]")
_JSON_CLOSE_RE = re.compile(r"[}\]]\s*$")


def _jsx(code: str) -> str | None:
    # A tag alone is plain markup; it takes a hook/prop idiom or a
    # `return (` render body to make it a component.
    is_component = bool(_JSX_HOOKS_RE.search(code)) or bool(
        _JSX_TAG_RE.search(code) and _JSX_RETURN_RE.search(code)
    )
    if not is_component:
        return None
    return "tsx" if _TSX_TYPES_RE.search(code) else "jsx"


def _html(code: str) -> str | None:
    if _HTML_TAG_RE.search(code) and _HTML_CLOSE_RE.search(code):
        return "html"
    return None


def _css(code: str) -> str | None:
    return "css" if _CSS_RE.search(code) else None


def _python(code: str) -> str | None:
    return "python" if _PYTHON_RE.search(code) else None


def _js_ts(code: str) -> str | None:
    if not _JS_RE.search(code):
        return None
    return "typescript" if _TS_TYPES_RE.search(code) else "javascript"


def _java(code: str) -> str | None:
    return "java" if _JAVA_RE.search(code) else None


def _sql(code: str) -> str | None:
    return "sql" if _SQL_RE.search(code) else None


def _json(code: str) -> str | None:
    stripped = code.strip()
    if not (_JSON_OPEN_RE.search(stripped) and _JSON_CLOSE_RE.search(stripped)):
        return None
    try:
        json.loads(stripped)
    except (ValueError, RecursionError):
        return None
    return "json"


# [LAW:dataflow-not-control-flow] Ordered detector table; first non-None wins.
_DETECTORS: tuple[Callable[[str], str | None], ...] = (
    _jsx,
    _html,
    _css,
    _python,
    _js_ts,
    _java,
    _sql,
    _json,
)


def detect_language(code: str) -> str:
    """Guess the language tag for a code snippet.

    Always returns a lowercase tag; ambiguous or empty input resolves to
    FALLBACK_LANGUAGE rather than failing.
    """
    if not code or not code.strip():
        return FALLBACK_LANGUAGE
    for detector in _DETECTORS:
        tag = detector(code)
        if tag is not None:
            return tag
    return FALLBACK_LANGUAGE
