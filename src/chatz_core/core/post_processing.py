"""Final cleanup for complete (non-streaming) assistant responses.

Pipeline, in order:
  1. format_code_blocks   normalize fences, missing tag becomes `code`
  2. enhance_formatting   `-`/`*` bullets become `•` outside fences
  3. rescue_formulas      math mislabeled as code becomes a `\\[ ... \\]` block
  4. decode_html_entities entity decoding to a fixed point

Every stage is a str -> str function and post_process() is idempotent.

// [LAW:dataflow-not-control-flow] Stages are a static tuple applied in sequence.
// [LAW:one-source-of-truth] Entity tables live here; segmentation reuses them.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from types import MappingProxyType


# ─── Entity decoding ─────────────────────────────────────────────────────────

# &amp; goes last so "&amp;lt;" takes two passes instead of one
HTML_ENTITIES = MappingProxyType({
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&#x27;": "'",
    "&nbsp;": "\u00a0",
    "&copy;": "©",
    "&reg;": "®",
    "&amp;": "&",
})

INLINE_HTML_ENTITIES = MappingProxyType({
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#x27;": "'",
    "&#39;": "'",
    "&amp;": "&",
})


def decode_html_entities(text: str, entities=HTML_ENTITIES) -> str:
    """Replace named/numeric entities from the table until nothing changes."""
    previous = None
    while previous != text:
        previous = text
        for entity, char in entities.items():
            text = text.replace(entity, char)
    return text


# ─── Code fences ─────────────────────────────────────────────────────────────

_FENCE_BLOCK_RE = re.compile(r"```([\w+#.-]+)?\n([\s\S]*?)```")
_FENCE_LINE_RE = re.compile(r"^\s*(```|~~~)")
_BULLET_RE = re.compile(r"^([ \t]*)[-*][ \t]+")
# Display-math block lines written by rescue_formulas
_MATH_OPEN_RE = re.compile(r"^\s*\\\[\s*$")
_MATH_CLOSE_RE = re.compile(r"^\s*\\\]\s*$")


def format_code_blocks(text: str) -> str:
    """Trim fence bodies and tag untagged fences as `code`."""

    def _fmt(m: re.Match) -> str:
        language = m.group(1) or "code"
        return f"```{language}\n{m.group(2).strip()}\n```"

    return _FENCE_BLOCK_RE.sub(_fmt, text)


def enhance_formatting(text: str) -> str:
    """Turn markdown list markers into bullets.

    Lines inside code fences and inside `\\[ ... \\]` display-math blocks are
    left alone, so a rescued formula keeps its leading minus signs.
    """
    out: list[str] = []
    in_fence = False
    in_math = False
    for line in text.split("\n"):
        if not in_math and _FENCE_LINE_RE.match(line):
            in_fence = not in_fence
        elif not in_fence and not in_math and _MATH_OPEN_RE.match(line):
            in_math = True
        elif in_math and _MATH_CLOSE_RE.match(line):
            in_math = False
        elif not (in_fence or in_math):
            line = _BULLET_RE.sub(r"\1• ", line)
        out.append(line)
    return "\n".join(out)


# ─── Formula rescue ──────────────────────────────────────────────────────────

FORMULA_LANGUAGES = frozenset({
    "javascript", "css", "python", "java", "c++", "code", "math", "latex", "tex",
})

MATH_MACRO_RE = re.compile(
    r"\\(?:frac|lambda|alpha|beta|gamma|delta|theta|pi|sigma|omega"
    r"|sum|int|sqrt|Delta|nabla|cdot|times|infty|partial)(?![A-Za-z])"
)

_FORMULA_LINE_RE = re.compile(r"^[\w\s^*/+\-=().,·×÷±√²³≤≥≈∞|<>]+$")
_OPERATOR_RE = re.compile(r"[+\-*/^×÷·±]")
_CODE_WORD_RE = re.compile(
    r"\b(def|return|function|const|let|var|class|import|print|if|else|for|while|console)\b"
)

_LANGUAGE_FENCE_RE = re.compile(r"```([\w+#.-]+)\n([\s\S]*?)\n?```")

MAX_FORMULA_LINES = 3


def is_formula_shaped(body: str) -> bool:
    """Equation-looking text with no statement syntax (`F = m * a`)."""
    lines = [line for line in body.strip().splitlines() if line.strip()]
    if not lines or len(lines) > MAX_FORMULA_LINES:
        return False
    if not all(_FORMULA_LINE_RE.match(line) for line in lines):
        return False
    if _CODE_WORD_RE.search(body):
        return False
    return "=" in body and bool(_OPERATOR_RE.search(body.replace("=", " ")))


def rescue_formulas(text: str) -> str:
    """Rewrite math mislabeled as code into display-math blocks."""

    def _rescue(m: re.Match) -> str:
        language = m.group(1).lower()
        body = m.group(2).strip()
        if language not in FORMULA_LANGUAGES:
            return m.group(0)
        if MATH_MACRO_RE.search(body) or is_formula_shaped(body):
            return f"\n\\[\n{body}\n\\]\n"
        return m.group(0)

    return _LANGUAGE_FENCE_RE.sub(_rescue, text)


# ─── Pipeline ────────────────────────────────────────────────────────────────

_STAGES: tuple[Callable[[str], str], ...] = (
    format_code_blocks,
    enhance_formatting,
    rescue_formulas,
    decode_html_entities,
)


def post_process(text: str) -> str:
    """Run every cleanup stage over a complete response."""
    for stage in _STAGES:
        text = stage(text)
    return text
