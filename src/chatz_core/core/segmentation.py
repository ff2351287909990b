"""Segment assistant/user message text into typed segments for rendering.

Parses message text into ordered regions:
- TEXT: prose, entity-decoded, inline markup normalized
- CODE: raw code with a lowercase language tag

Line scanner with three states (IN_TEXT, IN_FENCE, IN_INLINE_CODE_RUN).
Fenced blocks are claimed first; inline code runs are only looked for when
the message has no fenced block at all and reads as coding-related. Segment
spans tile the source text exactly, so every character is claimed by one
segment even when its normalized content drops surrounding whitespace.

// [LAW:dataflow-not-control-flow] parse_message() is a pure function: text in, segments out.
// [LAW:one-source-of-truth] All message segmentation logic lives here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum

from chatz_core.core.language import detect_language
from chatz_core.core.post_processing import INLINE_HTML_ENTITIES, decode_html_entities


# ─── Data model ──────────────────────────────────────────────────────────────


class SegmentKind(Enum):
    TEXT = "text"
    CODE = "code"


class ScanState(Enum):
    IN_TEXT = "in_text"
    IN_FENCE = "in_fence"
    IN_INLINE_CODE_RUN = "in_inline_code_run"


@dataclass(frozen=True)
class Span:
    start: int
    end: int  # exclusive


@dataclass(frozen=True)
class TextSegment:
    content: str
    span: Span = Span(0, 0)

    @property
    def kind(self) -> SegmentKind:
        return SegmentKind.TEXT


@dataclass(frozen=True)
class CodeSegment:
    content: str
    language: str
    span: Span = Span(0, 0)

    @property
    def kind(self) -> SegmentKind:
        return SegmentKind.CODE


Segment = TextSegment | CodeSegment


@dataclass(frozen=True)
class ParsedMessage:
    segments: tuple[Segment, ...]
    has_code: bool
    is_coding_related: bool


@dataclass(frozen=True)
class _Line:
    start: int
    end: int  # exclusive, before the newline
    next_start: int  # start of the following line
    text: str


# ─── Regex patterns ──────────────────────────────────────────────────────────

# Fence open: optional indent, 3+ backticks or tildes, optional info string
FENCE_OPEN_RE = re.compile(r"^([ \t]*)(`{3,}|~{3,})(.*)$")

# Whole-message fenced-block check (used by the coding heuristic only)
FENCED_BLOCK_RE = re.compile(r"(```|~~~)[\s\S]*?\1")

_CODE_KEYWORDS = r"function|const|let|var|class|def|import|export|if|for|while|return|console|print"

# Line that opens an inline code run
CODE_RUN_START_RE = re.compile(
    r"^\s*(?:(?:" + _CODE_KEYWORDS + r")\b|\w+\s*[=:]|[{}();])"
)

# Line that continues an already-open run
CODE_RUN_CONTINUE_RE = re.compile(
    r"^\s*(?:[{}();=<>\[\]]|(?:function|const|let|var|class|def|if|for|while|return)\b"
    r"|\w+\s*[=:]|[\w.]+\([^)]*\)|[\w.]+\s*[=:]|[})])"
)

MATH_MACROS = (
    "frac", "sqrt", "sum", "int", "cdot", "times", "div", "lambda", "alpha",
    "beta", "gamma", "delta", "theta", "pi", "sigma", "omega", "Delta", "nabla",
)

_LATEX_DELIM_RE = re.compile(r"\\[\[\(]")
_LATEX_LINE_RE = re.compile(
    r"\\[\[\(]|\$\$|\\(?:" + "|".join(MATH_MACROS) + r")(?![A-Za-z])"
)

# Inline markup normalization
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*(.+?)\*")
_LINK_RE = re.compile(r"\[([^\]\n]+)\]\((https?://[^)\s]+)\)")

_CODE_INDICATOR_RES = (
    re.compile(
        r"\b(function|const|let|var|class|interface|import|export|def|return|if|else|for|while|try|catch)\b"
    ),
    re.compile(r"[{}();=<>\[\]]"),
    re.compile(r"\b(console\.log|print|printf|System\.out)"),
    re.compile(r"^\s*(def|function|class|import|export|const|let|var)\s+", re.MULTILINE),
)

CODING_KEYWORDS = frozenset({
    "code", "programming", "function", "variable", "algorithm", "syntax",
    "debug", "error", "bug", "compile", "script", "javascript", "python",
    "java", "react", "node", "html", "css", "api", "database", "sql",
    "array", "object", "class", "method", "framework", "library",
    "component", "props", "state", "hook", "typescript", "jsx", "tsx",
    "write", "create", "build", "make", "generate", "show", "fix",
    "implement", "develop", "program", "application", "app",
    "software", "web", "mobile", "backend", "frontend", "fullstack",
})

_CODING_QUESTION_RES = (
    re.compile(r"\bhow\s+to\b.*\b(code|program|implement|create|build|write)\b", re.IGNORECASE),
    re.compile(r"\b(write|create|build|make|generate)\s+.*\bcode\b", re.IGNORECASE),
    re.compile(r"\bcode\s+for\b.*\b(function|class|component|program)\b", re.IGNORECASE),
    re.compile(
        r"\bimplement\s+.*\b(in|using|with)\b.*\b(javascript|python|java|react|html|css)\b",
        re.IGNORECASE,
    ),
)

_CODING_REQUEST_RES = (
    re.compile(
        r"\b(write|create|build|make|generate|show|fix|debug|help with|solve)\s+.*"
        r"\b(code|function|component|script|program|algorithm)\b"
    ),
    re.compile(r"\b(how to|can you|please)\s+.*\b(code|program|implement|create|build)\b"),
    re.compile(r"\berror\b.*\bcode\b|\bbug\b.*\bfix\b"),
    re.compile(r"\bimplement\b|\brefactor\b|\boptimize\b"),
)

# Inline runs shorter than this on a single line stay prose
MIN_SINGLE_LINE_RUN = 15


# ─── Classification helpers ──────────────────────────────────────────────────


def has_code_block(content: str) -> bool:
    return bool(FENCED_BLOCK_RE.search(content))


def is_coding_related(content: str) -> bool:
    """Keyword, structural-token, fence, or coding-question match.

    Deliberately loose: a single bracket or a keyword substring is enough.
    """
    lower = content.lower()
    if any(keyword in lower for keyword in CODING_KEYWORDS):
        return True
    if any(pattern.search(content) for pattern in _CODE_INDICATOR_RES):
        return True
    if has_code_block(content):
        return True
    return any(pattern.search(content) for pattern in _CODING_QUESTION_RES)


def is_user_coding_request(content: str) -> bool:
    """True when a user message asks for code to be written, fixed, or explained."""
    lower = content.lower()
    if any(pattern.search(lower) for pattern in _CODING_REQUEST_RES):
        return True
    return is_coding_related(content)


def normalize_inline_markup(value: str) -> str:
    """Decode entities, convert **bold**, *italic* and [links](url) to inline HTML, trim."""
    text = decode_html_entities(value, INLINE_HTML_ENTITIES)
    text = _BOLD_RE.sub(r"<strong>\1</strong>", text)
    text = _ITALIC_RE.sub(r"<em>\1</em>", text)
    text = _LINK_RE.sub(r'<a href="\2" target="_blank" rel="noopener noreferrer">\1</a>', text)
    return text.strip()


# ─── Line scanning ───────────────────────────────────────────────────────────


def _split_lines(text: str, start: int = 0, end: int | None = None) -> list[_Line]:
    """Split text[start:end] into lines carrying absolute offsets."""
    end = len(text) if end is None else end
    lines: list[_Line] = []
    pos = start
    while pos < end:
        nl = text.find("\n", pos, end)
        if nl == -1:
            lines.append(_Line(pos, end, end, text[pos:end]))
            break
        lines.append(_Line(pos, nl, nl + 1, text[pos:nl]))
        pos = nl + 1
    return lines


def _find_fence_close(line: str, marker_char: str, marker_len: int) -> re.Match[str] | None:
    """First run of at least marker_len marker characters anywhere on the line."""
    return re.search(f"{re.escape(marker_char)}{{{marker_len},}}", line)


@dataclass(frozen=True)
class _Claim:
    """A raw region of the source claimed by one output segment."""

    start: int
    end: int
    segment: Segment


def _scan_fences(text: str, lines: list[_Line]) -> list[_Claim]:
    """IN_TEXT ⇄ IN_FENCE pass. Returns claims for closed fences only.

    An opener that never closes is rolled back: its line stays text and
    scanning resumes on the next line.
    """
    claims: list[_Claim] = []
    state = ScanState.IN_TEXT
    opener_idx = 0
    marker_char = ""
    marker_len = 0
    info = ""
    i = 0

    while i < len(lines):
        line = lines[i]
        if state is ScanState.IN_TEXT:
            m = FENCE_OPEN_RE.match(line.text)
            if m:
                marker = m.group(2)
                info_raw = m.group(3).strip()
                # Backtick info strings cannot contain backticks
                if not (marker[0] == "`" and "`" in info_raw):
                    state = ScanState.IN_FENCE
                    opener_idx = i
                    marker_char = marker[0]
                    marker_len = len(marker)
                    info = info_raw
            i += 1
            continue

        # IN_FENCE
        close = _find_fence_close(line.text, marker_char, marker_len)
        if close:
            opener = lines[opener_idx]
            # Anything after the closing marker on this line is left as prose
            end = line.start + close.end()
            body = text[opener.next_start:line.start + close.start()].strip()
            if body:
                language = info.split()[0].lower() if info else detect_language(body)
                claims.append(_Claim(opener.start, end, CodeSegment(body, language)))
            else:
                # Empty fence: claimed so it cannot be re-read as text
                claims.append(_Claim(opener.start, end, TextSegment("")))
            state = ScanState.IN_TEXT
            i += 1
            continue
        i += 1
        if i == len(lines):
            # Unterminated: roll back to just after the opener
            state = ScanState.IN_TEXT
            i = opener_idx + 1

    return claims


def _in_latex_context(lines: list[_Line], idx: int) -> bool:
    if _LATEX_LINE_RE.search(lines[idx].text):
        return True
    if idx > 0 and _LATEX_DELIM_RE.search(lines[idx - 1].text):
        return True
    return idx + 1 < len(lines) and bool(_LATEX_DELIM_RE.search(lines[idx + 1].text))


def _scan_inline_code(text: str, lines: list[_Line]) -> list[_Claim]:
    """IN_TEXT ⇄ IN_INLINE_CODE_RUN pass over lines with no fenced blocks.

    LaTeX context is a transition guard: such a line neither opens nor
    extends a run, so formulas are never read as code.
    """
    claims: list[_Claim] = []
    state = ScanState.IN_TEXT
    run: list[int] = []

    def close_run() -> None:
        while run and not lines[run[-1]].text.strip():
            run.pop()
        if not run:
            return
        first = lines[run[0]]
        last = lines[run[-1]]
        if len(run) > 1 or len(first.text.strip()) > MIN_SINGLE_LINE_RUN:
            code = text[first.start:last.end].strip()
            claims.append(
                _Claim(first.start, last.next_start, CodeSegment(code, detect_language(code)))
            )
        run.clear()

    for idx, line in enumerate(lines):
        guarded = _in_latex_context(lines, idx)
        if state is ScanState.IN_TEXT:
            if not guarded and CODE_RUN_START_RE.match(line.text):
                state = ScanState.IN_INLINE_CODE_RUN
                run.append(idx)
            continue

        # IN_INLINE_CODE_RUN
        if not guarded and (not line.text.strip() or CODE_RUN_CONTINUE_RE.match(line.text)):
            run.append(idx)
            continue
        close_run()
        state = ScanState.IN_TEXT

    close_run()
    return claims


# ─── Assembly ────────────────────────────────────────────────────────────────


def _fill_text_gaps(text: str, claims: list[_Claim]) -> list[_Claim]:
    """Interleave TextSegment claims for the unclaimed gaps, in document order."""
    filled: list[_Claim] = []
    pos = 0
    for claim in claims:
        if claim.start > pos:
            filled.append(_Claim(pos, claim.start, TextSegment(normalize_inline_markup(text[pos:claim.start]))))
        filled.append(claim)
        pos = claim.end
    if pos < len(text):
        filled.append(_Claim(pos, len(text), TextSegment(normalize_inline_markup(text[pos:]))))
    return filled


def _tile(claims: list[_Claim], text_length: int) -> tuple[Segment, ...]:
    """Drop empty text claims and stretch spans so they tile [0, text_length)."""
    kept = [
        c for c in claims
        if not (isinstance(c.segment, TextSegment) and not c.segment.content)
    ]
    if not kept:
        return ()
    segments: list[Segment] = []
    for i, claim in enumerate(kept):
        start = 0 if i == 0 else kept[i].start
        end = text_length if i == len(kept) - 1 else kept[i + 1].start
        segments.append(replace(claim.segment, span=Span(start, end)))
    return tuple(segments)


def parse_message(content: str) -> ParsedMessage:
    """Split a message into ordered text/code segments.

    Always returns at least one segment; empty or whitespace-only input
    yields a single empty TextSegment.
    """
    content = content or ""
    lines = _split_lines(content)
    claims = _scan_fences(content, lines)

    if not claims and is_coding_related(content):
        claims = _scan_inline_code(content, lines)

    segments = _tile(_fill_text_gaps(content, claims), len(content))
    if not segments:
        segments = (TextSegment(normalize_inline_markup(content), Span(0, len(content))),)

    has_code = any(isinstance(s, CodeSegment) for s in segments)
    return ParsedMessage(
        segments=segments,
        has_code=has_code,
        is_coding_related=is_coding_related(content),
    )
