"""Terminal rendering of parsed messages with rich.

Text segments carry inline HTML (<strong>, <em>, <a>) from normalization;
it is mapped back to rich markup here. Code segments render through
Pygments via Syntax.

// [LAW:dataflow-not-control-flow] Segment class selects the renderer via table lookup.
"""

from __future__ import annotations

import re

from rich.console import Console, ConsoleRenderable, Group
from rich.errors import MarkupError
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text

from chatz_core.core.segmentation import CodeSegment, ParsedMessage, TextSegment
from chatz_core.pipeline.response_assembler import AssembledResponse, StreamSink
from chatz_core.pipeline.sse import StreamPhase

CODE_THEME = "monokai"

_INLINE_TAG_SUBS = (
    (re.compile(r"<strong>"), "[bold]"),
    (re.compile(r"</strong>"), "[/bold]"),
    (re.compile(r"<em>"), "[italic]"),
    (re.compile(r"</em>"), "[/italic]"),
    (re.compile(r'<a href="([^"]+)"[^>]*>'), r"[link=\1]"),
    (re.compile(r"</a>"), "[/link]"),
)


def text_to_markup(content: str) -> str:
    """Escape rich markup in prose, then turn the known inline tags into rich tags."""
    markup = escape(content)
    for pattern, replacement in _INLINE_TAG_SUBS:
        markup = pattern.sub(replacement, markup)
    return markup


def _render_text(segment: TextSegment) -> ConsoleRenderable:
    try:
        return Text.from_markup(text_to_markup(segment.content))
    except MarkupError:
        # Unbalanced tags from a half-streamed message; show it plain
        return Text(segment.content)


def _render_code(segment: CodeSegment) -> ConsoleRenderable:
    return Panel(
        Syntax(segment.content, segment.language, theme=CODE_THEME, background_color="default"),
        title=segment.language,
        title_align="left",
        border_style="dim",
    )


_RENDERERS = {
    TextSegment: _render_text,
    CodeSegment: _render_code,
}


def render_message(parsed: ParsedMessage) -> Group:
    return Group(*(_RENDERERS[type(segment)](segment) for segment in parsed.segments))


_PHASE_NOTES = {
    StreamPhase.CANCELLED: "[dim](generation stopped)[/dim]",
    StreamPhase.FAILED: "[dim](connection lost; response may be incomplete)[/dim]",
}


class LiveSink(StreamSink):
    """Re-renders the whole message in place on every update."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._live: Live | None = None

    def on_update(self, parsed: ParsedMessage) -> None:
        if self._live is None:
            self._live = Live(console=self.console, refresh_per_second=12, transient=False)
            self._live.start()
        self._live.update(render_message(parsed))

    def on_done(self, response: AssembledResponse) -> None:
        if self._live is None:
            self.console.print(render_message(response.parsed))
        else:
            self._live.update(render_message(response.parsed))
            self._live.stop()
            self._live = None
        note = _PHASE_NOTES.get(response.phase)
        if note is not None:
            self.console.print(note)
