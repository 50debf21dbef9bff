"""Source pane: the executing span marked inside its highlighted file.

The span of the current statement is followed outward through its expansion
call sites, so a statement produced by a macro-like expansion is shown
together with the invocation the user actually wrote.
"""
import logging
import time
from html import escape
from typing import Dict, List, Optional, Sequence, Tuple

from .cfg import Frame, Span
from .config import RenderConfig
from .errors import RenderError, SourceUnavailable
from .highlight_cache import HighlightCache, StyledRange
from .lexers import Fragment, StyleTable
from .sourcemap import SourceMap

logger = logging.getLogger(__name__)

MARKER_GLYPH = "←"

def instruction_spans(frame: Frame) -> List[Span]:
    """The chain of spans for the current position, innermost first."""
    location = frame.current_location()
    spans = [frame.body.span_at(location) if location else frame.body.span]
    while True:
        outer = spans[-1].call_site()
        if outer is None:
            return spans
        spans.append(outer)

def _line_col(text: str, offset: int) -> Tuple[int, int]:
    line = text.count("\n", 0, offset) + 1
    col = offset - (text.rfind("\n", 0, offset) + 1) + 1
    return line, col

def pretty_src_path(span: Span, text: Optional[str] = None, aliases: Optional[Dict[str, str]] = None) -> str:
    path = span.file
    for prefix, alias in (aliases or {}).items():
        if path.startswith(prefix):
            path = alias + path[len(prefix):]
            break
    if text is None:
        return path
    lo_line, lo_col = _line_col(text, span.lo)
    hi_line, hi_col = _line_col(text, span.hi)
    return f"{path}:{lo_line}:{lo_col}: {hi_line}:{hi_col}"

def split_at(fragments: Sequence[Fragment], index: int) -> Tuple[List[Fragment], List[Fragment]]:
    """Split styled fragments at a character index, cutting one fragment if needed."""
    before: List[Fragment] = []
    rest = list(fragments)
    remaining = index
    while rest and remaining > 0:
        style, text = rest[0]
        if len(text) <= remaining:
            before.append(rest.pop(0))
            remaining -= len(text)
        else:
            before.append((style, text[:remaining]))
            rest[0] = (style, text[remaining:])
            remaining = 0
    return before, rest

def split_styled(text: str, styled: Sequence[StyledRange], lo: int, hi: int):
    fragments = [(style, text[start:end]) for style, (start, end) in styled]
    before, rest = split_at(fragments, lo)
    marked, after = split_at(rest, hi - lo)
    return before, marked, after

def styled_to_html(fragments: Sequence[Fragment]) -> str:
    out = []
    for style, text in fragments:
        if not text:
            continue
        css = style.css()
        out.append(f'<span style="{css}">{escape(text)}</span>' if css else escape(text))
    return "".join(out)

def mark_span(text: str, styled: Sequence[StyledRange], lo: int, hi: int, marker_style: str) -> str:
    if not 0 <= lo <= hi <= len(text):
        raise RenderError(f"span offsets {lo}..{hi} invalid for text of {len(text)} chars")
    before, marked, after = split_styled(text, styled, lo, hi)
    before, it, after = styled_to_html(before), styled_to_html(marked), styled_to_html(after)
    if lo == hi:
        if it:
            raise RenderError(f"zero-width span at {lo} produced marked content")
        return f"{before}<span style='{marker_style}'>{MARKER_GLYPH}</span>{after}"
    if not it:
        raise RenderError(f"span {lo}..{hi} produced no marked content")
    return f"{before}<span style='{marker_style}'>{it}</span>{after}"

def render_source_pane(frame: Optional[Frame], source_map: SourceMap, cache: HighlightCache,
                       config: Optional[RenderConfig] = None) -> List[Tuple[str, str]]:
    """(origin label, markup) per span in the chain, outermost first."""
    if frame is None:
        return []
    config = config or RenderConfig()
    t0 = time.perf_counter()
    aliases = config.aliases()
    marker = config.marker_style()

    panes = []
    for sp in reversed(instruction_spans(frame)):
        try:
            src, lo, hi = source_map.resolve(sp)
        except SourceUnavailable as e:
            logger.warning("no source for %s: %s", sp, e)
            panes.append((str(sp), escape(str(e))))
            continue
        entry = cache.get_or_compute(src)
        panes.append((pretty_src_path(sp, entry.text, aliases),
                      mark_span(entry.text, entry.styled, lo, hi, marker)))

    logger.debug("source pane: %d spans in %.1f ms", len(panes), (time.perf_counter() - t0) * 1000.0)
    return panes

def source_pane_html(panes: Sequence[Tuple[str, str]], styles: StyleTable) -> str:
    bg = styles.background
    style = f"background-color: {bg}; display: block;" if bg else ""
    body = "".join(
        f'<span style="color: aqua;">{escape(label)}<br></span>{markup}<br><br>'
        for label, markup in panes
    )
    return f'<pre><code id="the_code" style="{style}">{body}</code></pre>'
