# stepview/highlight_cache.py
import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Protocol, Tuple

from .errors import RenderError
from .lexers import Fragment, TextStyle

logger = logging.getLogger(__name__)

StyledRange = Tuple[TextStyle, Tuple[int, int]]

class LineHighlighter(Protocol):
    def highlight_lines(self, text: str) -> Iterator[List[Fragment]]: ...

@dataclass(frozen=True)
class HighlightCacheEntry:
    text: str
    styled: Tuple[StyledRange, ...]   # contiguous, covers text exactly

class HighlightCache:
    """Styled ranges per distinct file content.

    One instance belongs to one render context (a session or a thread); it is
    never shared, so lookups take no lock. Entries are never evicted.
    """

    def __init__(self, highlighter: LineHighlighter):
        self.highlighter = highlighter
        self._entries: Dict[int, HighlightCacheEntry] = {}
        self.computed = 0

    def __len__(self):
        return len(self._entries)

    def get_or_compute(self, text: str) -> HighlightCacheEntry:
        key = hash(text)
        entry = self._entries.get(key)
        if entry is None:
            t0 = time.perf_counter()
            entry = HighlightCacheEntry(text=text, styled=tuple(self._styled_ranges(text)))
            self.computed += 1
            logger.debug("highlighted %d chars in %.1f ms", len(text), (time.perf_counter() - t0) * 1000.0)
            self._entries[key] = entry
        return entry

    def _styled_ranges(self, text: str) -> List[StyledRange]:
        index = 0
        out: List[StyledRange] = []
        for line in self.highlighter.highlight_lines(text):
            for style, fragment in line:
                if not fragment:
                    continue
                start = index
                index += len(fragment)
                out.append((style, (start, index)))
        if index != len(text):
            raise RenderError(f"highlighter covered {index} of {len(text)} chars")
        return out
