import linecache
from typing import Dict, Optional, Tuple

from .cfg import Span
from .errors import SourceUnavailable

class SourceMap:
    """Resolves spans to the full text of their file."""

    def __init__(self, files: Optional[Dict[str, str]] = None):
        self._files: Dict[str, str] = dict(files or {})

    def add(self, filename: str, text: str):
        self._files[filename] = text

    def file_text(self, filename: str) -> str:
        if filename in self._files:
            return self._files[filename]
        if filename.startswith("<") and filename.endswith(">"):
            raise SourceUnavailable(f"<no source info for {filename}>")
        lines = linecache.getlines(filename)
        if not lines:
            raise SourceUnavailable(f"<couldn't get lines for {filename}>")
        return "".join(lines)

    def resolve(self, span: Span) -> Tuple[str, int, int]:
        return self.file_text(span.file), span.lo, span.hi
