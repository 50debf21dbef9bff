import enum
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from pygments.lexer import Lexer
from pygments.lexers import PythonLexer, JavascriptLexer, CLexer, get_lexer_by_name
from pygments.styles import get_style_by_name
from pygments.token import Token, _TokenType
from pygments.util import ClassNotFound

class Theme(enum.Enum):
    SOLARIZED_DARK = "solarized-dark"
    SOLARIZED_LIGHT = "solarized-light"
    MONOKAI = "monokai"
    FRIENDLY = "friendly"
    DEFAULT = "default"

@dataclass(frozen=True)
class TextStyle:
    color: Optional[str] = None    # "#rrggbb"
    bold: bool = False
    italic: bool = False
    underline: bool = False

    def css(self) -> str:
        parts = []
        if self.color:
            parts.append(f"color:{self.color};")
        if self.bold:
            parts.append("font-weight:bold;")
        if self.italic:
            parts.append("font-style:italic;")
        if self.underline:
            parts.append("text-decoration:underline;")
        return "".join(parts)

Fragment = Tuple[TextStyle, str]

def _hex(value: str) -> Optional[str]:
    return f"#{value}" if value else None

class StyleTable:
    """A theme resolved to concrete text styles."""

    def __init__(self, theme: Theme):
        self.theme = theme
        self._style = get_style_by_name(theme.value)
        self._by_token: Dict[_TokenType, TextStyle] = {}
        self.default = self.style_for(Token.Text)

    @property
    def background(self) -> Optional[str]:
        return self._style.background_color or None

    def style_for(self, ttype: _TokenType) -> TextStyle:
        style = self._by_token.get(ttype)
        if style is None:
            d = self._style.style_for_token(ttype)
            style = TextStyle(
                color=_hex(d.get("color") or ""),
                bold=bool(d.get("bold")),
                italic=bool(d.get("italic")),
                underline=bool(d.get("underline")),
            )
            self._by_token[ttype] = style
        return style

def lexer_for(lang: str) -> Lexer:
    if lang == "python": return PythonLexer()
    elif lang == "javascript": return JavascriptLexer()
    elif lang == "c": return CLexer()
    try:
        return get_lexer_by_name(lang)
    except ClassNotFound as e:
        raise ValueError("Unsupported for pygments: " + lang) from e

class PygmentsHighlighter:
    def __init__(self, lexer: Lexer, styles: StyleTable):
        self.lexer = lexer
        self.styles = styles

    def fragments(self, text: str) -> Iterator[Fragment]:
        # get_tokens() would normalise newlines and shift offsets, so work
        # from the raw token positions and fill any gaps with the default style
        pos = 0
        for index, ttype, value in self.lexer.get_tokens_unprocessed(text):
            end = min(index + len(value), len(text))
            if end <= pos:
                continue
            if index > pos:
                yield self.styles.default, text[pos:index]
            start = max(index, pos)
            yield self.styles.style_for(ttype), text[start:end]
            pos = end
        if pos < len(text):
            yield self.styles.default, text[pos:]

    def highlight_lines(self, text: str) -> Iterator[List[Fragment]]:
        """Yield the fragments of each physical line, terminator included.

        The lexer runs over the whole file, so state such as an open
        triple-quoted string carries from one line into the next.
        """
        line: List[Fragment] = []
        for style, value in self.fragments(text):
            while value:
                cut = value.find("\n") + 1
                if cut == 0:
                    line.append((style, value))
                    break
                line.append((style, value[:cut]))
                yield line
                line = []
                value = value[cut:]
        if line:
            yield line
