"""Render configuration for stepview."""

import sysconfig
from typing import Dict

from pydantic import BaseModel, Field

from .lexers import StyleTable, Theme


def _default_aliases() -> Dict[str, str]:
    paths = sysconfig.get_paths()
    aliases = {}
    for key, alias in (("stdlib", "<python>/"), ("purelib", "<site-packages>/"), ("platlib", "<site-packages>/")):
        prefix = paths.get(key)
        if prefix:
            aliases[prefix.rstrip("/") + "/"] = alias
    return aliases


class RenderConfig(BaseModel):
    """Settings shared by the graph and source renderers."""
    theme: Theme = Field(default=Theme.SOLARIZED_DARK, description="Pygments style used for source highlighting")
    language: str = Field(default="python", description="Lexer name for source files")
    layout_engine: str = Field(default="dot", description="Graphviz layout engine")
    font: str = Field(default="monospace", description="Font for graph, node and edge labels")
    marker_color: str = Field(default="lightcoral", description="Background of the current-span marker")
    current_row_color: str = Field(default="red", description="Fill of the current statement row in the graph")
    path_aliases: Dict[str, str] = Field(default_factory=dict, description="Extra path prefixes to collapse in origin labels")
    max_steps: int = Field(default=10000, gt=0, description="Maximum snapshots recorded by the stepper")

    def style_table(self) -> StyleTable:
        return StyleTable(self.theme)

    def marker_style(self) -> str:
        return f"background-color: {self.marker_color}; border-radius: 5px; padding: 1px;"

    def aliases(self) -> Dict[str, str]:
        merged = _default_aliases()
        merged.update(self.path_aliases)
        return merged
