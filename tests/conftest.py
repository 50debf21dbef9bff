"""Shared fixtures for the stepview tests.

The graph tests run against a fake layout engine so that they do not need the
Graphviz binary; the cache tests use a counting highlighter to observe
memoization.
"""

import re
from typing import List

import pytest

from stepview.cfg import (
    BasicBlock, Body, Goto, Return, Span, Statement, SwitchInt,
)
from stepview.lexers import TextStyle

SVG = b"""<?xml version="1.0" encoding="UTF-8" standalone="no"?>
<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" "http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd">
<svg width="100pt" height="100pt"><g id="graph0" class="graph"></g></svg>
"""


class FakeLayout:
    """Layout engine stand-in that records the DOT it was given."""

    def __init__(self, output: bytes = SVG):
        self.output = output
        self.sources: List[str] = []

    def render(self, source: str) -> bytes:
        self.sources.append(source)
        return self.output


class CountingHighlighter:
    """Splits text into words and whitespace, counting every invocation."""

    WORD = TextStyle(color="#268bd2")
    SPACE = TextStyle()

    def __init__(self):
        self.calls = 0
        self.lines_seen: List[str] = []

    def highlight_lines(self, text: str):
        self.calls += 1
        for line in re.findall(r"[^\n]*\n|[^\n]+$", text):
            self.lines_seen.append(line)
            yield [(self.WORD if piece.strip() else self.SPACE, piece)
                   for piece in re.findall(r"\s+|\S+", line)]


@pytest.fixture
def fake_layout() -> FakeLayout:
    return FakeLayout()


@pytest.fixture
def counting_highlighter() -> CountingHighlighter:
    return CountingHighlighter()


def span(lo: int, hi: int, file: str = "main.py") -> Span:
    return Span(file, lo, hi)


@pytest.fixture
def branch_body() -> Body:
    """One block with two statements ending in a two-way branch."""
    stmts = [Statement("_1 = const 1_i32", span(0, 5)), Statement("_2 = Lt(_1, 3)", span(6, 11))]
    return Body(
        blocks=[
            BasicBlock(
                statements=stmts,
                terminator=SwitchInt(span=span(12, 20), discr="move _2", targets=[("0", 1)], otherwise=2),
            ),
            BasicBlock(terminator=Return(span=span(21, 27))),
            BasicBlock(statements=[Statement("StorageDead(_1)", span(28, 30), hidden=True)],
                       terminator=Goto(span=span(31, 33), target=1)),
        ],
        span=span(0, 33),
        name="main",
    )
