"""Tests for the graph renderer."""

import json
import re
import shutil

import pytest

from stepview.cfg import (
    UNWINDING, BasicBlock, Body, Breakpoints, Call, Drop, Goto, Location,
    NO_BREAKPOINTS, Return, Span, Statement,
)
from stepview.errors import RenderError
from stepview.viz_cfg import (
    EMPTY_BLOCK_TERMINATOR_ROW, FIRST_STATEMENT_ROW, GraphvizLayout,
    TERMINATOR_ROW_OFFSET, cfg_graphviz, current_row, edge_colors, node_name,
    render_graph_pane,
)

SP = Span("main.rs", 0, 1)


def edge_lines(source: str):
    return [line for line in source.splitlines() if "->" in line]


def node_lines(source: str):
    return [line for line in source.splitlines() if "shape=none" in line]


def overlay_colors(markup: str):
    return json.loads(re.search(r"let edge_colors = (\{.*?\});", markup).group(1))


class TestGraphDocument:
    """The DOT document: one node per block, one edge per successor."""

    def test_counts(self, branch_body):
        source = cfg_graphviz(branch_body, NO_BREAKPOINTS).source
        assert len(node_lines(source)) == len(branch_body)
        expected = sum(len(b.terminator.successors()) for b in branch_body.blocks)
        assert len(edge_lines(source)) == expected

    def test_edges_carry_successor_labels(self, branch_body):
        source = cfg_graphviz(branch_body, NO_BREAKPOINTS).source
        assert "bb0 -> bb1 [label=0]" in source
        assert 'bb0 -> bb2 [label=otherwise]' in source

    def test_monospace_fonts(self, branch_body):
        source = cfg_graphviz(branch_body, NO_BREAKPOINTS).source
        assert source.startswith("digraph Body {")
        assert "graph [fontname=monospace]" in source
        assert "node [fontname=monospace]" in source
        assert "edge [fontname=monospace]" in source

    def test_label_regions(self, branch_body):
        source = cfg_graphviz(branch_body, NO_BREAKPOINTS).source
        first = node_lines(source)[0]
        assert '<td bgcolor="gray" align="center">bb0</td>' in first
        assert "&nbsp; _1 = const 1_i32<br/>" in first
        assert "&nbsp; _2 = Lt(_1, 3)<br/>" in first
        assert '<td align="left">switchInt(move _2)</td>' in first
        # successors are never part of the node text
        assert "otherwise" not in first

    def test_empty_block_has_no_statement_cell(self, branch_body):
        source = cfg_graphviz(branch_body, NO_BREAKPOINTS).source
        second = node_lines(source)[1]
        assert 'balign="left"' not in second
        assert '<td align="left">return</td>' in second

    def test_breakpoint_and_hidden_markers(self, branch_body):
        bps = Breakpoints([Location(0, 1), Location(2, 0)])
        lines = node_lines(cfg_graphviz(branch_body, bps).source)
        assert "&nbsp; _1 = const 1_i32" in lines[0]
        assert "+ _2 = Lt(_1, 3)" in lines[0]
        assert "+ &lt;+&gt;<br/>" in lines[2]
        assert "StorageDead" not in lines[2]

    def test_statement_text_is_escaped(self):
        body = Body(blocks=[BasicBlock(statements=[Statement("_1 = &<x>", SP)], terminator=Return(span=SP))], span=SP)
        line = node_lines(cfg_graphviz(body, NO_BREAKPOINTS).source)[0]
        assert "_1 = &amp;&lt;x&gt;" in line

    def test_promoted_names(self):
        body = Body(blocks=[BasicBlock(terminator=Goto(span=SP, target=1)), BasicBlock(terminator=Return(span=SP))],
                    span=SP, promoted=3)
        source = cfg_graphviz(body, NO_BREAKPOINTS).source
        assert source.startswith("digraph promoted3 {")
        assert '"promoted3.0" -> "promoted3.1"' in source
        assert node_name(1, 3) == "promoted3.1"
        assert node_name(1) == "bb1"


class TestCurrentRow:
    """Row arithmetic for marking the current statement."""

    def test_formula(self, branch_body):
        blk = branch_body[0]
        assert current_row(blk, 0) == 6
        assert current_row(blk, 1) == 7
        assert current_row(blk, 2) == 2 + 7
        assert current_row(branch_body[1], 0) == 6

    def test_named_constants(self):
        assert FIRST_STATEMENT_ROW == 6
        assert TERMINATOR_ROW_OFFSET == 7
        assert EMPTY_BLOCK_TERMINATOR_ROW == 6

    @pytest.mark.parametrize("n", [0, 1, 2, 5, 12])
    def test_rows_never_collide_within_a_block(self, n):
        blk = BasicBlock(statements=[Statement(f"s{i}", SP) for i in range(n)], terminator=Return(span=SP))
        rows = [current_row(blk, i) for i in range(n + 1)]
        assert len(set(rows)) == len(rows)

    def test_out_of_range_index_is_an_error(self, branch_body):
        with pytest.raises(RenderError):
            current_row(branch_body[0], 3)


class TestEdgeColors:
    def test_same_mapping_at_any_statement(self, branch_body):
        expected = {"bb0->bb1": "normal", "bb0->bb2": "normal"}
        for i in range(3):
            assert edge_colors(branch_body, Location(0, i)) == expected

    def test_switch_targets_are_normal(self, branch_body):
        assert edge_colors(branch_body, Location(0, 2)) == {"bb0->bb1": "normal", "bb0->bb2": "normal"}

    def test_call_and_drop_unwind(self):
        body = Body(blocks=[
            BasicBlock(terminator=Call(span=SP, func="f", target=1, cleanup=2)),
            BasicBlock(terminator=Drop(span=SP, place="_1", target=2, unwind=3)),
            BasicBlock(terminator=Return(span=SP)),
            BasicBlock(terminator=Return(span=SP)),
        ], span=SP)
        assert edge_colors(body, Location(0, 0)) == {"bb0->bb1": "normal", "bb0->bb2": "unwind"}
        assert edge_colors(body, Location(1, 0)) == {"bb1->bb2": "normal", "bb1->bb3": "unwind"}
        assert edge_colors(body, Location(2, 0)) == {}


class TestRenderGraphPane:
    def test_current_statement_scenario(self, branch_body, fake_layout):
        markup = render_graph_pane(branch_body, NO_BREAKPOINTS, Location(0, 1), layout=fake_layout)
        assert markup.startswith('<div id="mir"><svg')
        assert "<?xml" not in markup
        assert "#node1 > text:nth-child(7)" in markup
        colors = overlay_colors(markup)
        assert colors == {"bb0->bb1": "normal", "bb0->bb2": "normal"}
        assert "unwind" not in colors.values()
        dot = fake_layout.sources[0]
        assert "&nbsp; _1 = const 1_i32<br/>&nbsp; _2 = Lt(_1, 3)<br/>" in dot

    def test_branch_at_terminator_colours_both_edges(self, branch_body, fake_layout):
        markup = render_graph_pane(branch_body, NO_BREAKPOINTS, Location(0, 2), layout=fake_layout)
        colors = overlay_colors(markup)
        assert colors == {"bb0->bb1": "normal", "bb0->bb2": "normal"}
        assert "unwind" not in colors.values()
        assert "#node1 > text:nth-child(9)" in markup

    def test_no_location_is_plain_graph(self, branch_body, fake_layout):
        markup = render_graph_pane(branch_body, NO_BREAKPOINTS, None, layout=fake_layout)
        assert "<script>" not in markup
        assert "<style>" not in markup
        assert markup.endswith("</div>")

    def test_unwinding_indicator(self, branch_body, fake_layout):
        markup = render_graph_pane(branch_body, NO_BREAKPOINTS, UNWINDING, layout=fake_layout)
        assert "Unwinding" in markup
        assert "<script>" not in markup

    def test_layout_without_svg_is_fatal(self, branch_body, fake_layout):
        fake_layout.output = b"Error: syntax error"
        with pytest.raises(RenderError):
            render_graph_pane(branch_body, NO_BREAKPOINTS, None, layout=fake_layout)

    def test_missing_executable_is_fatal(self, branch_body):
        layout = GraphvizLayout(engine="no-such-layout-engine")
        with pytest.raises(RenderError):
            render_graph_pane(branch_body, NO_BREAKPOINTS, None, layout=layout)


@pytest.mark.skipif(shutil.which("dot") is None, reason="graphviz not installed")
class TestGraphvizLayout:
    def test_real_svg_has_titled_edges(self, branch_body):
        markup = render_graph_pane(branch_body, NO_BREAKPOINTS, Location(0, 2))
        assert 'id="node1"' in markup
        assert "bb0&#45;&gt;bb1" in markup

    def test_malformed_document_is_fatal(self):
        with pytest.raises(RenderError):
            GraphvizLayout().render("digraph {{{ nope")
