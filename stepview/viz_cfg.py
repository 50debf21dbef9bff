# stepview/viz_cfg.py
import json
import logging
import subprocess
from html import escape
from typing import Dict, Optional, Union

import graphviz
from graphviz import Digraph

from .cfg import BasicBlock, Body, Breakpoints, Location, Unwinding
from .config import RenderConfig
from .errors import RenderError

logger = logging.getLogger(__name__)

# Children of a rendered node <g> ahead of the statement lines: the title, the
# header cell's fill and border polygons, its text, and the statement cell.
FIRST_STATEMENT_ROW = 6
# The statement cell and the terminator cell's polygon sit between the last
# statement line and the terminator text.
TERMINATOR_ROW_OFFSET = 7
EMPTY_BLOCK_TERMINATOR_ROW = 6

def node_name(index: int, promoted: Optional[int] = None) -> str:
    if promoted is not None:
        return f"promoted{promoted}.{index}"
    return f"bb{index}"

def _node_label(body: Body, index: int, breakpoints: Breakpoints) -> str:
    blk = body[index]
    rows = [f'<tr><td bgcolor="gray" align="center">{node_name(index, body.promoted)}</td></tr>']
    if blk.statements:
        lines = []
        for i, stmt in enumerate(blk.statements):
            mark = "+ " if breakpoints.breakpoint_exists(Location(index, i)) else "&nbsp; "
            text = "&lt;+&gt;" if stmt.hidden else escape(stmt.text)
            lines.append(f"{mark}{text}<br/>")
        rows.append(f'<tr><td align="left" balign="left">{"".join(lines)}</td></tr>')
    # successors are drawn as edges, so only the head goes in the box
    rows.append(f'<tr><td align="left">{escape(blk.terminator.head())}</td></tr>')
    return '<table border="0" cellborder="1" cellspacing="0">' + "".join(rows) + "</table>"

def cfg_graphviz(body: Body, breakpoints: Breakpoints, config: Optional[RenderConfig] = None) -> Digraph:
    config = config or RenderConfig()
    name = f"promoted{body.promoted}" if body.promoted is not None else "Body"
    font = {"fontname": config.font}
    g = Digraph(name, graph_attr=font, node_attr=font, edge_attr=font)
    for index in range(len(body)):
        g.node(node_name(index, body.promoted), f"<{_node_label(body, index, breakpoints)}>", shape="none")
    for index, blk in enumerate(body.blocks):
        for target, label in blk.terminator.successors():
            g.edge(node_name(index, body.promoted), node_name(target, body.promoted), label=label)
    return g

def current_row(blk: BasicBlock, statement_index: int) -> int:
    n = len(blk.statements)
    if statement_index == n:
        return n + TERMINATOR_ROW_OFFSET if n else EMPTY_BLOCK_TERMINATOR_ROW
    if not 0 <= statement_index < n:
        raise RenderError(f"statement index {statement_index} outside block of {n} statements")
    return statement_index + FIRST_STATEMENT_ROW

def edge_colors(body: Body, location: Location) -> Dict[str, str]:
    """Edge title -> "normal" or "unwind" for every edge leaving the current block."""
    src = node_name(location.block, body.promoted)
    return {
        f"{src}->{node_name(target, body.promoted)}": role.value
        for target, role in body[location.block].terminator.flow()
    }

class GraphvizLayout:
    def __init__(self, engine: str = "dot", format: str = "svg"):
        self.engine = engine
        self.format = format

    def render(self, source: str) -> bytes:
        logger.debug("laying out %d bytes of DOT with %s", len(source), self.engine)
        try:
            return graphviz.Source(source, engine=self.engine).pipe(format=self.format)
        except ValueError as e:
            raise RenderError(f"graphviz rejected the layout request: {e}") from e
        except graphviz.ExecutableNotFound as e:
            raise RenderError(f"graphviz executable not found: {e}") from e
        except subprocess.CalledProcessError as e:
            raise RenderError(f"graphviz {self.engine} failed: {e}") from e

def _embed_svg(rendered: bytes) -> str:
    svg = rendered.decode("utf-8")
    start = svg.find("<svg")
    if start < 0:
        raise RenderError("layout engine returned no <svg> element")
    return f'<div id="mir">{svg[start:]}</div>'

def _overlay(body: Body, location: Location, config: RenderConfig) -> str:
    row = current_row(body[location.block], location.statement_index)
    colors = json.dumps(edge_colors(body, location))
    return f"""<style>
        #mir #node{location.block + 1} > text:nth-child({row}) {{
            fill: {config.current_row_color};
        }}
        .edge-normal > path, .edge-normal > polygon, .edge-normal > text {{
            fill: green;
            stroke: green;
        }}
        .edge-unwind > path, .edge-unwind > polygon, .edge-unwind > text {{
            fill: red;
            stroke: red;
        }}
        .edge > path {{
            fill: none;
        }}
        </style>
        <script>
        let edge_colors = {colors};
        for(let el of document.querySelectorAll("#mir > svg #graph0 .edge")) {{
            let title = el.querySelector("title").textContent;
            if(title in edge_colors) {{
                el.classList.add("edge-" + edge_colors[title]);
            }}
        }}
        </script>"""

def render_graph_pane(body: Body, breakpoints: Breakpoints,
                      current: Union[Location, Unwinding, None] = None,
                      layout: Optional[GraphvizLayout] = None,
                      config: Optional[RenderConfig] = None) -> str:
    config = config or RenderConfig()
    layout = layout or GraphvizLayout(config.layout_engine)
    rendered = _embed_svg(layout.render(cfg_graphviz(body, breakpoints, config).source))
    if current is None:
        return rendered
    if isinstance(current, Unwinding):
        return rendered + "<div style='color: red;'>Unwinding</div>"
    return rendered + _overlay(body, current, config)
