import argparse, contextlib, logging, pathlib, sys
from io import StringIO
from typing import List, Optional

from .cfg import Frame
from .config import RenderConfig
from .errors import RenderError
from .highlight_cache import HighlightCache
from .lexers import PygmentsHighlighter, Theme, lexer_for
from .py_debugger import LineStepper
from .sourcemap import SourceMap
from .viz_cfg import render_graph_pane
from .viz_source import render_source_pane, source_pane_html

PAGE = """<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>{title}</title></head>
<body>
<h3>{title}</h3>
{graph}
{source}
</body></html>
"""

def record(path: pathlib.Path, config: RenderConfig):
    src = path.read_text(encoding="utf-8")
    stepper = LineStepper(filename=str(path), max_steps=config.max_steps)
    buf = StringIO()
    with contextlib.redirect_stdout(buf):
        frames = stepper.run_script(src)
    return src, stepper, frames, buf.getvalue()

def render_page(frame: Optional[Frame], breakpoint_lines: List[int], src: str, stepper: LineStepper,
                config: RenderConfig, cache: HighlightCache) -> str:
    source_map = SourceMap({stepper.filename: src})
    if frame is None:
        return PAGE.format(title=stepper.filename, graph="<p>(no steps recorded)</p>", source="")
    bps = stepper.breakpoints_for(frame.body, breakpoint_lines)
    graph = render_graph_pane(frame.body, bps, frame.position, config=config)
    panes = render_source_pane(frame, source_map, cache, config)
    title = f"{frame.body.name} @ line {frame.line}"
    return PAGE.format(title=title, graph=graph, source=source_pane_html(panes, config.style_table()))

def main(argv=None):
    ap = argparse.ArgumentParser(prog='stepview', description='Step through a Python script and render CFG/source panes')
    ap.add_argument('-v', '--verbose', action='store_true', help='Log timings and layout calls')
    sub = ap.add_subparsers(dest='cmd', required=True)
    stepsp = sub.add_parser('steps', help='List the recorded execution snapshots')
    stepsp.add_argument('file')
    renderp = sub.add_parser('render', help='Render one snapshot to an HTML page')
    renderp.add_argument('file')
    renderp.add_argument('--step', type=int, default=-1, help='Snapshot index (default: last)')
    renderp.add_argument('--break', dest='breaks', type=int, action='append', default=[], metavar='LINE',
                         help='Mark a breakpoint on a source line (repeatable)')
    renderp.add_argument('--theme', choices=[t.name.lower() for t in Theme], default='solarized_dark')
    renderp.add_argument('-o', '--output', help='Write the page here instead of stdout')

    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s")
    config = RenderConfig(theme=Theme[getattr(args, 'theme', 'solarized_dark').upper()])
    path = pathlib.Path(args.file)
    try:
        src, stepper, frames, out = record(path, config)
    except (OSError, SyntaxError) as e:
        print(f"cannot run {path}: {e}", file=sys.stderr)
        return 1

    if args.cmd == 'steps':
        for i, fr in enumerate(frames):
            where = fr.position.value if fr.current_location() is None else \
                f"bb{fr.position.block}[{fr.position.statement_index}]"
            print(f"{i:>4}  {fr.body.name:<20} line {fr.line:<5} {where}")
        if out:
            print("--- program output ---")
            print(out, end="")
        return 0

    if args.cmd == 'render':
        cache = HighlightCache(PygmentsHighlighter(lexer_for(config.language), config.style_table()))
        frame = None
        if frames:
            try:
                frame = frames[args.step]
            except IndexError:
                print(f"no step {args.step}; {len(frames)} recorded", file=sys.stderr)
                return 2
        try:
            page = render_page(frame, args.breaks, src, stepper, config, cache)
        except RenderError as e:
            print(f"render failed: {e}", file=sys.stderr)
            return 1
        if args.output:
            pathlib.Path(args.output).write_text(page, encoding='utf-8')
        else:
            sys.stdout.write(page)
        return 0

if __name__ == '__main__':
    sys.exit(main())
