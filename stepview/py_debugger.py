import bdb
import logging
import types
from typing import Dict, Iterable, List

from .cfg import NO_BREAKPOINTS, UNWINDING, Body, Breakpoints, Frame, Position
from .cfg_python import CodeGraph, code_graph

logger = logging.getLogger(__name__)

def _safe_repr(value) -> str:
    try:
        return repr(value)
    except Exception as e:
        return f"<repr failed: {e!r}>"

class LineStepper(bdb.Bdb):
    def __init__(self, filename: str = "<stepview>", max_steps: int = 10000):
        super().__init__()
        self.filename = filename
        self.max_steps = max_steps
        self.source = ""
        self.frames: List[Frame] = []   # one snapshot per line or exception event
        self._graphs: Dict[types.CodeType, CodeGraph] = {}

    def graph_for(self, code: types.CodeType) -> CodeGraph:
        graph = self._graphs.get(code)
        if graph is None:
            graph = self._graphs[code] = code_graph(code, self.source, self.filename)
        return graph

    def breakpoints_for(self, body: Body, lines: Iterable[int]) -> Breakpoints:
        """Breakpoints on source lines, resolved against the code that owns body."""
        for graph in self._graphs.values():
            if graph.body is body:
                return graph.breakpoints_for_lines(lines)
        return NO_BREAKPOINTS

    def _record(self, frame, position: Position):
        if len(self.frames) >= self.max_steps:
            logger.warning("stopped after %d steps", self.max_steps)
            self.set_quit()
            return
        locs = {k: _safe_repr(v) for k, v in frame.f_locals.items() if not k.startswith("__")}
        self.frames.append(Frame(body=self.graph_for(frame.f_code).body, position=position,
                                 line=frame.f_lineno, variables=locs))

    def user_line(self, frame):
        if frame.f_code.co_filename == self.filename:
            self._record(frame, self.graph_for(frame.f_code).location_for(frame.f_lasti))
        self.set_step()

    def user_exception(self, frame, exc_info):
        if frame.f_code.co_filename == self.filename:
            self._record(frame, UNWINDING)
        self.set_step()

    def run_script(self, src: str) -> List[Frame]:
        # Run in its own global dict so 'print' works
        glb = {"__name__": "__main__"}
        self.source = src
        self.frames = []
        self._graphs = {}
        code = compile(src, self.filename, "exec")
        try:
            self.run(code, glb, glb)
        except SystemExit:
            pass
        except Exception as e:
            logger.info("script raised %r", e)
        return self.frames
