from __future__ import annotations
import dis
import re
import types
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .cfg import (
    BasicBlock, Body, Breakpoints, Call, Goto, Location, Resume, Return,
    Span, Statement, SwitchInt, Terminator, Unreachable,
)

_JUMPS = frozenset(getattr(dis, "hasjump", dis.hasjrel + dis.hasjabs))
_UNCONDITIONAL = {"JUMP_FORWARD", "JUMP_BACKWARD", "JUMP_BACKWARD_NO_INTERRUPT",
                  "JUMP_ABSOLUTE", "JUMP", "JUMP_NO_INTERRUPT"}
_RETURNS = {"RETURN_VALUE", "RETURN_CONST"}
_RAISES = {"RAISE_VARARGS", "RERAISE"}
_HIDDEN = {"RESUME", "NOP", "CACHE", "EXTENDED_ARG"}
_LINE_END = re.compile(r"\r\n|\r|\n")

@dataclass
class CodeGraph:
    body: Body
    locations: Dict[int, Location] = field(default_factory=dict)      # instruction offset -> location
    line_starts: Dict[int, Location] = field(default_factory=dict)    # source line -> first location

    def location_for(self, offset: int) -> Location:
        offsets = sorted(self.locations)
        i = bisect_right(offsets, offset) - 1
        return self.locations[offsets[max(i, 0)]]

    def breakpoints_for_lines(self, lines: Iterable[int]) -> Breakpoints:
        return Breakpoints(self.line_starts[n] for n in lines if n in self.line_starts)

class _Lines:
    def __init__(self, source: str):
        self.source = source
        self.starts = [0] + [m.end() for m in _LINE_END.finditer(source)]

    def _bounds(self, lineno):
        start = self.starts[lineno - 1]
        end = self.starts[lineno] if lineno < len(self.starts) else len(self.source)
        return start, end

    def offset(self, lineno, col) -> Optional[int]:
        if not lineno or lineno > len(self.starts):
            return None
        start, end = self._bounds(lineno)
        if col is None:
            return start
        # columns are utf-8 byte offsets into the line
        prefix = self.source[start:end].encode("utf-8")[:col]
        return start + len(prefix.decode("utf-8", errors="ignore"))

    def line_end(self, lineno) -> int:
        start, end = self._bounds(lineno)
        line = self.source[start:end]
        return start + len(line.rstrip("\r\n"))

def _jump_label(opname: str) -> str:
    if opname == "FOR_ITER": return "exhausted"
    if opname == "SEND": return "done"
    if "IF_" in opname:
        return opname.rsplit("IF_", 1)[1].lower().replace("_", " ")
    return "jump"

def code_graph(code: types.CodeType, source: str, filename: Optional[str] = None) -> CodeGraph:
    filename = filename or code.co_filename
    lines = _Lines(source)
    instrs = list(dis.get_instructions(code))
    entries = list(getattr(dis.Bytecode(code), "exception_entries", ()))

    def handler(off):
        for e in entries:
            if e.start <= off < e.end:
                return e.target
        return None

    first = lines.offset(code.co_firstlineno, None) or 0
    fallback = Span(filename, first, first)

    def span_of(ins) -> Span:
        pos = getattr(ins, "positions", None)
        lo = lines.offset(pos.lineno, pos.col_offset) if pos else None
        if lo is None:
            return fallback
        if pos.end_lineno and pos.end_col_offset is not None:
            hi = lines.offset(pos.end_lineno, pos.end_col_offset)
        elif pos.col_offset is None:
            hi = lines.line_end(pos.lineno)
        else:
            hi = lo
        return Span(filename, lo, hi if hi is not None and hi >= lo else lo)

    def guarded_call(ins) -> bool:
        return ins.opname.startswith("CALL") and handler(ins.offset) is not None

    # leaders: first instr, jump targets, handlers, next after a jump/return/raise/guarded call
    offsets = [ins.offset for ins in instrs]
    leaders = {offsets[0]}
    for i, ins in enumerate(instrs):
        if ins.opcode in _JUMPS and isinstance(ins.argval, int):
            leaders.add(ins.argval)
        ends = (ins.opcode in _JUMPS or ins.opname in _RETURNS or ins.opname in _RAISES
                or guarded_call(ins))
        if ends and i + 1 < len(instrs):
            leaders.add(offsets[i + 1])
    leaders |= {e.target for e in entries}
    leaders = sorted(leaders & set(offsets))

    def block_of(off: int) -> int:
        return max(bisect_right(leaders, off) - 1, 0)

    groups: List[list] = [[] for _ in leaders]
    for ins in instrs:
        groups[block_of(ins.offset)].append(ins)

    locations: Dict[int, Location] = {}
    line_starts: Dict[int, Location] = {}
    blocks: List[BasicBlock] = []
    for n, group in enumerate(groups):
        last = group[-1]
        nxt = n + 1 if n + 1 < len(groups) else None
        span = span_of(last)
        term: Optional[Terminator] = None
        if last.opname in _UNCONDITIONAL and isinstance(last.argval, int):
            term = Goto(span=span, target=block_of(last.argval))
        elif last.opcode in _JUMPS and isinstance(last.argval, int) and nxt is not None:
            term = SwitchInt(span=span, discr=last.opname,
                             targets=[(_jump_label(last.opname), block_of(last.argval))], otherwise=nxt)
        elif last.opname in _RETURNS:
            term = Return(span=span)
        elif last.opname in _RAISES:
            term = Resume(span=span)
        elif guarded_call(last) and nxt is not None:
            term = Call(span=span, func=last.opname,
                        args=[] if last.arg is None else [str(last.arg)],
                        target=nxt, cleanup=block_of(handler(last.offset)))
        stmts = group[:-1] if term is not None else group
        if term is None:
            # fallthrough into the next leader
            term = Goto(span=span, target=nxt) if nxt is not None else Unreachable(span=span)

        statements = []
        for i, ins in enumerate(stmts):
            statements.append(Statement(
                text=f"{ins.offset:>3}: {ins.opname} {'' if ins.arg is None else ins.argrepr}".rstrip(),
                span=span_of(ins),
                hidden=ins.opname in _HIDDEN,
            ))
            locations[ins.offset] = Location(n, i)
        if stmts is not group:
            locations[last.offset] = Location(n, len(statements))
        blocks.append(BasicBlock(terminator=term, statements=statements))

        for ins in group:
            pos = getattr(ins, "positions", None)
            if ins.opname not in _HIDDEN and pos and pos.lineno:
                line_starts.setdefault(pos.lineno, locations[ins.offset])

    if code.co_name == "<module>":
        whole = Span(filename, 0, len(source))
    else:
        spans = [s.span for b in blocks for s in b.statements] + [b.terminator.span for b in blocks]
        whole = Span(filename, first, max([first] + [s.hi for s in spans]))
    body = Body(blocks=blocks, span=whole, name=getattr(code, "co_qualname", code.co_name))
    return CodeGraph(body=body, locations=locations, line_starts=line_starts)
