# stepview/cfg.py
from __future__ import annotations
import enum
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

@dataclass(frozen=True)
class Span:
    file: str
    lo: int                              # character offsets, half-open
    hi: int
    expansion: Optional["Span"] = None   # call site this span was expanded from

    def call_site(self) -> Optional["Span"]:
        return self.expansion

    def __str__(self):
        return f"{self.file}[{self.lo}..{self.hi}]"

@dataclass(frozen=True)
class Location:
    block: int
    statement_index: int

class Unwinding(enum.Enum):
    UNWINDING = "unwinding"

UNWINDING = Unwinding.UNWINDING

Position = Union[Location, Unwinding]

class SuccessorRole(enum.Enum):
    NORMAL = "normal"
    UNWIND = "unwind"

@dataclass
class Statement:
    text: str
    span: Span
    hidden: bool = False    # drawn as a placeholder glyph in the graph

# ---------- Terminators ----------
@dataclass
class Terminator:
    span: Span

    def head(self) -> str:
        """Kind and operands, without the successor list."""
        raise NotImplementedError

    def successors(self) -> List[Tuple[int, str]]:
        """(target block, edge label) pairs, in display order."""
        return []

    def flow(self) -> List[Tuple[int, SuccessorRole]]:
        """Successors reachable from this terminator, tagged by role.

        Only the kinds that the current-position overlay colours report
        anything here.
        """
        return []

@dataclass
class Goto(Terminator):
    target: int = 0

    def head(self):
        return "goto"

    def successors(self):
        return [(self.target, "")]

    def flow(self):
        return [(self.target, SuccessorRole.NORMAL)]

@dataclass
class SwitchInt(Terminator):
    discr: str = ""
    targets: List[Tuple[str, int]] = field(default_factory=list)   # (value label, block)
    otherwise: int = 0

    def head(self):
        return f"switchInt({self.discr})"

    def successors(self):
        return [(t, label) for label, t in self.targets] + [(self.otherwise, "otherwise")]

    def flow(self):
        return [(t, SuccessorRole.NORMAL) for t, _ in self.successors()]

@dataclass
class Return(Terminator):
    def head(self):
        return "return"

@dataclass
class Resume(Terminator):
    def head(self):
        return "resume"

@dataclass
class Unreachable(Terminator):
    def head(self):
        return "unreachable"

@dataclass
class Drop(Terminator):
    place: str = ""
    target: int = 0
    unwind: Optional[int] = None
    replace: Optional[str] = None   # value moved in after the drop

    def head(self):
        if self.replace is not None:
            return f"replace({self.place} <- {self.replace})"
        return f"drop({self.place})"

    def successors(self):
        out = [(self.target, "return")]
        if self.unwind is not None:
            out.append((self.unwind, "unwind"))
        return out

    def flow(self):
        out = [(self.target, SuccessorRole.NORMAL)]
        if self.unwind is not None:
            out.append((self.unwind, SuccessorRole.UNWIND))
        return out

@dataclass
class Call(Terminator):
    func: str = ""
    args: List[str] = field(default_factory=list)
    place: Optional[str] = None      # where the result is written
    target: Optional[int] = None     # None when the call never returns
    cleanup: Optional[int] = None

    def head(self):
        call = f"{self.func}({', '.join(self.args)})"
        return f"{self.place} = {call}" if self.place else call

    def successors(self):
        out = []
        if self.target is not None:
            out.append((self.target, "return"))
        if self.cleanup is not None:
            out.append((self.cleanup, "unwind"))
        return out

    def flow(self):
        out = []
        if self.target is not None:
            out.append((self.target, SuccessorRole.NORMAL))
        if self.cleanup is not None:
            out.append((self.cleanup, SuccessorRole.UNWIND))
        return out

@dataclass
class Assert(Terminator):
    cond: str = ""
    expected: bool = True
    msg: str = ""
    target: int = 0
    cleanup: Optional[int] = None

    def head(self):
        neg = "" if self.expected else "!"
        return f'assert({neg}{self.cond}, "{self.msg}")'

    def successors(self):
        out = [(self.target, "success")]
        if self.cleanup is not None:
            out.append((self.cleanup, "unwind"))
        return out

# ---------- Blocks and bodies ----------
@dataclass
class BasicBlock:
    terminator: Terminator
    statements: List[Statement] = field(default_factory=list)

@dataclass
class Body:
    blocks: List[BasicBlock]
    span: Span
    name: str = ""
    promoted: Optional[int] = None   # tag of a promoted sub-unit

    def __getitem__(self, index: int) -> BasicBlock:
        return self.blocks[index]

    def __len__(self):
        return len(self.blocks)

    def span_at(self, location: Location) -> Span:
        blk = self.blocks[location.block]
        if location.statement_index == len(blk.statements):
            return blk.terminator.span
        return blk.statements[location.statement_index].span

class Breakpoints:
    """Read-only set of marked program points."""

    def __init__(self, locations: Iterable[Location] = ()):
        self._locations = frozenset(locations)

    def breakpoint_exists(self, location: Location) -> bool:
        return location in self._locations

    def __contains__(self, location):
        return self.breakpoint_exists(location)

    def __iter__(self) -> Iterator[Location]:
        return iter(self._locations)

    def __len__(self):
        return len(self._locations)

    def __repr__(self):
        return f"Breakpoints({sorted(self._locations, key=lambda l: (l.block, l.statement_index))})"

NO_BREAKPOINTS = Breakpoints()

@dataclass
class Frame:
    """One execution snapshot handed to the renderers."""
    body: Body
    position: Position
    line: Optional[int] = None
    variables: Dict[str, str] = field(default_factory=dict)

    def current_location(self) -> Optional[Location]:
        return self.position if isinstance(self.position, Location) else None
