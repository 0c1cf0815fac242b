"""UCI line protocol: outgoing command builders and incoming line parsing.

Every function here is pure. Lines are classified purely by content, never by
their position relative to the command that provoked them.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

import chess

UCI = "uci"
ISREADY = "isready"
STOP = "stop"
QUIT = "quit"

UCIOK = "uciok"
READYOK = "readyok"

# Commands allowed through before the handshake has completed.
HANDSHAKE_COMMANDS = frozenset({UCI, ISREADY})

CENTIPAWN = "centipawn"
MATE = "mate"

_SCORE_RE = re.compile(r"\bscore (cp|mate) (-?\d+)")
_DEPTH_RE = re.compile(r"\bdepth (\d+)")
_NODES_RE = re.compile(r"\bnodes (\d+)")
_TIME_RE = re.compile(r"\btime (\d+)")
_MULTIPV_RE = re.compile(r"\bmultipv (\d+)")
_PV_RE = re.compile(r"\bpv (.+)$")


class LineKind(Enum):
    READY = "ready"
    IDENTIFY_ACK = "identify_ack"
    BESTMOVE = "bestmove"
    INFO = "info"
    UNRECOGNIZED = "unrecognized"


@dataclass
class Evaluation:
    kind: str
    value: int
    depth: Optional[int] = None
    nodes: Optional[int] = None
    time: Optional[int] = None
    multipv: Optional[int] = None
    pv: List[str] = field(default_factory=list)

    @property
    def is_mate(self) -> bool:
        return self.kind == MATE

    def format(self) -> str:
        """Render as ``+0.34`` for centipawns or ``#-3`` for mates."""
        if self.is_mate:
            return f"#{self.value}"
        return f"{self.value / 100:+.2f}"

    def copy(self) -> "Evaluation":
        return replace(self, pv=list(self.pv))


@dataclass
class InfoLine:
    evaluation: Optional[Evaluation] = None
    depth: Optional[int] = None
    nodes: Optional[int] = None
    time: Optional[int] = None

    @property
    def has_score(self) -> bool:
        return self.evaluation is not None

    @property
    def reportable(self) -> bool:
        # A score alone only refreshes the evaluation slot; it is published
        # once the same line also reports search progress.
        return self.has_score and (self.depth is not None or self.nodes is not None)


@dataclass
class BestMoveLine:
    move: Optional[str]
    ponder: Optional[str] = None


def classify_line(line: str) -> LineKind:
    line = line.strip()
    if line == READYOK:
        return LineKind.READY
    if line == UCIOK:
        return LineKind.IDENTIFY_ACK
    if line.startswith("bestmove"):
        return LineKind.BESTMOVE
    if line.startswith("info"):
        return LineKind.INFO
    return LineKind.UNRECOGNIZED


def _int_field(pattern: "re.Pattern[str]", line: str) -> Optional[int]:
    match = pattern.search(line)
    return int(match.group(1)) if match else None


def parse_info_line(line: str) -> InfoLine:
    """Extract whichever of score/depth/nodes/time an ``info`` line carries."""
    # Free-form text after "string" must not be mistaken for fields.
    body = line.split(" string ", 1)[0].rstrip()

    depth = _int_field(_DEPTH_RE, body)
    nodes = _int_field(_NODES_RE, body)
    elapsed = _int_field(_TIME_RE, body)

    evaluation = None
    score = _SCORE_RE.search(body)
    if score:
        kind = CENTIPAWN if score.group(1) == "cp" else MATE
        pv_match = _PV_RE.search(body)
        evaluation = Evaluation(
            kind=kind,
            value=int(score.group(2)),
            depth=depth,
            nodes=nodes,
            time=elapsed,
            multipv=_int_field(_MULTIPV_RE, body),
            pv=pv_match.group(1).split() if pv_match else [],
        )

    return InfoLine(evaluation=evaluation, depth=depth, nodes=nodes, time=elapsed)


def parse_bestmove_line(line: str) -> BestMoveLine:
    parts = line.strip().split()
    move = parts[1] if len(parts) >= 2 else None
    ponder = None
    if len(parts) >= 4 and parts[2] == "ponder":
        ponder = parts[3]
    return BestMoveLine(move=move, ponder=ponder)


def fen_for(position) -> str:
    """Return a validated FEN for a ``chess.Board`` or a FEN string."""
    if isinstance(position, chess.Board):
        return position.fen()
    if not isinstance(position, str):
        raise TypeError(f"position must be a chess.Board or FEN string, not {type(position).__name__}")
    # chess.Board raises ValueError on malformed FEN.
    return chess.Board(position.strip()).fen()


def position_command(fen: str) -> str:
    return f"position fen {fen}"


def go_movetime_command(movetime_ms: int) -> str:
    return f"go movetime {int(movetime_ms)}"


def go_depth_command(depth: int) -> str:
    return f"go depth {int(depth)}"


def setoption_command(name: str, value) -> str:
    return f"setoption name {name} value {value}"
