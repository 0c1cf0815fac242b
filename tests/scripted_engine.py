"""Scripted UCI engine used by the subprocess tests.

Plays the first legal move in the position and reports a fixed info line per
depth. ``setoption name Hang value true`` makes ``go`` stay silent until
``stop`` arrives, which is how the tests provoke timeouts.
"""

import io
import sys
from typing import Callable, Dict

import chess


class ScriptedEngine:
    def __init__(self) -> None:
        self.board = chess.Board()
        self.running = True
        self.hang = False
        self.searching = False
        self._handlers: Dict[str, Callable[[str], None]] = {
            "uci": self.handle_uci,
            "isready": self.handle_isready,
            "setoption": self.handle_setoption,
            "position": self.handle_position,
            "go": self.handle_go,
            "stop": self.handle_stop,
            "quit": self.handle_quit,
        }

    def start(self) -> None:
        _ensure_line_buffered_stdout()
        while self.running:
            command = sys.stdin.readline()
            if not command:
                break
            command = command.strip()
            if not command:
                continue
            parts = command.split(" ", 1)
            handler = self._handlers.get(parts[0].lower())
            if handler is None:
                print(f"info string unknown command {parts[0]}", file=sys.stderr)
                continue
            handler(parts[1] if len(parts) > 1 else "")
            sys.stdout.flush()

    def handle_uci(self, _: str) -> None:
        print("id name ScriptedEngine")
        print("id author fishlink tests")
        print("option name Skill Level type spin default 20 min 0 max 20")
        print("uciok")

    def handle_isready(self, _: str) -> None:
        print("readyok")

    def handle_setoption(self, args: str) -> None:
        if args.lower().startswith("name hang value"):
            self.hang = args.lower().endswith("true")

    def handle_position(self, args: str) -> None:
        tokens = args.split()
        if tokens and tokens[0] == "fen":
            self.board.set_fen(" ".join(tokens[1:7]))
        elif tokens and tokens[0] == "startpos":
            self.board.reset()

    def handle_go(self, args: str) -> None:
        tokens = args.split()
        depth = int(tokens[tokens.index("depth") + 1]) if "depth" in tokens else 3
        self.searching = True
        if self.hang:
            return
        for current in range(1, depth + 1):
            print(f"info depth {current} seldepth {current + 2} score cp {current * 10} nodes {current * 100} time {current}")
        self._report_bestmove()

    def handle_stop(self, _: str) -> None:
        if self.searching:
            self._report_bestmove()

    def handle_quit(self, _: str) -> None:
        self.running = False

    def _report_bestmove(self) -> None:
        self.searching = False
        moves = list(self.board.legal_moves)
        if not moves:
            print("bestmove (none)")
            return
        print(f"bestmove {min(moves, key=lambda move: move.uci()).uci()}")


def _ensure_line_buffered_stdout() -> None:
    stdout = sys.stdout
    if isinstance(stdout, io.TextIOBase) and getattr(stdout, "line_buffering", False):
        return
    buffer = getattr(stdout, "buffer", None)
    if buffer is None:
        return
    sys.stdout = io.TextIOWrapper(buffer, line_buffering=True)


if __name__ == "__main__":
    ScriptedEngine().start()
