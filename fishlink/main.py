# MAIN
import argparse
import os
import sys
from concurrent.futures import Future
from typing import Mapping, Optional

import chess
from PySide6.QtCore import QCoreApplication, QObject, Signal

from .config import ENGINE_PATH_ENV, ManagerConfig
from .errors import EngineError
from .manager import MoveResult, StockfishManager
from .uci_protocol import Evaluation
from .utils import ReportingLevel, error_text, info_text


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Run one best-move or evaluation request against a UCI engine"
    )
    parser.add_argument(
        "engine",
        nargs="?",
        help=f"Path to the engine binary (defaults to ${ENGINE_PATH_ENV})",
    )
    parser.add_argument(
        "-fen", help="Set the position to analyze (defaults to the start position)"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--movetime", type=int, help="Request a best move within this many milliseconds")
    mode.add_argument("--depth", type=int, help="Evaluate the position to this search depth")
    parser.add_argument("--skill", type=int, help="Skill level, clamped to 0-20")
    parser.add_argument(
        "--grace",
        type=int,
        default=ManagerConfig.grace_ms,
        help="Extra milliseconds allowed past --movetime before timing out",
    )
    parser.add_argument(
        "--eval-timeout",
        type=int,
        help="Abort a --depth evaluation after this many milliseconds",
    )
    parser.add_argument("-dev", action="store_true", help="Show every command and engine line")
    parser.add_argument("-quiet", action="store_true", help="Only print the result")
    return parser.parse_args(argv)


def resolve_engine_path(candidate: Optional[str], environ: Mapping[str, str] = os.environ) -> Optional[str]:
    path = candidate or environ.get(ENGINE_PATH_ENV)
    if not path:
        return None
    return os.path.abspath(os.path.expanduser(path))


def build_config(args) -> ManagerConfig:
    if args.dev:
        level = ReportingLevel.VERBOSE
    elif args.quiet:
        level = ReportingLevel.QUIET
    else:
        level = ReportingLevel.BASIC
    return ManagerConfig(
        grace_ms=args.grace,
        evaluation_timeout_ms=args.eval_timeout,
        reporting_level=level,
    )


def format_evaluation(evaluation: Optional[Evaluation]) -> str:
    if evaluation is None:
        return "no evaluation"
    text = evaluation.format()
    if evaluation.depth is not None:
        text += f" (depth {evaluation.depth})"
    return text


def format_move_result(board: chess.Board, result: MoveResult) -> str:
    try:
        move = result.as_move()
    except ValueError:
        move = None
    if move is None:
        return f"bestmove {result.move or '(none)'} | {format_evaluation(result.evaluation)}"
    san = board.san(move) if move in board.legal_moves else "illegal"
    return f"bestmove {move.uci()} ({san}) | {format_evaluation(result.evaluation)}"


class AnalysisSession(QObject):
    """Waits for readiness, runs a single request, then reports the exit status."""

    finished = Signal(int)

    def __init__(
        self,
        manager: StockfishManager,
        board: chess.Board,
        *,
        movetime: Optional[int] = None,
        depth: Optional[int] = None,
        skill: Optional[int] = None,
    ) -> None:
        super().__init__(manager)
        self.manager = manager
        self.board = board
        self.movetime = movetime
        self.depth = depth
        self.skill = skill
        self.output: Optional[str] = None
        self._started = False
        self._exited = False

        manager.ready.connect(self._on_ready)
        manager.error.connect(self._on_error)
        manager.process_closed.connect(self._on_closed)

    def _on_ready(self) -> None:
        if self._started:
            return
        self._started = True
        if self.skill is not None:
            level = self.manager.set_skill_level(self.skill)
            print(info_text(f"Skill level set to {level}"))
        if self.depth is not None:
            future = self.manager.evaluate_position(self.board, self.depth)
            future.add_done_callback(self._on_evaluation)
        else:
            future = self.manager.request_best_move(self.board, self.movetime)
            future.add_done_callback(self._on_move)

    def _on_move(self, future: Future) -> None:
        if self._report_failure(future):
            return
        self.output = format_move_result(self.board, future.result())
        print(self.output)
        self._exit(0)

    def _on_evaluation(self, future: Future) -> None:
        if self._report_failure(future):
            return
        self.output = f"evaluation {format_evaluation(future.result())}"
        print(self.output)
        self._exit(0)

    def _report_failure(self, future: Future) -> bool:
        if future.cancelled():
            self._exit(1)
            return True
        exc = future.exception()
        if exc is None:
            return False
        print(error_text(str(exc)))
        self._exit(1)
        return True

    def _on_error(self, exc: EngineError) -> None:
        print(error_text(str(exc)))
        self._exit(1)

    def _on_closed(self, exit_code: int) -> None:
        if not self._exited:
            print(error_text(f"Engine exited early with code {exit_code}"))
            self._exit(1)

    def _exit(self, status: int) -> None:
        if self._exited:
            return
        self._exited = True
        self.finished.emit(status)


def main(argv=None) -> int:
    args = parse_args(argv)

    engine_path = resolve_engine_path(args.engine)
    if engine_path is None:
        print(error_text(f"No engine path given and ${ENGINE_PATH_ENV} is not set"))
        return 1

    try:
        board = chess.Board(args.fen) if args.fen else chess.Board()
    except ValueError as exc:
        print(error_text(f"Invalid FEN: {exc}"))
        return 1

    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    manager = StockfishManager(config=build_config(args))
    session = AnalysisSession(
        manager,
        board,
        movetime=args.movetime,
        depth=args.depth,
        skill=args.skill,
    )
    session.finished.connect(app.exit)

    if not manager.initialize(engine_path):
        return 1

    status = app.exec()
    manager.quit()
    return status


if __name__ == "__main__":
    sys.exit(main())
