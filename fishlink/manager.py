"""Public engine manager: turns the engine's line stream into awaitable results."""

from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import chess
from PySide6.QtCore import QObject, QTimer, Signal

from . import uci_protocol
from .config import SKILL_MAX, ManagerConfig, clamp_skill_level
from .engine_comm import EngineProcess, ProcessFactory
from .errors import EngineBusy, EngineError, EngineNotReady, EngineTimeout, ProcessError
from .uci_protocol import BestMoveLine, Evaluation, InfoLine
from .utils import Reporter

BEST_MOVE = "best move"
EVALUATION = "evaluation"

_NULL_MOVES = frozenset({"(none)", "0000"})


@dataclass
class MoveResult:
    move: Optional[str]
    evaluation: Optional[Evaluation] = None
    ponder: Optional[str] = None

    def as_move(self) -> Optional[chess.Move]:
        if not self.move or self.move in _NULL_MOVES:
            return None
        return chess.Move.from_uci(self.move)


class PendingRequest:
    """An in-flight request: a completion slot, its observers and its timer.

    Whatever ends the request (result, failure, cancellation) releases the
    timer and every signal connection first, so nothing outlives the request.
    """

    kind = "analysis"

    def __init__(self) -> None:
        self.future: Future = Future()
        self.timer: Optional[QTimer] = None
        self.timeout_ms: Optional[int] = None
        self._connections: List[Tuple[object, Callable]] = []

    @property
    def done(self) -> bool:
        return self.future.done()

    def subscribe(self, signal, slot: Callable) -> None:
        signal.connect(slot)
        self._connections.append((signal, slot))

    def arm(self, parent: QObject, timeout_ms: int, on_expire: Callable[["PendingRequest"], None]) -> None:
        timer = QTimer(parent)
        timer.setSingleShot(True)
        timer.setInterval(int(timeout_ms))
        timer.timeout.connect(lambda: on_expire(self))
        self.timer = timer
        self.timeout_ms = int(timeout_ms)
        timer.start()

    def release(self) -> None:
        if self.timer is not None:
            self.timer.stop()
            self.timer.deleteLater()
            self.timer = None
        while self._connections:
            signal, slot = self._connections.pop()
            try:
                signal.disconnect(slot)
            except (RuntimeError, TypeError):
                pass

    def resolve(self, value) -> None:
        self.release()
        if not self.done:
            self.future.set_result(value)

    def fail(self, exc: BaseException) -> None:
        self.release()
        if not self.done:
            self.future.set_exception(exc)

    def cancel(self) -> None:
        self.release()
        self.future.cancel()


class BestMoveRequest(PendingRequest):
    kind = BEST_MOVE

    def __init__(self, time_budget_ms: int) -> None:
        super().__init__()
        self.time_budget_ms = time_budget_ms

    def on_move_result(self, result: MoveResult) -> None:
        self.resolve(result)


class EvaluationRequest(PendingRequest):
    kind = EVALUATION

    def __init__(self, target_depth: int) -> None:
        super().__init__()
        self.target_depth = target_depth
        self.latest: Optional[Evaluation] = None

    def on_evaluation(self, evaluation: Evaluation) -> None:
        # Keep the deepest-so-far qualifying update; later ones replace earlier.
        if evaluation.depth is not None and evaluation.depth >= self.target_depth:
            self.latest = evaluation

    def on_move_result(self, _result: MoveResult) -> None:
        self.resolve(self.latest)


def _failed(exc: EngineError) -> Future:
    future: Future = Future()
    future.set_exception(exc)
    return future


class StockfishManager(QObject):
    """Coordinates one UCI engine session for a host application.

    Signals:
        ready: handshake completed (once per process lifetime).
        move_result: a ``bestmove`` line arrived; carries a :class:`MoveResult`.
        evaluation_updated: an info line carried a score plus depth or nodes.
        error: an :class:`~fishlink.errors.EngineError` outside any request.
        process_closed: the engine process exited; carries the exit code.

    Only one analysis request runs at a time. ``request_best_move`` and
    ``evaluate_position`` share the engine, its ``stop`` control and the
    evaluation slot, so a second request while one is pending fails with
    :class:`~fishlink.errors.EngineBusy` instead of cross-contaminating results.
    """

    ready = Signal()
    move_result = Signal(object)
    evaluation_updated = Signal(object)
    error = Signal(object)
    process_closed = Signal(int)

    # Request-facing twins of move_result and evaluation_updated; silent while
    # a stopped search is still draining.
    _search_finished = Signal(object)
    _search_progress = Signal(object)

    def __init__(
        self,
        parent: Optional[QObject] = None,
        *,
        config: Optional[ManagerConfig] = None,
        process_factory: Optional[ProcessFactory] = None,
        label: str = "Stockfish",
    ) -> None:
        super().__init__(parent)
        self.config = config or ManagerConfig()
        self._reporter = Reporter(self.config.reporting_level, label)
        self.engine = EngineProcess(
            self,
            process_factory=process_factory,
            reporter=self._reporter,
            quit_timeout_ms=self.config.quit_timeout_ms,
        )
        self.engine.ready.connect(self.ready.emit)
        self.engine.info_received.connect(self._on_info)
        self.engine.bestmove_received.connect(self._on_bestmove)
        self.engine.closed.connect(self._on_closed)
        self.engine.error.connect(self._on_engine_error)

        self.current_evaluation: Optional[Evaluation] = None
        self._pending: Optional[PendingRequest] = None
        # bestmove lines still owed by searches abandoned on timeout.
        self._stale_searches = 0

    @property
    def is_ready(self) -> bool:
        return self.engine.is_ready

    @property
    def pending_kind(self) -> Optional[str]:
        return self._pending.kind if self._pending is not None else None

    def initialize(self, binary_path: str) -> bool:
        self._cancel_pending()
        self.current_evaluation = None
        self._stale_searches = 0
        return self.engine.start(binary_path)

    def request_best_move(self, position, time_budget_ms: Optional[int] = None) -> Future:
        """Search ``position`` for ``time_budget_ms`` and resolve with a :class:`MoveResult`.

        The future fails with ``EngineTimeout`` when no ``bestmove`` arrives
        within the budget plus ``config.grace_ms``; ``stop`` is sent first.
        """
        budget = self.config.default_movetime_ms if time_budget_ms is None else int(time_budget_ms)
        if budget <= 0:
            raise ValueError("time_budget_ms must be positive")
        fen = uci_protocol.fen_for(position)

        refusal = self._refusal()
        if refusal is not None:
            return _failed(refusal)

        request = BestMoveRequest(budget)
        self._begin(request)
        request.arm(self, budget + self.config.grace_ms, self._on_request_timeout)
        request.subscribe(self._search_finished, request.on_move_result)

        self.engine.send_command(uci_protocol.position_command(fen))
        self.engine.send_command(uci_protocol.go_movetime_command(budget))
        return request.future

    def evaluate_position(self, position, target_depth: Optional[int] = None) -> Future:
        """Search ``position`` to ``target_depth``; resolve with the last qualifying evaluation.

        Resolves with ``None`` when the search ends before reaching the depth.
        """
        depth = self.config.default_depth if target_depth is None else int(target_depth)
        if depth <= 0:
            raise ValueError("target_depth must be positive")
        fen = uci_protocol.fen_for(position)

        refusal = self._refusal()
        if refusal is not None:
            return _failed(refusal)

        request = EvaluationRequest(depth)
        self._begin(request)
        request.subscribe(self._search_progress, request.on_evaluation)
        request.subscribe(self._search_finished, request.on_move_result)
        if self.config.evaluation_timeout_ms is not None:
            request.arm(self, self.config.evaluation_timeout_ms, self._on_request_timeout)

        self.engine.send_command(uci_protocol.position_command(fen))
        self.engine.send_command(uci_protocol.go_depth_command(depth))
        return request.future

    def set_skill_level(self, level: int) -> int:
        clamped = clamp_skill_level(level)
        self.engine.send_command(uci_protocol.setoption_command("Skill Level", clamped))
        if clamped < SKILL_MAX:
            self.engine.send_command(uci_protocol.setoption_command("MultiPV", 1))
        return clamped

    def stop(self) -> None:
        self.engine.stop()

    def quit(self) -> None:
        self._cancel_pending()
        self.engine.quit()

    def _refusal(self) -> Optional[EngineError]:
        if not self.is_ready:
            return EngineNotReady()
        if self._pending is not None:
            return EngineBusy(self._pending.kind)
        return None

    def _begin(self, request: PendingRequest) -> None:
        self._pending = request
        self.current_evaluation = None
        request.future.add_done_callback(lambda _f: self._finish(request))
        self._reporter.debug(f"Started {request.kind} request")

    def _finish(self, request: PendingRequest) -> None:
        if self._pending is request:
            self._pending = None

    def _cancel_pending(self) -> None:
        request = self._pending
        if request is not None:
            request.cancel()
            self._pending = None

    def _on_request_timeout(self, request: PendingRequest) -> None:
        if request is not self._pending or request.done:
            return
        self._reporter.error(f"{request.kind} request timed out after {request.timeout_ms} ms")
        self._stale_searches += 1
        self.engine.stop()
        request.fail(EngineTimeout(request.kind, request.timeout_ms))

    def _on_info(self, info: InfoLine) -> None:
        if not info.has_score:
            return
        stale = self._stale_searches > 0
        if not stale:
            self.current_evaluation = info.evaluation
        if info.reportable:
            self.evaluation_updated.emit(info.evaluation)
            if not stale:
                self._search_progress.emit(info.evaluation)

    def _on_bestmove(self, line: BestMoveLine) -> None:
        if self._stale_searches > 0:
            # Answer to the stop sent on timeout; it belongs to no live request.
            self._stale_searches -= 1
            self._reporter.debug(f"Discarding bestmove {line.move} from an abandoned search")
            self.move_result.emit(MoveResult(line.move, None, line.ponder))
            return
        evaluation = self.current_evaluation.copy() if self.current_evaluation is not None else None
        result = MoveResult(line.move, evaluation, line.ponder)
        self._reporter.info(f"Best move: {result.move}")
        self.move_result.emit(result)
        self._search_finished.emit(result)

    def _on_closed(self, exit_code: int) -> None:
        request = self._pending
        if request is not None:
            self._pending = None
            request.fail(ProcessError(f"Engine process exited with code {exit_code}", exit_code))
        self.current_evaluation = None
        self._stale_searches = 0
        self.process_closed.emit(exit_code)

    def _on_engine_error(self, exc: EngineError) -> None:
        self.error.emit(exc)
