import os
import stat
import sys

import chess
import pytest
from PySide6.QtTest import QTest

from fishlink.config import ManagerConfig
from fishlink.errors import EngineTimeout
from fishlink.manager import StockfishManager
from fishlink.utils import ReportingLevel

pytestmark = [
    pytest.mark.process,
    pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX launcher script"),
]

SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), "scripted_engine.py")


def wait_until(predicate, timeout_ms: int = 5000) -> bool:
    waited = 0
    while not predicate() and waited < timeout_ms:
        QTest.qWait(20)
        waited += 20
    return predicate()


@pytest.fixture()
def launcher(tmp_path):
    path = tmp_path / "scripted-engine"
    path.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{SCRIPT}"\n')
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture()
def manager(qt_app, launcher):
    manager = StockfishManager(
        config=ManagerConfig(grace_ms=200, reporting_level=ReportingLevel.QUIET)
    )
    closed = []
    manager.process_closed.connect(closed.append)
    assert manager.initialize(launcher) is True
    manager.set_skill_level(5)
    assert wait_until(lambda: manager.is_ready)
    yield manager
    manager.quit()
    assert closed


def test_best_move_round_trip(manager) -> None:
    future = manager.request_best_move(chess.Board(), 100)
    assert wait_until(future.done)

    result = future.result(timeout=0)
    assert result.move == "a2a3"
    assert result.evaluation.depth == 3
    assert result.as_move() in chess.Board().legal_moves


def test_evaluate_to_depth(manager) -> None:
    future = manager.evaluate_position(chess.STARTING_FEN, 6)
    assert wait_until(future.done)

    evaluation = future.result(timeout=0)
    assert evaluation.depth == 6
    assert evaluation.value == 60


def test_hung_search_times_out_and_recovers(manager) -> None:
    moves = []
    manager.move_result.connect(moves.append)
    manager.engine.send_command("setoption name Hang value true")
    future = manager.request_best_move(chess.Board(), 50)
    assert wait_until(future.done)
    assert isinstance(future.exception(timeout=0), EngineTimeout)
    # stop makes the engine answer the abandoned search.
    assert wait_until(lambda: bool(moves))

    manager.engine.send_command("setoption name Hang value false")
    follow_up = manager.evaluate_position(chess.Board(), 2)
    assert wait_until(follow_up.done)
    assert follow_up.result(timeout=0).depth == 2
