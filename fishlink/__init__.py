"""Public package interface for the fishlink engine manager."""

from .config import ManagerConfig
from .engine_comm import CommandQueue, EngineProcess, HandshakeState, LineBuffer
from .errors import (
    EngineBusy,
    EngineError,
    EngineNotFound,
    EngineNotReady,
    EngineTimeout,
    ProcessError,
)
from .manager import MoveResult, StockfishManager
from .uci_protocol import Evaluation
from .utils import ReportingLevel

__all__ = [
    "CommandQueue",
    "EngineBusy",
    "EngineError",
    "EngineNotFound",
    "EngineNotReady",
    "EngineProcess",
    "EngineTimeout",
    "Evaluation",
    "HandshakeState",
    "LineBuffer",
    "ManagerConfig",
    "MoveResult",
    "ProcessError",
    "ReportingLevel",
    "StockfishManager",
]
