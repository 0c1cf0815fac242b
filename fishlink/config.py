from dataclasses import dataclass
from typing import Optional

from .utils import ReportingLevel

SKILL_MIN = 0
SKILL_MAX = 20

ENGINE_PATH_ENV = "STOCKFISH_PATH"


@dataclass
class ManagerConfig:
    """Tunables for a :class:`~fishlink.manager.StockfishManager` session."""

    # Extra time allowed past a move-time budget before the request times out.
    grace_ms: int = 1000
    default_movetime_ms: int = 1000
    default_depth: int = 15
    # None leaves depth searches unbounded in time.
    evaluation_timeout_ms: Optional[int] = None
    quit_timeout_ms: int = 2000
    reporting_level: ReportingLevel = ReportingLevel.BASIC

    def __post_init__(self) -> None:
        if self.grace_ms < 0:
            raise ValueError("grace_ms must be non-negative")
        if self.default_movetime_ms <= 0:
            raise ValueError("default_movetime_ms must be positive")
        if self.default_depth <= 0:
            raise ValueError("default_depth must be positive")
        if self.evaluation_timeout_ms is not None and self.evaluation_timeout_ms <= 0:
            raise ValueError("evaluation_timeout_ms must be positive when set")


def clamp_skill_level(level: int) -> int:
    return max(SKILL_MIN, min(SKILL_MAX, int(level)))
