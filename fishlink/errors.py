"""Exception types raised or emitted by the engine manager."""

from typing import Optional


class EngineError(Exception):
    """Base class for every engine-communication failure."""


class EngineNotFound(EngineError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Engine binary not found at: {path}")
        self.path = path


class EngineNotReady(EngineError):
    def __init__(self, message: str = "Engine not ready") -> None:
        super().__init__(message)


class EngineBusy(EngineError):
    def __init__(self, active_kind: str) -> None:
        super().__init__(f"Engine is busy with a pending {active_kind} request")
        self.active_kind = active_kind


class EngineTimeout(EngineError, TimeoutError):
    def __init__(self, kind: str, timeout_ms: int) -> None:
        super().__init__(f"{kind} request timed out after {timeout_ms} ms")
        self.kind = kind
        self.timeout_ms = timeout_ms


class ProcessError(EngineError):
    """Spawn failure, crash or unexpected exit of the engine process."""

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code
