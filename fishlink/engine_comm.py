"""Engine process supervision: spawning, line I/O, handshake and command buffering."""

import os
from collections import deque
from enum import Enum
from typing import Callable, Deque, List, Optional

from PySide6.QtCore import QObject, QProcess, Signal

from . import uci_protocol
from .errors import EngineNotFound, ProcessError
from .uci_protocol import LineKind
from .utils import Reporter, cleanup


class LineBuffer:
    """Reassembles arbitrarily chunked output into complete lines."""

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, data: bytes) -> List[str]:
        self._pending += data
        *complete, self._pending = self._pending.split(b"\n")
        lines = []
        for raw in complete:
            line = raw.rstrip(b"\r").decode("utf-8", errors="replace").strip()
            if line:
                lines.append(line)
        return lines

    @property
    def pending(self) -> bytes:
        return self._pending

    def clear(self) -> None:
        self._pending = b""


class CommandQueue:
    """FIFO of commands issued before the engine reported readiness."""

    def __init__(self) -> None:
        self._commands: Deque[str] = deque()

    def enqueue(self, command: str) -> None:
        self._commands.append(command)

    def flush(self, send: Callable[[str], None]) -> int:
        sent = 0
        while self._commands:
            send(self._commands.popleft())
            sent += 1
        return sent

    def clear(self) -> None:
        self._commands.clear()

    def __len__(self) -> int:
        return len(self._commands)


class HandshakeState(Enum):
    IDLE = "idle"
    SPAWNED = "spawned"
    IDENTIFY_SENT = "identify_sent"
    IDENTIFY_ACKED = "identify_acked"
    READY_QUERIED = "ready_queried"
    READY = "ready"


ProcessFactory = Callable[[QObject], QProcess]


class EngineProcess(QObject):
    """Owns one engine subprocess and drives the UCI handshake.

    Output lines are classified and re-emitted as structured signals; the
    first ``readyok`` after the handshake flips readiness exactly once and
    flushes buffered commands in arrival order.
    """

    ready = Signal()
    info_received = Signal(object)
    bestmove_received = Signal(object)
    closed = Signal(int)
    error = Signal(object)

    def __init__(
        self,
        parent: Optional[QObject] = None,
        *,
        process_factory: Optional[ProcessFactory] = None,
        reporter: Optional[Reporter] = None,
        quit_timeout_ms: int = 2000,
    ) -> None:
        super().__init__(parent)
        self._process_factory = process_factory or QProcess
        self._reporter = reporter or Reporter()
        self._quit_timeout_ms = quit_timeout_ms
        self._process: Optional[QProcess] = None
        self._stdout = LineBuffer()
        self._stderr = LineBuffer()
        self.queue = CommandQueue()
        self.handshake = HandshakeState.IDLE

    @property
    def is_ready(self) -> bool:
        return self.handshake == HandshakeState.READY

    @property
    def is_running(self) -> bool:
        return self._process is not None

    def start(self, binary_path: str) -> bool:
        if self._process is not None:
            self._reporter.info("Restarting engine process")
            self.quit()

        if not os.path.isfile(binary_path):
            self._reporter.error(f"Engine binary not found at: {binary_path}")
            self.error.emit(EngineNotFound(binary_path))
            return False

        self._reporter.info(f"Starting engine: {binary_path}")
        proc = self._process_factory(self)
        proc.readyReadStandardOutput.connect(self._read_stdout)
        proc.readyReadStandardError.connect(self._read_stderr)
        proc.finished.connect(self._on_finished)
        proc.errorOccurred.connect(self._on_process_error)

        self._process = proc
        self._stdout.clear()
        self._stderr.clear()
        self.handshake = HandshakeState.SPAWNED
        proc.start(binary_path, [])

        # errorOccurred(FailedToStart) may already have torn the process down.
        if self._process is None:
            return False
        self.send_command(uci_protocol.UCI)
        self.handshake = HandshakeState.IDENTIFY_SENT
        return True

    def send_command(self, command: str) -> None:
        if self._process is None:
            self._reporter.error(f"Engine process not started; dropping: {command}")
            return

        if not self.is_ready and command not in uci_protocol.HANDSHAKE_COMMANDS:
            self._reporter.debug(f"Queued until ready: {command}")
            self.queue.enqueue(command)
            return

        self._write(command)

    def _write(self, command: str) -> bool:
        proc = self._process
        if proc is None:
            return False
        self._reporter.sending(command)
        if proc.write((command + "\n").encode()) < 0:
            self._reporter.error(f"Failed to write to engine: {command}")
            return False
        proc.waitForBytesWritten()
        return True

    def stop(self) -> None:
        if self._process is not None:
            self.send_command(uci_protocol.STOP)

    def quit(self) -> None:
        proc = self._process
        if proc is None:
            return
        # quit bypasses the queue so an engine stuck mid-handshake still exits.
        self._write(uci_protocol.QUIT)
        self._release()
        cleanup(proc, self._quit_timeout_ms, self._reporter)
        self._reporter.info(f"Engine process closed with code: {proc.exitCode()}")
        self.closed.emit(proc.exitCode())

    def _release(self) -> None:
        proc = self._process
        self._process = None
        self.handshake = HandshakeState.IDLE
        self.queue.clear()
        if proc is not None:
            for signal, slot in (
                (proc.readyReadStandardOutput, self._read_stdout),
                (proc.readyReadStandardError, self._read_stderr),
                (proc.finished, self._on_finished),
                (proc.errorOccurred, self._on_process_error),
            ):
                try:
                    signal.disconnect(slot)
                except (RuntimeError, TypeError):
                    pass
            proc.deleteLater()

    def feed_output(self, data: bytes) -> None:
        for line in self._stdout.feed(data):
            self.handle_line(line)

    def handle_line(self, line: str) -> None:
        self._reporter.received(line)
        kind = uci_protocol.classify_line(line)

        if kind is LineKind.IDENTIFY_ACK:
            if not self.is_ready:
                self.handshake = HandshakeState.IDENTIFY_ACKED
                # Stays acked when isready cannot be written.
                if self._write(uci_protocol.ISREADY):
                    self.handshake = HandshakeState.READY_QUERIED
        elif kind is LineKind.READY:
            # readyok follows every isready; only the first one completes the handshake.
            if not self.is_ready:
                self.handshake = HandshakeState.READY
                self._reporter.info("Engine ready")
                flushed = self.queue.flush(self._write)
                if flushed:
                    self._reporter.debug(f"Flushed {flushed} queued command(s)")
                self.ready.emit()
        elif kind is LineKind.BESTMOVE:
            self.bestmove_received.emit(uci_protocol.parse_bestmove_line(line))
        elif kind is LineKind.INFO:
            self.info_received.emit(uci_protocol.parse_info_line(line))

    def _read_stdout(self) -> None:
        proc = self._process
        if proc is None:
            return
        self.feed_output(bytes(proc.readAllStandardOutput()))

    def _read_stderr(self) -> None:
        proc = self._process
        if proc is None:
            return
        for line in self._stderr.feed(bytes(proc.readAllStandardError())):
            self._reporter.debug(f"stderr: {line}")

    def _on_finished(self, exit_code: int, exit_status=None) -> None:
        self._reporter.info(f"Engine process closed with code: {exit_code}")
        self._release()
        if exit_status == QProcess.CrashExit:
            self.error.emit(ProcessError("Engine process crashed", exit_code))
        self.closed.emit(exit_code)

    def _on_process_error(self, process_error) -> None:
        self._reporter.error(f"Engine process error: {process_error}")
        if process_error == QProcess.FailedToStart:
            self._release()
            self.error.emit(ProcessError("Engine process failed to start"))
        elif process_error != QProcess.Crashed:
            # Crashes are reported once, from finished().
            self.error.emit(ProcessError(f"Engine process error: {process_error}"))
