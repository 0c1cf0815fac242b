from enum import IntEnum

from PySide6.QtCore import QProcess


class ReportingLevel(IntEnum):
    QUIET = 0
    BASIC = 1
    VERBOSE = 2


def color_text(text, color_code):
    return f"\033[{color_code}m{text}\033[0m"

def debug_text(text):
    return f"{color_text('DEBUG', '31')} {text}"

def info_text(text):
    return f"{color_text('INFO', '34')}  {text}"

def error_text(text):
    return f"{color_text('ERROR', '91')} {text}"

def sending_text(text):
    return f"{color_text('SENDING  ', '32')} {text}"

def received_text(text):
    return f"{color_text('RECEIVED ', '35')} {text}"


class Reporter:
    """Console reporting gated by a :class:`ReportingLevel`."""

    def __init__(self, level: ReportingLevel = ReportingLevel.BASIC, label: str = "Engine") -> None:
        self.level = level
        self.label = label

    def enabled(self, level: ReportingLevel) -> bool:
        return self.level >= level

    def info(self, message: str) -> None:
        if self.enabled(ReportingLevel.BASIC):
            print(info_text(f"[{self.label}] {message}"))

    def debug(self, message: str) -> None:
        if self.enabled(ReportingLevel.VERBOSE):
            print(debug_text(f"[{self.label}] {message}"))

    def error(self, message: str) -> None:
        print(error_text(f"[{self.label}] {message}"))

    def sending(self, command: str) -> None:
        if self.enabled(ReportingLevel.VERBOSE):
            print(sending_text(f"[{self.label}] {command}"))

    def received(self, line: str) -> None:
        if self.enabled(ReportingLevel.VERBOSE):
            print(received_text(f"[{self.label}] {line}"))


def cleanup(process, timeout_ms=2000, reporter=None):
    """Wait for ``process`` to exit, escalating to terminate/kill."""
    if process is None:
        return True
    if process.state() == QProcess.NotRunning:
        return True
    if process.waitForFinished(timeout_ms):
        return True
    if reporter is not None:
        reporter.debug("Engine process unresponsive; terminating")
    process.terminate()
    if process.waitForFinished(1000):
        return False
    if reporter is not None:
        reporter.debug("Engine process ignored terminate; forcing kill")
    process.kill()
    process.waitForFinished(1000)
    return False
