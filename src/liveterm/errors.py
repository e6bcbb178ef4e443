"""Diagnostic taxonomy for executions.

Every failure a client can observe is one of the exceptions below.  Each
carries a stable ``kind`` string used both in logs and in the ``output``
event shown to the user.  None of them ever terminates a session.
"""

from __future__ import annotations


class ExecutionError(Exception):
    """Base class for failures reported to the client as diagnostics."""

    kind = "ExecutionError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_output(self) -> str:
        return f"[{self.kind}] {self.message}\r\n"


class ToolchainUnavailable(ExecutionError):
    kind = "ToolchainUnavailable"


class CompileError(ExecutionError):
    kind = "CompileError"

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class SpawnError(ExecutionError):
    kind = "SpawnError"


class TimeoutExceeded(ExecutionError):
    kind = "TimeoutExceeded"


class ArtifactIOError(ExecutionError):
    """Writing or renaming a temp file failed."""

    kind = "IOError"


class ExecutionInProgress(ExecutionError):
    kind = "ExecutionInProgress"


class UnsupportedLanguage(ExecutionError, LookupError):
    kind = "UnsupportedLanguage"

    def __init__(self, language: str) -> None:
        super().__init__(f"Unsupported language '{language}'")
        self.language = language


class InvalidMessage(ExecutionError):
    """A known message type arrived with missing or invalid fields."""

    kind = "InvalidMessage"
