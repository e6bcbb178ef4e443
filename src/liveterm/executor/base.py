"""
Execution record and lifecycle states.

An :class:`Execution` is created for every accepted ``run_code`` request
and discarded once it reaches a terminal state.  It owns the temp files
written for the snippet, the child process currently attached to it (the
compiler first, then the program) and the single timeout handle armed
while the program runs.

State machine::

    PENDING -> COMPILING -> RUNNING -> COMPLETED
                   |           |-----> TIMED_OUT
                   |           '-----> FAILED
                   '-----------------> FAILED

``COMPILING`` is skipped for interpreted languages.  Illegal transitions
raise ``RuntimeError``; they indicate a bug in the controller, not a user
error.
"""

from __future__ import annotations

import asyncio
import enum
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..errors import ExecutionError, TimeoutExceeded
from ..languages import LanguageDescriptor


class ExecutionState(str, enum.Enum):
    PENDING = "PENDING"
    COMPILING = "COMPILING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = {ExecutionState.COMPLETED, ExecutionState.FAILED, ExecutionState.TIMED_OUT}

_TRANSITIONS = {
    ExecutionState.PENDING: {ExecutionState.COMPILING, ExecutionState.RUNNING, ExecutionState.FAILED},
    ExecutionState.COMPILING: {ExecutionState.RUNNING, ExecutionState.FAILED},
    ExecutionState.RUNNING: {ExecutionState.COMPLETED, ExecutionState.FAILED, ExecutionState.TIMED_OUT},
}


@dataclass
class ExecutionResult:
    """Outcome of one execution.

    Attributes
    ----------
    state: ExecutionState
        Terminal state the execution reached.
    exit_code: int, optional
        Exit status of the user's program, ``None`` if it never ran to exit.
    error_kind: str, optional
        Diagnostic kind (``CompileError``, ``TimeoutExceeded``, ...) for
        failed executions.
    stdout: str
        Everything the compiler and program wrote to standard output.
    stderr: str
        Everything the compiler and program wrote to standard error.
    duration_ms: int
        Wall‑clock time from creation to the terminal state.
    """

    state: ExecutionState
    exit_code: Optional[int]
    error_kind: Optional[str]
    stdout: str
    stderr: str
    duration_ms: int


@dataclass
class Execution:
    descriptor: LanguageDescriptor
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: ExecutionState = ExecutionState.PENDING
    source_path: Optional[Path] = None
    artifact_path: Optional[Path] = None
    process: Optional[asyncio.subprocess.Process] = None
    task: Optional[asyncio.Task] = None
    timer: Optional[asyncio.TimerHandle] = None
    kill_timer: Optional[asyncio.TimerHandle] = None
    timed_out: bool = False
    exit_code: Optional[int] = None
    error_kind: Optional[str] = None
    # Kept for diagnostics only; output is streamed to the client as it arrives.
    stdout: List[str] = field(default_factory=list)
    stderr: List[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.perf_counter)
    finished_at: Optional[float] = None

    @property
    def language(self) -> str:
        return self.descriptor.language

    @property
    def is_active(self) -> bool:
        if self.state.terminal:
            return False
        return self.task is None or not self.task.done()

    def transition(self, state: ExecutionState) -> None:
        if state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value} for execution {self.id}")
        self.state = state
        if state.terminal:
            self.finished_at = time.perf_counter()

    def fail(self, error: ExecutionError) -> None:
        """Move to the terminal state matching ``error``."""
        if self.state.terminal:
            return
        self.error_kind = error.kind
        if isinstance(error, TimeoutExceeded):
            self.transition(ExecutionState.TIMED_OUT)
        else:
            self.transition(ExecutionState.FAILED)

    def disarm(self) -> None:
        for handle in (self.timer, self.kill_timer):
            if handle is not None:
                handle.cancel()
        self.timer = None
        self.kill_timer = None

    def result(self) -> ExecutionResult:
        end = self.finished_at if self.finished_at is not None else time.perf_counter()
        return ExecutionResult(
            state=self.state,
            exit_code=self.exit_code,
            error_kind=self.error_kind,
            stdout="".join(self.stdout),
            stderr="".join(self.stderr),
            duration_ms=int((end - self.started_at) * 1000),
        )
