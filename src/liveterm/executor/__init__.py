"""
Execution engine for submitted snippets.

A single :class:`ExecutionController` handles every language: the
compile/run steps, environment and file naming rules come from the
language's :class:`~liveterm.languages.LanguageDescriptor` rather than
from per-language subclasses.  Each accepted ``run_code`` request becomes
one :class:`Execution` which moves through the states of
:class:`ExecutionState` and ends with an :class:`ExecutionResult`.
"""

from .base import Execution, ExecutionResult, ExecutionState
from .controller import ExecutionController, OutputSink

__all__ = [
    "Execution",
    "ExecutionResult",
    "ExecutionState",
    "ExecutionController",
    "OutputSink",
]
