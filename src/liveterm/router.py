"""Per-session message routing.

Inbound frames are classified by :func:`liveterm.models.parse_inbound` and
sent to one of two places: the running program's standard input or the
session's shell.  ``run_code`` frames start a new execution when none is
active.  JSON objects with an unknown ``type`` are dropped; a known
``type`` with bad fields is answered with an ``InvalidMessage`` diagnostic.
Outbound text from the shell, the compiler and the program all goes
through :meth:`IORouter.output`, which also runs the prompt
heuristic.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict

from .errors import ExecutionInProgress, InvalidMessage, UnsupportedLanguage
from .executor import Execution, ExecutionController
from .logging import get_logger
from .models import (
    InboundMessage,
    InputMessage,
    MalformedMessage,
    OutputEvent,
    PromptWaitingEvent,
    RawShellInput,
    ResizeMessage,
    RunCodeMessage,
    SendInputMessage,
    UnknownMessage,
    parse_inbound,
)

if TYPE_CHECKING:
    from .session import Session

logger = get_logger()

SendJson = Callable[[Dict[str, Any]], Awaitable[None]]

# Phrases that usually mean a program stopped to read input.  Advisory only:
# false positives just enable the client's input box early.
PROMPT_PATTERNS = [
    re.compile(r"input\(", re.I),
    re.compile(r"readline", re.I),
    re.compile(r"printf.*\?", re.I),
    re.compile(r"scanf", re.I),
    re.compile(r"read -p", re.I),
    re.compile(r"Enter your", re.I),
    re.compile(r"What is", re.I),
    re.compile(r"Please enter", re.I),
    re.compile(r": $", re.M),
    re.compile(r"\? $", re.M),
]


def detect_prompt(text: str) -> bool:
    return any(pattern.search(text) for pattern in PROMPT_PATTERNS)


class IORouter:
    """Route one session's traffic between client, shell and execution."""

    def __init__(self, session: "Session", controller: ExecutionController) -> None:
        self.session = session
        self.controller = controller

    async def _send(self, event: Dict[str, Any]) -> None:
        await self.session.channel.send_json(event)

    async def output(self, text: str) -> None:
        await self._send(OutputEvent(data=text).model_dump())
        if detect_prompt(text):
            await self.prompt_waiting(True)

    async def prompt_waiting(self, waiting: bool) -> None:
        await self._send(PromptWaitingEvent(data=waiting).model_dump())

    async def dispatch(self, raw: str | bytes) -> None:
        await self.route(parse_inbound(raw))

    async def route(self, message: InboundMessage) -> None:
        if isinstance(message, RunCodeMessage):
            await self._run_code(message)
        elif isinstance(message, SendInputMessage):
            await self._send_input(message.data)
        elif isinstance(message, ResizeMessage):
            self.session.shell.resize(message.cols, message.rows)
        elif isinstance(message, (InputMessage, RawShellInput)):
            self.session.shell.write(message.data)
        elif isinstance(message, MalformedMessage):
            logger.info("Session %s: malformed %s message: %s", self.session.id, message.type, message.error)
            error = InvalidMessage(f"Malformed {message.type} message: {message.error}")
            await self.output(error.as_output())
        elif isinstance(message, UnknownMessage):
            logger.info("Session %s: dropping message of unknown type %r", self.session.id, message.type)

    async def _send_input(self, text: str) -> None:
        execution = self.session.execution
        if execution is not None and execution.is_active:
            if await self.controller.send_input(execution, text):
                return
        # No program to feed: the line goes to the shell instead.
        self.session.shell.write(text + "\n")

    async def _run_code(self, message: RunCodeMessage) -> None:
        current = self.session.execution
        if current is not None and current.is_active:
            logger.info(
                "Session %s: rejecting run_code, execution %s is %s",
                self.session.id,
                current.id,
                current.state.value,
            )
            error = ExecutionInProgress("An execution is already in progress; wait for it to finish")
            await self.output(error.as_output())
            return

        try:
            execution = self.controller.create(message.language)
        except UnsupportedLanguage as exc:
            await self.output(exc.as_output())
            return

        self.session.execution = execution
        execution.task = asyncio.create_task(
            self.controller.run(execution, message.data, message.input, self)
        )
        execution.task.add_done_callback(lambda _task: self._release(execution))

    def _release(self, execution: Execution) -> None:
        if self.session.execution is execution:
            self.session.execution = None
