"""Session lifecycle.

A :class:`Session` is the explicit per-connection record: its shell, its
current execution (at most one) and the channel events are written to.
:class:`SessionManager` is the only owner of sessions; it creates them on
connect, hands inbound frames to the session's router and tears everything
down on disconnect.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from .executor import Execution, ExecutionController
from .logging import get_logger
from .router import IORouter
from .shell import ShellSession

logger = get_logger()


class Channel(Protocol):
    """Ordered, reliable transport to one client (e.g. a WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


@dataclass
class Session:
    channel: Channel
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    shell: Optional[ShellSession] = None
    execution: Optional[Execution] = None
    router: Optional[IORouter] = None
    closed: bool = False


class SessionManager:
    """Create, route and destroy sessions."""

    def __init__(
        self,
        controller: ExecutionController,
        shell_command: Optional[List[str]] = None,
        shell_cwd: Optional[str] = None,
    ) -> None:
        self.controller = controller
        self.shell_command = shell_command
        self.shell_cwd = shell_cwd
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Session:
        return self._sessions[session_id]

    async def open(self, channel: Channel) -> Session:
        """Allocate a session and its shell for a new connection."""
        session = Session(channel=channel)
        session.router = IORouter(session, self.controller)
        session.shell = ShellSession(session.router.output, command=self.shell_command, cwd=self.shell_cwd)
        await session.shell.start()
        self._sessions[session.id] = session
        logger.info("Session %s opened (%d active)", session.id, len(self._sessions))
        return session

    async def dispatch(self, session_id: str, raw: str | bytes) -> None:
        session = self._sessions.get(session_id)
        if session is None or session.closed:
            logger.warning("Dropping message for unknown session %s", session_id)
            return
        await session.router.dispatch(raw)

    async def close(self, session_id: str) -> None:
        """Tear down a session.

        Timer, execution process, shell and temp files are each released
        even when an earlier step fails; failures are logged.
        """
        session = self._sessions.pop(session_id, None)
        if session is None or session.closed:
            return
        session.closed = True
        execution = session.execution
        session.execution = None

        if execution is not None:
            try:
                execution.disarm()
            except Exception:
                logger.exception("Session %s: failed to disarm timer", session_id)
            try:
                await self.controller.cancel(execution)
            except Exception:
                logger.exception("Session %s: failed to stop execution %s", session_id, execution.id)
        if session.shell is not None:
            try:
                await session.shell.close()
            except Exception:
                logger.exception("Session %s: failed to close shell", session_id)
        if execution is not None:
            try:
                self.controller.artifacts.cleanup(execution)
            except Exception:
                logger.exception("Session %s: failed to remove artifacts", session_id)
        logger.info("Session %s closed (%d active)", session_id, len(self._sessions))

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)
