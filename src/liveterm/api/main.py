"""
FastAPI application for the live terminal service.

This module wires the language registry, artifact manager, execution
controller and session manager together and exposes them over a
WebSocket at ``/terminal``.  Every connection gets its own shell and may
run one snippet at a time; output is streamed back as ``output`` events
and a heuristic ``prompt-waiting`` event tells the client when a program
seems to be waiting for input.

Two small HTTP endpoints are provided for operators: ``/health`` and
``/languages``, the latter listing which toolchains were found on the host.
"""

from __future__ import annotations

import shlex
from contextlib import asynccontextmanager
from typing import Dict, List

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status

from ..artifacts import ArtifactManager
from ..config import Config
from ..executor import ExecutionController
from ..languages import LanguageRegistry
from ..logging import get_logger
from ..models import LanguageInfo
from ..session import SessionManager


config = Config.from_env()

logger = get_logger(config.log_level)

logger.info(
    "Loaded config: enable_terminal=%s, temp_dir=%s, timeout=%ss, shell=%s, allowed_langs=%s",
    config.enable_terminal,
    config.temp_dir,
    config.execution_timeout_seconds,
    config.shell,
    config.allowed_langs or "all",
)

registry = LanguageRegistry.probe(config)
artifacts = ArtifactManager(config.temp_dir)
controller = ExecutionController(
    registry,
    artifacts,
    timeout=config.execution_timeout_seconds,
    kill_grace=config.kill_grace_seconds,
)
manager = SessionManager(controller, shell_command=shlex.split(config.shell))


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await manager.close_all()


app = FastAPI(title="Live Terminal Service", version="0.1.0", lifespan=lifespan)


@app.get("/health")
async def health() -> Dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}


@app.get("/languages", response_model=List[LanguageInfo])
async def languages() -> List[LanguageInfo]:
    """List runnable languages and whether their compiler was found."""
    infos = []
    for language in registry.languages():
        descriptor = registry.describe(language)
        infos.append(
            LanguageInfo(
                language=language,
                compiled=descriptor.compiled,
                compileable=descriptor.compileable,
                reason=descriptor.unavailable_reason,
            )
        )
    return infos


@app.websocket("/terminal")
async def terminal(websocket: WebSocket) -> None:
    await websocket.accept()
    client = getattr(websocket.client, "host", "unknown")

    if not config.enable_terminal:
        logger.warning("Terminal disabled; rejecting connection from %s", client)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Terminal is disabled")
        return

    logger.info("Client %s connected to terminal", client)
    try:
        session = await manager.open(websocket)
    except OSError as exc:
        logger.exception("Failed to spawn shell for %s: %s", client, exc)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Could not start shell")
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await manager.dispatch(session.id, raw)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.exception("Terminal connection error for session %s: %s", session.id, exc)
    finally:
        await manager.close(session.id)
        logger.info("Client %s disconnected from terminal", client)
