"""Configuration loader.

The terminal service reads its configuration from environment variables so
the same image can run in development and behind a reverse proxy without
code changes.  Reasonable defaults are provided so that local development
works out of the box.

Environment variables:

``LIVETERM_ENABLE_TERMINAL``
    Gate for the ``/terminal`` WebSocket.  When false, connections are
    accepted and immediately closed with a policy violation.  Defaults to
    ``true``.

``LIVETERM_TEMP_DIR``
    Directory where source files and compiled outputs are written.  Shared
    by every session; names are unique per execution.  Defaults to the
    system temp directory.

``LIVETERM_EXECUTION_TIMEOUT_SECONDS``
    Wall‑clock limit for one run process.  Default is 30.

``LIVETERM_KILL_GRACE_SECONDS``
    Seconds to wait after ``SIGTERM`` before a timed out process is sent
    ``SIGKILL``.  Default is 2.

``LIVETERM_SHELL``
    Interactive shell started for every connection.  Defaults to
    ``$SHELL`` and then ``bash``.

``LIVETERM_ALLOWED_LANGS``
    Comma‑separated list of language ids that may be run.  Empty means all
    languages known to the registry.

``LIVETERM_JDK_PATHS``
    Extra directories (``os.pathsep`` separated) searched for ``javac``.

``LIVETERM_WS_PING_INTERVAL``
    Seconds between WebSocket keep‑alive pings.  Default is 30.

``LIVETERM_LOG_LEVEL``
    Level of the ``liveterm`` logger.  Defaults to ``INFO``.

``HOST`` / ``PORT``
    Bind address of the server.  Defaults to ``0.0.0.0:5002``.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from typing import List


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y"}


def _int_var(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {val}")


def _list_var(name: str, sep: str = ",") -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(sep) if item.strip()]


@dataclass
class Config:
    """Centralised configuration object."""

    enable_terminal: bool = True
    temp_dir: str = field(default_factory=tempfile.gettempdir)
    execution_timeout_seconds: int = 30
    kill_grace_seconds: int = 2
    shell: str = "bash"
    allowed_langs: List[str] = field(default_factory=list)
    jdk_paths: List[str] = field(default_factory=list)
    ws_ping_interval: int = 30
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5002

    @classmethod
    def load(cls) -> "Config":
        enable_terminal = _parse_bool(os.getenv("LIVETERM_ENABLE_TERMINAL"), True)
        temp_dir = os.getenv("LIVETERM_TEMP_DIR") or tempfile.gettempdir()

        execution_timeout_seconds = _int_var("LIVETERM_EXECUTION_TIMEOUT_SECONDS", 30)
        if execution_timeout_seconds <= 0:
            raise ValueError(
                f"LIVETERM_EXECUTION_TIMEOUT_SECONDS must be positive, got {execution_timeout_seconds}"
            )
        kill_grace_seconds = _int_var("LIVETERM_KILL_GRACE_SECONDS", 2)

        shell = os.getenv("LIVETERM_SHELL") or os.getenv("SHELL") or "bash"
        allowed_langs = [lang.lower() for lang in _list_var("LIVETERM_ALLOWED_LANGS")]
        jdk_paths = _list_var("LIVETERM_JDK_PATHS", os.pathsep)

        return cls(
            enable_terminal=enable_terminal,
            temp_dir=temp_dir,
            execution_timeout_seconds=execution_timeout_seconds,
            kill_grace_seconds=kill_grace_seconds,
            shell=shell,
            allowed_langs=allowed_langs,
            jdk_paths=jdk_paths,
            ws_ping_interval=_int_var("LIVETERM_WS_PING_INTERVAL", 30),
            log_level=os.getenv("LIVETERM_LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int_var("PORT", 5002),
        )

    @classmethod
    def from_env(cls) -> "Config":
        """Alternate constructor used by the API to load configuration."""
        return cls.load()
