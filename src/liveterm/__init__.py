"""Live multi-language code execution and terminal service.

Clients connect over a WebSocket, get a private interactive shell, and can
submit snippets that are compiled and run in a fresh child process with
output streamed back as it is produced.

The top‑level modules include:

* ``config`` – configuration handling for environment variables.
* ``models`` – Pydantic models for the WebSocket messages.
* ``languages`` – registry of language toolchains probed at start-up.
* ``artifacts`` – temp source files and compiled outputs.
* ``executor`` – the compile/run state machine.
* ``shell`` – the per-connection pseudo-terminal shell.
* ``router`` – routing of inbound frames and prompt detection.
* ``session`` – per-connection session lifecycle.
* ``api`` – FastAPI application exposing the WebSocket and HTTP endpoints.
"""

__version__ = "0.1.0"
