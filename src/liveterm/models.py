"""Pydantic models for terminal WebSocket messages.

Inbound frames are JSON objects discriminated by ``type``.  Anything that is
not a JSON object is treated as raw keystrokes for the shell, matching how
browser terminals send data.  JSON objects are never typed into the shell:
an unknown ``type`` is dropped and a known ``type`` with bad fields is
reported back to the client.
"""

from __future__ import annotations

import json
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError


class RunCodeMessage(BaseModel):
    """Request to compile and run a snippet."""

    type: Literal["run_code"] = "run_code"
    language: str = Field(
        default="javascript",
        description="Language id from the registry, e.g. 'python', 'java', 'cpp'.",
    )
    data: str = Field(..., description="Source code to execute.")
    input: Optional[str] = Field(
        default=None, description="Initial standard input written right after spawn."
    )


class SendInputMessage(BaseModel):
    """A line typed by the user while a program may be waiting for input."""

    type: Literal["send-input"] = "send-input"
    data: str


class InputMessage(BaseModel):
    """Raw terminal keystrokes destined for the shell."""

    type: Literal["input"] = "input"
    data: str


class ResizeMessage(BaseModel):
    """New size of the client terminal, applied to the shell pty."""

    type: Literal["resize"] = "resize"
    cols: int = Field(..., gt=0, le=1000)
    rows: int = Field(..., gt=0, le=1000)


class RawShellInput(BaseModel):
    """Non-JSON payload forwarded verbatim to the shell."""

    data: str


class UnknownMessage(BaseModel):
    """JSON object whose ``type`` matches no handler; dropped."""

    type: Optional[str] = None


class MalformedMessage(BaseModel):
    """JSON object of a known ``type`` that failed validation."""

    type: str
    error: str


class OutputEvent(BaseModel):
    """Text for the client terminal, from the shell, a compiler or a program."""

    type: Literal["output"] = "output"
    data: str


class PromptWaitingEvent(BaseModel):
    """Whether the running program appears to be waiting for input."""

    type: Literal["prompt-waiting"] = "prompt-waiting"
    data: bool


class LanguageInfo(BaseModel):
    """Entry of the ``/languages`` listing."""

    language: str
    compiled: bool
    compileable: bool
    reason: Optional[str] = Field(
        default=None, description="Why the language cannot be compiled on this host."
    )


InboundMessage = Union[
    RunCodeMessage,
    SendInputMessage,
    InputMessage,
    ResizeMessage,
    RawShellInput,
    UnknownMessage,
    MalformedMessage,
]

_INBOUND_TYPES = {
    "run_code": RunCodeMessage,
    "send-input": SendInputMessage,
    "input": InputMessage,
    "resize": ResizeMessage,
}


def parse_inbound(raw: str | bytes) -> InboundMessage:
    """Classify one inbound frame.

    Text that is not a JSON object becomes :class:`RawShellInput` so plain
    keystrokes (including digits, which parse as JSON numbers) reach the
    shell.  Objects become :class:`UnknownMessage` or
    :class:`MalformedMessage` when they cannot be handled.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw)
    except ValueError:
        return RawShellInput(data=raw)
    if not isinstance(payload, dict):
        return RawShellInput(data=raw)
    kind = payload.get("type")
    model = _INBOUND_TYPES.get(kind) if isinstance(kind, str) else None
    if model is None:
        return UnknownMessage(type=kind if isinstance(kind, str) else None)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        return MalformedMessage(type=kind, error=_summarize(exc))


def _summarize(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "message"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)
