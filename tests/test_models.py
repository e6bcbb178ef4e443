"""Tests for inbound frame classification."""

from __future__ import annotations

import json

from liveterm.models import (
    InputMessage,
    MalformedMessage,
    RawShellInput,
    ResizeMessage,
    RunCodeMessage,
    SendInputMessage,
    UnknownMessage,
    parse_inbound,
)


def test_run_code_with_defaults():
    message = parse_inbound(json.dumps({"type": "run_code", "data": "console.log(1)"}))
    assert isinstance(message, RunCodeMessage)
    assert message.language == "javascript"
    assert message.input is None


def test_run_code_with_input():
    raw = json.dumps({"type": "run_code", "language": "python", "data": "input()", "input": "x\n"})
    message = parse_inbound(raw)
    assert isinstance(message, RunCodeMessage)
    assert message.language == "python"
    assert message.input == "x\n"


def test_send_input_and_input():
    assert isinstance(parse_inbound('{"type": "send-input", "data": "42"}'), SendInputMessage)
    assert isinstance(parse_inbound('{"type": "input", "data": "ls\\r"}'), InputMessage)


def test_resize():
    message = parse_inbound('{"type": "resize", "cols": 100, "rows": 30}')
    assert isinstance(message, ResizeMessage)
    assert (message.cols, message.rows) == (100, 30)


def test_text_that_is_not_a_json_object_goes_to_the_shell():
    for raw in ["ls -la\r", "42", '["a"]', "{not json"]:
        message = parse_inbound(raw)
        assert isinstance(message, RawShellInput)
        assert message.data == raw


def test_bytes_are_decoded():
    message = parse_inbound(b"\x1b[A")
    assert isinstance(message, RawShellInput)
    assert message.data == "\x1b[A"


def test_unknown_type_is_not_shell_input():
    message = parse_inbound('{"type": "subscribe", "room": "abc"}')
    assert isinstance(message, UnknownMessage)
    assert message.type == "subscribe"

    message = parse_inbound('{"data": "no type at all"}')
    assert isinstance(message, UnknownMessage)
    assert message.type is None


def test_known_type_with_bad_fields_is_malformed():
    message = parse_inbound('{"type": "run_code", "language": "python"}')
    assert isinstance(message, MalformedMessage)
    assert message.type == "run_code"
    assert "data" in message.error

    message = parse_inbound('{"type": "resize", "cols": -1, "rows": 2}')
    assert isinstance(message, MalformedMessage)
    assert "cols" in message.error
