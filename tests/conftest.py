"""Shared fixtures and fakes for the liveterm test suite."""

from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

# Must be set before liveterm.api.main is imported: it loads config at import.
os.environ.setdefault("LIVETERM_SHELL", "/bin/sh")
os.environ.setdefault("LIVETERM_KILL_GRACE_SECONDS", "1")

from liveterm.artifacts import ArtifactManager  # noqa: E402
from liveterm.executor import ExecutionController  # noqa: E402
from liveterm.languages import LanguageDescriptor, LanguageRegistry, java_entry_name  # noqa: E402


PYTHON = LanguageDescriptor(
    language="python",
    extension="py",
    run_cmd=(sys.executable, "-u", "{source}"),
    env={"PYTHONUNBUFFERED": "1"},
)

# A "compiler" that copies the source to the artifact path; the copy is then
# run by the interpreter.  Lets the compile step be tested without gcc/javac.
FAKE_COMPILED = LanguageDescriptor(
    language="pycompiled",
    extension="py",
    compile_cmd=(
        sys.executable,
        "-c",
        "import shutil, sys; print('compiling'); shutil.copy(sys.argv[1], sys.argv[2])",
        "{source}",
        "{artifact}",
    ),
    run_cmd=(sys.executable, "-u", "{artifact}"),
    artifact_suffix=".bin",
)

BROKEN_COMPILER = LanguageDescriptor(
    language="broken",
    extension="txt",
    compile_cmd=(sys.executable, "-c", "import sys; sys.stderr.write('syntax error\\n'); sys.exit(1)", "{source}"),
    run_cmd=(sys.executable, "{artifact}"),
    artifact_suffix=".bin",
)

# Builds in a private directory and leaves an extra file there, the way javac
# writes one class file per nested type.
ISOLATED_COMPILED = LanguageDescriptor(
    language="isolated",
    extension="py",
    compile_cmd=(
        sys.executable,
        "-c",
        "import pathlib, shutil, sys; shutil.copy(sys.argv[1], sys.argv[2]); "
        "pathlib.Path(sys.argv[3], 'Helper.class').write_text('x')",
        "{source}",
        "{artifact}",
        "{workdir}",
    ),
    run_cmd=(sys.executable, "-u", "{artifact}"),
    isolated=True,
    artifact_suffix=".bin",
)

JAVA_MISSING = LanguageDescriptor(
    language="java",
    extension="java",
    compile_cmd=("javac", "{source}"),
    run_cmd=("java", "-cp", "{workdir}", "{entry}"),
    entry_resolver=java_entry_name,
    isolated=True,
    artifact_suffix=".class",
    compileable=False,
    unavailable_reason="Java compilation not available: no JDK (javac) was found.",
)

MISSING_RUNTIME = LanguageDescriptor(
    language="ghost",
    extension="gh",
    run_cmd=("/nonexistent/ghost-interpreter", "{source}"),
)


class RecordingSink:
    """Collects what an execution would send to the client."""

    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []

    async def output(self, text: str) -> None:
        self.events.append({"type": "output", "data": text})

    async def prompt_waiting(self, waiting: bool) -> None:
        self.events.append({"type": "prompt-waiting", "data": waiting})

    @property
    def text(self) -> str:
        return "".join(e["data"] for e in self.events if e["type"] == "output")


class FakeChannel:
    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    def outputs(self) -> str:
        return "".join(e["data"] for e in self.sent if e["type"] == "output")


class FakeShell:
    def __init__(self) -> None:
        self.written: List[str] = []
        self.size = (80, 24)
        self.closed = False

    def write(self, text: str) -> bool:
        self.written.append(text)
        return True

    def resize(self, cols: int, rows: int) -> None:
        self.size = (cols, rows)

    async def close(self) -> None:
        self.closed = True


async def wait_until(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


def residual_files(base: Path) -> List[Path]:
    return sorted(base.iterdir())


@pytest.fixture
def artifacts(tmp_path) -> ArtifactManager:
    return ArtifactManager(tmp_path / "runs")


@pytest.fixture
def registry() -> LanguageRegistry:
    return LanguageRegistry([PYTHON, FAKE_COMPILED, BROKEN_COMPILER, ISOLATED_COMPILED, JAVA_MISSING, MISSING_RUNTIME])


@pytest.fixture
def controller(registry, artifacts) -> ExecutionController:
    return ExecutionController(registry, artifacts, timeout=5, kill_grace=1)
