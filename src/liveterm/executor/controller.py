"""
Execution controller.

One generic compile/run state machine, parameterised by the
:class:`~liveterm.languages.LanguageDescriptor` of the requested language.
The controller never blocks on a child process: standard streams are read
by coroutines and forwarded chunk by chunk to an :class:`OutputSink` as
soon as they arrive, and the wall‑clock limit is a loop timer rather than
a blocking wait.

Compiler output is drained completely before the program is spawned, so
the client never sees program output interleaved with compiler output.
"""

from __future__ import annotations

import asyncio
import codecs
import os
import signal
from pathlib import Path
from typing import List, Optional, Protocol

from ..artifacts import ArtifactManager
from ..errors import CompileError, ExecutionError, SpawnError, TimeoutExceeded, ToolchainUnavailable
from ..languages import LanguageRegistry
from ..logging import get_logger
from .base import Execution, ExecutionResult, ExecutionState

logger = get_logger()

READ_CHUNK = 4096


class OutputSink(Protocol):
    """Receiver of everything an execution wants the client to see."""

    async def output(self, text: str) -> None: ...

    async def prompt_waiting(self, waiting: bool) -> None: ...


def _signal_process(process: Optional[asyncio.subprocess.Process], sig: int) -> None:
    """Send ``sig`` to ``process`` and its children, if it is still alive."""
    if process is None or process.returncode is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, sig)
        else:
            process.send_signal(sig)
    except ProcessLookupError:
        pass


class ExecutionController:
    """Drive executions from source text to a terminal state."""

    def __init__(
        self,
        registry: LanguageRegistry,
        artifacts: ArtifactManager,
        timeout: float = 30,
        kill_grace: float = 2,
    ) -> None:
        """
        Parameters
        ----------
        registry: LanguageRegistry
            Source of language descriptors.
        artifacts: ArtifactManager
            Creates and deletes the temp files of every execution.
        timeout: float, optional
            Wall‑clock seconds a program may run before it is terminated.
            The compile step is not subject to this limit.
        kill_grace: float, optional
            Seconds between ``SIGTERM`` and ``SIGKILL`` for a program that
            ignores termination.  ``0`` disables the escalation.
        """
        self.registry = registry
        self.artifacts = artifacts
        self.timeout = timeout
        self.kill_grace = kill_grace

    def create(self, language: str) -> Execution:
        """Return a new ``PENDING`` execution; raises ``UnsupportedLanguage``."""
        return Execution(descriptor=self.registry.describe(language))

    async def run(
        self,
        execution: Execution,
        code: str,
        stdin: Optional[str],
        sink: OutputSink,
    ) -> ExecutionResult:
        """Compile (if needed) and run ``code``, streaming output to ``sink``.

        Every diagnostic is reported through ``sink``; this coroutine only
        propagates cancellation.  Temp files are deleted and timers disarmed
        whatever the outcome.
        """
        logger.info("Execution %s started (%s)", execution.id, execution.language)
        try:
            await self._run(execution, code, stdin, sink)
        except ExecutionError as exc:
            logger.info("Execution %s failed: %s %s", execution.id, exc.kind, exc.message)
            execution.fail(exc)
            await self._report(sink, exc.as_output())
        except asyncio.CancelledError:
            self._finalize(execution)
            raise
        except Exception as exc:
            logger.exception("Unexpected error in execution %s", execution.id)
            execution.disarm()
            await self._terminate(execution, execution.process)
            execution.error_kind = "InternalError"
            if not execution.state.terminal:
                execution.transition(ExecutionState.FAILED)
            await self._report(sink, f"[InternalError] {exc}\r\n")
        self._finalize(execution)
        await self._report_prompt(sink, False)
        result = execution.result()
        logger.info(
            "Execution %s finished: state=%s, exit_code=%s, duration_ms=%s",
            execution.id,
            result.state.value,
            result.exit_code,
            result.duration_ms,
        )
        return result

    async def _run(self, execution: Execution, code: str, stdin: Optional[str], sink: OutputSink) -> None:
        descriptor = execution.descriptor
        execution.source_path = self.artifacts.write_source(code, descriptor)
        execution.source_path = self.artifacts.reconcile_entry_name(execution.source_path, code, descriptor)

        if descriptor.compiled:
            if not descriptor.compileable:
                raise ToolchainUnavailable(descriptor.unavailable_reason or f"{descriptor.language} toolchain not available")
            execution.artifact_path = self.artifacts.artifact_path(execution.source_path, descriptor)
            execution.transition(ExecutionState.COMPILING)
            await self._compile(execution, sink)

        execution.transition(ExecutionState.RUNNING)
        await self._execute(execution, stdin, sink)

    def _environment(self, execution: Execution) -> dict:
        env = dict(os.environ)
        if execution.descriptor.env:
            env.update(execution.descriptor.env)
        return env

    async def _spawn(self, argv: List[str], cwd: Path, env: dict, stdin: int) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=env,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=os.name == "posix",
            )
        except OSError as exc:
            raise SpawnError(f"Error spawning process '{argv[0]}': {exc}") from exc

    async def _compile(self, execution: Execution, sink: OutputSink) -> None:
        source = execution.source_path
        argv = execution.descriptor.compile_argv(source, execution.artifact_path)
        logger.info("Execution %s compiling: %s", execution.id, " ".join(argv))
        process = await self._spawn(argv, source.parent, self._environment(execution), asyncio.subprocess.DEVNULL)
        execution.process = process
        await self._pump_streams(execution, process, sink)
        returncode = await process.wait()
        execution.process = None
        if returncode != 0:
            raise CompileError(f"Compilation failed (exit code {returncode})", exit_code=returncode)

    async def _execute(self, execution: Execution, stdin: Optional[str], sink: OutputSink) -> None:
        source = execution.source_path
        argv = execution.descriptor.run_argv(source, execution.artifact_path)
        logger.info("Execution %s running: %s", execution.id, " ".join(argv))
        process = await self._spawn(argv, source.parent, self._environment(execution), asyncio.subprocess.PIPE)
        execution.process = process
        execution.timer = asyncio.get_running_loop().call_later(self.timeout, self._on_timeout, execution)

        if stdin:
            await self._write_stdin(execution, stdin)

        await self._pump_streams(execution, process, sink)
        returncode = await process.wait()
        execution.disarm()

        if execution.timed_out:
            raise TimeoutExceeded(f"Process timed out after {self.timeout:g} seconds")
        execution.exit_code = returncode
        execution.transition(ExecutionState.COMPLETED)
        if returncode != 0:
            await self._report(sink, f"\r\n[Process exited with code {returncode}]\r\n")

    async def _pump_streams(self, execution: Execution, process: asyncio.subprocess.Process, sink: OutputSink) -> None:
        pumps = [
            asyncio.ensure_future(self._pump(process.stdout, execution.stdout, sink)),
            asyncio.ensure_future(self._pump(process.stderr, execution.stderr, sink)),
        ]
        try:
            await asyncio.wait(pumps, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            # A failed or cancelled pump must not leave its sibling running.
            for pump in pumps:
                pump.cancel()
            results = await asyncio.gather(*pumps, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                raise result

    async def _pump(self, stream: Optional[asyncio.StreamReader], buffer: List[str], sink: OutputSink) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                buffer.append(text)
                await sink.output(text)
            if not chunk:
                break

    async def _write_stdin(self, execution: Execution, text: str) -> bool:
        process = execution.process
        if process is None or process.stdin is None or process.stdin.is_closing():
            return False
        try:
            process.stdin.write(text.encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.info("Execution %s stdin closed: %s", execution.id, exc)
            return False
        return True

    async def send_input(self, execution: Execution, text: str) -> bool:
        """Write one line to the running program; ``False`` if it cannot take input."""
        if execution.state is not ExecutionState.RUNNING:
            return False
        return await self._write_stdin(execution, text + "\n")

    def _on_timeout(self, execution: Execution) -> None:
        execution.timer = None
        if execution.process is None or execution.process.returncode is not None:
            return
        logger.warning("Execution %s exceeded %ss; terminating", execution.id, self.timeout)
        execution.timed_out = True
        _signal_process(execution.process, signal.SIGTERM)
        if self.kill_grace > 0 and hasattr(signal, "SIGKILL"):
            execution.kill_timer = asyncio.get_running_loop().call_later(
                self.kill_grace, _signal_process, execution.process, signal.SIGKILL
            )

    def _finalize(self, execution: Execution) -> None:
        execution.disarm()
        _signal_process(execution.process, signal.SIGTERM)
        self.artifacts.cleanup(execution)

    async def cancel(self, execution: Execution) -> None:
        """Stop ``execution`` from outside, e.g. when its session goes away.

        The process gets ``SIGTERM`` and, after the grace period,
        ``SIGKILL``.  Temp files are removed even if the process refuses
        to die.
        """
        execution.disarm()
        process = execution.process
        try:
            _signal_process(process, signal.SIGTERM)
            task = execution.task
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            await self._terminate(execution, process)
        finally:
            if not execution.state.terminal:
                execution.error_kind = "Cancelled"
                execution.transition(ExecutionState.FAILED)
            self.artifacts.cleanup(execution)
            logger.info("Execution %s cancelled", execution.id)

    async def _terminate(
        self, execution: Execution, process: Optional[asyncio.subprocess.Process]
    ) -> None:
        """Stop ``process`` with SIGTERM, then SIGKILL after the grace period, and reap it."""
        if process is None or process.returncode is not None:
            return
        _signal_process(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=max(self.kill_grace, 0.1))
        except asyncio.TimeoutError:
            if hasattr(signal, "SIGKILL"):
                _signal_process(process, signal.SIGKILL)
            try:
                await asyncio.wait_for(process.wait(), timeout=1)
            except asyncio.TimeoutError:
                logger.error("Execution %s process %s did not exit after SIGKILL", execution.id, process.pid)

    async def _report(self, sink: OutputSink, text: str) -> None:
        try:
            await sink.output(text)
        except Exception:
            logger.exception("Could not deliver diagnostic to client")

    async def _report_prompt(self, sink: OutputSink, waiting: bool) -> None:
        try:
            await sink.prompt_waiting(waiting)
        except Exception:
            logger.exception("Could not deliver prompt state to client")
