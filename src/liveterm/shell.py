"""Interactive shell attached to a pseudo-terminal.

Every connection gets one long-lived shell.  It receives raw keystrokes
from the client and whatever ``send-input`` text arrives while no program
is running.  Submitted code is never run inside this shell: executions
always get a fresh child process, so a crashing or hung program cannot
leave the shell in a broken state.

The pty master is read through an asyncio pipe transport, so output is
delivered in order without blocking the event loop.  POSIX only.
"""

from __future__ import annotations

import asyncio
import codecs
import fcntl
import os
import pty
import signal
import struct
import termios
from typing import Awaitable, Callable, List, Optional

from .logging import get_logger

logger = get_logger()

OutputCallback = Callable[[str], Awaitable[None]]

TERM_NAME = "xterm-color"
DEFAULT_COLS = 80
DEFAULT_ROWS = 24


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _make_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is the pty slave.  Without a
    # controlling tty the shell still works, only job control is lost.
    try:
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)
    except OSError:
        pass


class ShellSession:
    """One shell process running on its own pseudo-terminal."""

    def __init__(
        self,
        on_output: OutputCallback,
        command: Optional[List[str]] = None,
        cwd: Optional[str] = None,
        cols: int = DEFAULT_COLS,
        rows: int = DEFAULT_ROWS,
    ) -> None:
        self.on_output = on_output
        self.command = command or [os.environ.get("SHELL") or "bash"]
        self.cwd = cwd or os.environ.get("HOME") or os.getcwd()
        self.cols = cols
        self.rows = rows
        self.process: Optional[asyncio.subprocess.Process] = None
        self._master_fd: Optional[int] = None
        self._transport: Optional[asyncio.ReadTransport] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def alive(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self) -> None:
        master_fd, slave_fd = pty.openpty()
        try:
            _set_winsize(master_fd, self.cols, self.rows)
            env = dict(os.environ, TERM=TERM_NAME)
            self.process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=self.cwd,
                env=env,
                start_new_session=True,
                preexec_fn=_make_controlling_tty,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)

        self._master_fd = master_fd
        loop = asyncio.get_running_loop()
        self._reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(self._reader)
        self._transport, _ = await loop.connect_read_pipe(lambda: protocol, os.fdopen(master_fd, "rb", 0))
        self._pump_task = asyncio.create_task(self._pump())
        logger.info("Shell %s started (pid %s)", " ".join(self.command), self.process.pid)

    async def _pump(self) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                chunk = await self._reader.read(4096)
            except OSError:
                # EIO once the slave side has no more writers.
                chunk = b""
            text = decoder.decode(chunk, final=not chunk)
            if text:
                try:
                    await self.on_output(text)
                except Exception:
                    logger.exception("Could not forward shell output")
            if not chunk:
                break

    def write(self, text: str) -> bool:
        """Send keystrokes to the shell; ``False`` once it is gone."""
        if self._closed or self._master_fd is None or not self.alive:
            return False
        try:
            os.write(self._master_fd, text.encode("utf-8"))
        except OSError as exc:
            logger.warning("Error writing to shell: %s", exc)
            return False
        return True

    def resize(self, cols: int, rows: int) -> None:
        self.cols, self.rows = cols, rows
        if self._master_fd is not None and not self._closed:
            _set_winsize(self._master_fd, cols, rows)

    async def close(self, grace: float = 1.0) -> None:
        """Terminate the shell and release the pty. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        process = self.process
        try:
            if process is not None and process.returncode is None:
                try:
                    os.killpg(process.pid, signal.SIGHUP)
                except ProcessLookupError:
                    pass
                try:
                    await asyncio.wait_for(process.wait(), timeout=grace)
                except asyncio.TimeoutError:
                    try:
                        os.killpg(process.pid, signal.SIGKILL)
                    except ProcessLookupError:
                        pass
                    await asyncio.wait_for(process.wait(), timeout=grace)
        finally:
            if self._transport is not None:
                self._transport.close()
            if self._pump_task is not None and not self._pump_task.done():
                self._pump_task.cancel()
                await asyncio.gather(self._pump_task, return_exceptions=True)
            logger.info("Shell (pid %s) closed", self.pid)
