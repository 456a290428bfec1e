"""Process session: one child process, its I/O wiring and its output buffer."""

import asyncio
import codecs
import fcntl
import logging
import os
import pty
import re
import signal
import struct
import subprocess
import termios
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .buffer import OutputBuffer
from .config import SessionConfig
from .errors import SpawnError
from .keys import encode_keys

logger = logging.getLogger(__name__)


# ANSI escape sequence pattern
# Matches: ESC[...m (colors), ESC[...H (cursor), ESC]...\x07 (OSC), etc.
ANSI_ESCAPE_PATTERN = re.compile(
    r'\x1b'  # ESC character
    r'(?:'  # Non-capturing group for alternatives
    r'\[[0-9;?]*[A-Za-z]'  # CSI sequences: ESC[...letter
    r'|\][^\x07\x1b]*\x07'  # OSC sequences: ESC]...\x07
    r'|\][^\x1b]*\x1b\\'  # OSC sequences: ESC]...\x1b\\
    r'|\([0-9A-Za-z]'  # Charset sequences: ESC(X
    r'|\)[0-9A-Za-z]'  # Charset sequences: ESC)X
    r'|[=>]'  # Keypad mode
    r')'
)

# On pipes there is no line discipline, so these keystrokes are delivered as
# the signals a terminal would generate for them.
PIPE_SIGNAL_KEYS = {
    0x03: signal.SIGINT,  # C-c
    0x1C: signal.SIGQUIT,  # C-\
}

READ_CHUNK_SIZE = 4096
# How long the exit watcher waits for readers to drain after the process exits.
READER_DRAIN_TIMEOUT = 1.0


def strip_ansi_codes(text: str) -> str:
    """
    Remove ANSI escape codes and other unprintable characters from text.

    Args:
        text: Text potentially containing ANSI codes

    Returns:
        Text with ANSI codes removed
    """
    text = ANSI_ESCAPE_PATTERN.sub('', text)

    # Remove other control characters except \n, \r, \t
    return re.sub(r'[\x00-\x08\x0b-\x0c\x0e-\x1f\x7f]', '', text)


def generate_session_id() -> str:
    """Millisecond timestamp plus a random suffix."""
    return f"proc-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _acquire_controlling_tty() -> None:
    # Runs in the child between fork and exec; stdin is the pty slave.
    os.setsid()
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class SessionState(str, Enum):
    """Lifecycle states for a process session."""

    CREATED = "created"
    RUNNING = "running"
    EXITED = "exited"  # Process exited on its own
    KILLED = "killed"  # Terminated through kill()


@dataclass
class ProcessSession:
    """A child process exposed as an interactive, terminal-like session.

    The process is an interactive shell started from ``config``; ``command``
    (when it is not the shell itself) is typed into it as the first line.
    Its stdout and stderr are captured into ``buffer`` by background reader
    tasks, and an exit watcher fires the ``on_exit`` callback once the
    process is gone.

    Two transports are supported. With plain pipes (the default) no terminal
    device exists: ``resize`` only records the new size, and ``send_keys``
    applies the input rules a terminal would (carriage return becomes a
    newline, C-c and C-\\ signal the process group). With ``use_pty`` a real
    pseudo-terminal is allocated and the kernel handles both.
    """

    session_id: str
    command: str
    config: SessionConfig
    log_dir: Optional[str] = None
    pid: int = field(default=0, init=False)
    buffer: OutputBuffer = field(init=False)
    cols: int = field(init=False)
    rows: int = field(init=False)
    state: SessionState = field(default=SessionState.CREATED, init=False)
    exit_code: Optional[int] = field(default=None, init=False)
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)
    _process: Optional[asyncio.subprocess.Process] = field(default=None, init=False)
    _master_fd: Optional[int] = field(default=None, init=False)
    _reader_tasks: list[asyncio.Task] = field(default_factory=list, init=False)
    _watch_task: Optional[asyncio.Task] = field(default=None, init=False)
    _log_file: Optional[object] = field(default=None, init=False)
    log_path: Optional[str] = field(default=None, init=False)
    _on_exit: Optional[Callable[["ProcessSession"], None]] = field(
        default=None, init=False
    )

    def __post_init__(self) -> None:
        self.buffer = OutputBuffer(self.config.max_buffer_lines)
        self.cols = self.config.cols
        self.rows = self.config.rows

    @property
    def cwd(self) -> str:
        return self.config.cwd

    @property
    def transport(self) -> str:
        return "pty" if self.config.use_pty else "pipe"

    def set_on_exit(self, callback: Callable[["ProcessSession"], None]) -> None:
        """Set a callback invoked once the process has exited and been reaped."""
        self._on_exit = callback

    def _build_env(self) -> dict[str, str]:
        env = {**os.environ, **self.config.env}
        env["TERM"] = "xterm-256color"
        env["COLUMNS"] = str(self.cols)
        env["LINES"] = str(self.rows)
        return env

    def _is_shell(self, command: str) -> bool:
        command = command.strip()
        return command in (self.config.shell, os.path.basename(self.config.shell))

    async def start(self) -> None:
        """Start the process and its reader tasks.

        Raises:
            SpawnError: if the working directory is invalid or the shell
                cannot be executed.
        """
        if not os.path.isdir(self.cwd):
            raise SpawnError(f"Working directory does not exist: {self.cwd}")

        argv = [self.config.shell, *self.config.shell_args]
        try:
            if self.log_dir:
                self._open_log()
            if self.config.use_pty:
                await self._start_pty(argv)
            else:
                await self._start_pipes(argv)
        except (OSError, subprocess.SubprocessError) as e:
            self._release()
            self._discard_log()
            raise SpawnError(f"Failed to start {self.config.shell}: {e}") from e

        self.pid = self._process.pid
        self.state = SessionState.RUNNING
        self._watch_task = asyncio.create_task(self._watch())
        logger.info(
            "Session %s started: pid=%d transport=%s cwd=%s command=%r",
            self.session_id,
            self.pid,
            self.transport,
            self.cwd,
            self.command,
        )

        if self.command and not self._is_shell(self.command):
            await self.write((self.command + "\n").encode("utf-8"))

    def _open_log(self) -> None:
        name = os.path.basename((self.command.strip() or self.config.shell).split()[0])
        name = re.sub(r"[^\w.-]", "_", name)
        self.log_path = os.path.join(self.log_dir, f"proc_{name}_{self.session_id}.log")
        self._log_file = open(self.log_path, "w", encoding="utf-8", buffering=1)

    def _discard_log(self) -> None:
        # A session that never started leaves no transcript behind.
        if self.log_path is None:
            return
        try:
            os.unlink(self.log_path)
        except FileNotFoundError:
            pass
        self.log_path = None

    async def _start_pipes(self, argv: list[str]) -> None:
        self._process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            env=self._build_env(),
            start_new_session=True,  # own process group for signalling
        )
        self._reader_tasks = [
            asyncio.create_task(self._read_stream(self._process.stdout, "stdout")),
            asyncio.create_task(self._read_stream(self._process.stderr, "stderr")),
        ]

    async def _start_pty(self, argv: list[str]) -> None:
        master_fd, slave_fd = pty.openpty()
        try:
            self._set_winsize(slave_fd)
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=self.cwd,
                env=self._build_env(),
                preexec_fn=_acquire_controlling_tty,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        os.set_blocking(master_fd, False)
        self._master_fd = master_fd
        self._reader_tasks = [asyncio.create_task(self._read_pty())]

    def _set_winsize(self, fd: int) -> None:
        winsize = struct.pack("HHHH", max(1, self.rows), max(1, self.cols), 0, 0)
        fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)

    def _ingest(self, text: str, stream: str) -> None:
        if not text:
            return
        if self.config.strip_ansi:
            text = strip_ansi_codes(text)
        self.buffer.append_text(text, stream)
        self.last_activity = datetime.now()
        if self._log_file:
            self._log_file.write(text)

    async def _read_stream(self, reader: asyncio.StreamReader, name: str) -> None:
        """Copy one pipe into the buffer until EOF."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await reader.read(READ_CHUNK_SIZE)
                if not data:
                    break
                self._ingest(decoder.decode(data), name)
        except (OSError, ValueError) as e:
            # A broken pipe just means no further output.
            logger.debug("Session %s %s reader ended: %s", self.session_id, name, e)
        finally:
            self._ingest(decoder.decode(b"", final=True), name)

    async def _read_pty(self) -> None:
        """Continuously read from the PTY master and buffer output."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                data = os.read(self._master_fd, READ_CHUNK_SIZE)
            except BlockingIOError:
                await asyncio.sleep(0.01)
                continue
            except OSError as e:
                # EIO once every slave side has closed
                logger.debug("Session %s pty reader ended: %s", self.session_id, e)
                break
            if not data:
                break
            self._ingest(decoder.decode(data), "pty")
        self._ingest(decoder.decode(b"", final=True), "pty")

    async def _watch(self) -> None:
        """Wait for the process to exit, then notify the owner."""
        returncode = await self._process.wait()
        if self._reader_tasks:
            # Let readers pick up the last output; a grandchild holding the
            # pipes open must not keep the session alive.
            await asyncio.wait(self._reader_tasks, timeout=READER_DRAIN_TIMEOUT)

        self.exit_code = returncode
        if self.state == SessionState.RUNNING:
            self.state = SessionState.EXITED
            logger.info("Session %s exited (code=%s)", self.session_id, returncode)
        self._release()

        if self._on_exit:
            try:
                self._on_exit(self)
            except Exception:
                logger.exception("Error in on_exit callback for session %s", self.session_id)

    async def write(self, data: bytes) -> bool:
        """Write raw bytes to the process input. Returns False if it is closed."""
        if self.state != SessionState.RUNNING:
            return False
        try:
            if self._master_fd is not None:
                while data:
                    try:
                        written = os.write(self._master_fd, data)
                    except BlockingIOError:
                        await asyncio.sleep(0.01)
                        continue
                    data = data[written:]
            else:
                self._process.stdin.write(data)
                await self._process.stdin.drain()
        except OSError as e:
            logger.warning("Session %s input write failed: %s", self.session_id, e)
            return False
        self.last_activity = datetime.now()
        return True

    async def send_keys(self, keys: str) -> bool:
        """Encode a tmux-style key string and send it to the process."""
        data = encode_keys(keys)
        if self._master_fd is not None:
            return await self.write(data)
        return await self._write_pipe_keys(data)

    async def _write_pipe_keys(self, data: bytes) -> bool:
        pending = bytearray()
        ok = True
        for byte in data:
            sig = PIPE_SIGNAL_KEYS.get(byte)
            if sig is None:
                pending.append(0x0A if byte == 0x0D else byte)  # CR -> LF
                continue
            if pending:
                ok = await self.write(bytes(pending)) and ok
                pending.clear()
            self.send_signal(sig)
            self.last_activity = datetime.now()
        if pending:
            ok = await self.write(bytes(pending)) and ok
        return ok

    def send_signal(self, sig: int) -> None:
        """Send a signal to the session's process group."""
        if not self.is_alive():
            return
        try:
            os.killpg(self.pid, sig)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self.pid)
        except PermissionError as e:
            logger.warning("Cannot signal session %s: %s", self.session_id, e)

    def resize(self, cols: int, rows: int) -> None:
        """Record a new terminal size, applying it when a PTY exists."""
        self.cols = cols
        self.rows = rows
        self.last_activity = datetime.now()
        if self._master_fd is not None:
            try:
                self._set_winsize(self._master_fd)
            except OSError as e:
                logger.warning("Session %s resize failed: %s", self.session_id, e)
        logger.info("Session %s resized to %dx%d", self.session_id, cols, rows)

    async def terminate(self, sig: int, grace_period: float) -> Optional[int]:
        """Signal the process, wait ``grace_period`` and return its exit code.

        The exit code is None if the process has not exited by then.
        """
        self.state = SessionState.KILLED
        self.send_signal(sig)
        logger.info(
            "Sent %s to session %s (pid=%d)",
            signal.Signals(sig).name,
            self.session_id,
            self.pid,
        )
        await asyncio.sleep(grace_period)
        return self._process.returncode if self._process else None

    async def wait(self, timeout: float) -> Optional[int]:
        """Wait up to ``timeout`` seconds for exit. Returns the exit code or None."""
        if self._process is None:
            return None
        try:
            return await asyncio.wait_for(asyncio.shield(self._process.wait()), timeout)
        except asyncio.TimeoutError:
            return None

    async def stop(self, timeout: float = 0.1) -> None:
        """Close the process input and make sure the process goes away.

        Interactive shells exit on end of input; anything still alive after
        ``timeout`` seconds gets SIGKILL.
        """
        if self.state in (SessionState.CREATED, SessionState.RUNNING):
            self.state = SessionState.KILLED
        self._close_input()
        if self.is_alive() and await self.wait(timeout) is None:
            logger.warning("Session %s still alive, sending SIGKILL", self.session_id)
            self.send_signal(signal.SIGKILL)
            await self.wait(1.0)
        self._release()

    def _close_input(self) -> None:
        if self._master_fd is not None:
            for task in self._reader_tasks:
                task.cancel()
            try:
                os.close(self._master_fd)
            except OSError:
                pass
            self._master_fd = None
        elif self._process is not None and self._process.stdin is not None:
            self._process.stdin.close()

    def _release(self) -> None:
        for task in self._reader_tasks:
            if not task.done():
                task.cancel()
        if self._master_fd is not None:
            try:
                os.close(self._master_fd)
            except OSError:
                pass
            self._master_fd = None
        if self._log_file:
            try:
                self._log_file.close()
            except OSError:
                pass
            self._log_file = None

    def is_alive(self) -> bool:
        """Check if the process is still running."""
        return self._process is not None and self._process.returncode is None

    def info(self, verbose: bool = False) -> dict:
        """Session metadata, without buffer content."""
        data = {
            "id": self.session_id,
            "pid": self.pid,
            "command": self.command,
            "cwd": self.cwd,
            "createdAt": self.created_at.isoformat(),
            "lastActivity": self.last_activity.isoformat(),
        }
        if verbose:
            data.update(
                state=self.state.value,
                cols=self.cols,
                rows=self.rows,
                bufferedLines=self.buffer.line_count,
                shell=self.config.shell,
                transport=self.transport,
            )
        return data
