"""Session registry and lifecycle controller."""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from .config import ServerConfig, SessionConfig
from .errors import SessionNotFound, SpawnError
from .session import ProcessSession, SessionState, generate_session_id

logger = logging.getLogger(__name__)

KILL_SIGNALS = {
    "SIGTERM": signal.SIGTERM,
    "SIGKILL": signal.SIGKILL,
    "SIGINT": signal.SIGINT,
}


@dataclass
class SpawnResult:
    session_id: str
    pid: int

    def to_dict(self) -> dict:
        return {"sessionId": self.session_id, "pid": self.pid}


@dataclass
class ReadResult:
    content: str
    lines: int
    has_more: bool

    def to_dict(self) -> dict:
        return {"content": self.content, "lines": self.lines, "hasMore": self.has_more}


@dataclass
class KillResult:
    success: bool
    exit_code: Optional[int] = None

    def to_dict(self) -> dict:
        data: dict = {"success": self.success}
        if self.exit_code is not None:
            data["exitCode"] = self.exit_code
        return data


class SessionManager:
    """Owns the set of live sessions and every operation on them.

    A session stays registered while its process is running. It is removed
    when the process exits on its own, or by ``kill`` once the grace period
    has passed, whether or not the process has actually exited by then. Any
    operation on an id that is no longer registered raises
    ``SessionNotFound``.

    Operations on different sessions never wait on each other; output
    capture and draining of a single session are serialized by its buffer.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        session_defaults: Optional[SessionConfig] = None,
    ) -> None:
        self.config = config or ServerConfig()
        self.session_defaults = session_defaults or SessionConfig(
            cwd=self.config.default_cwd, use_pty=self.config.use_pty
        )
        self.sessions: dict[str, ProcessSession] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._reapers: set[asyncio.Task] = set()
        self._pending = 0

        # Validate log_dir if provided
        if self.config.log_dir and not os.path.isdir(self.config.log_dir):
            raise ValueError(f"Log directory does not exist: {self.config.log_dir}")

    async def start(self) -> None:
        """Start the session manager."""
        if self.config.idle_timeout:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Stop all sessions and cleanup."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass

        sessions = list(self.sessions.values())
        self.sessions.clear()
        for session in sessions:
            session.send_signal(signal.SIGTERM)
        await asyncio.gather(
            *(session.stop(self.config.kill_grace_period) for session in sessions),
            *self._reapers,
            return_exceptions=True,
        )
        logger.info("All sessions stopped (%d)", len(sessions))

    async def _cleanup_loop(self) -> None:
        """Periodically remove sessions idle for longer than idle_timeout."""
        interval = min(60.0, self.config.idle_timeout)
        while True:
            await asyncio.sleep(interval)
            now = datetime.now()
            for session_id, session in list(self.sessions.items()):
                idle_seconds = (now - session.last_activity).total_seconds()
                if idle_seconds > self.config.idle_timeout:
                    logger.info(
                        "Session %s idle for %.0fs, stopping", session_id, idle_seconds
                    )
                    try:
                        await self.kill(session_id, "SIGTERM")
                    except SessionNotFound:
                        pass  # exited or killed meanwhile

    def _get(self, session_id: str) -> ProcessSession:
        session = self.sessions.get(session_id)
        if session is None or session.state != SessionState.RUNNING:
            raise SessionNotFound(session_id)
        return session

    def _on_session_exit(self, session: ProcessSession) -> None:
        # Only drop the entry if it still refers to this session.
        if self.sessions.get(session.session_id) is session:
            del self.sessions[session.session_id]
            logger.info("Session %s removed after exit", session.session_id)

    async def spawn(
        self,
        command: str,
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        cols: int = 80,
        rows: int = 24,
        use_pty: Optional[bool] = None,
    ) -> SpawnResult:
        """Start a new session running ``command`` in an interactive shell.

        Raises:
            SpawnError: if the session limit is reached or the process
                cannot be started.
        """
        max_sessions = self.config.max_sessions
        if max_sessions is not None and len(self.sessions) + self._pending >= max_sessions:
            raise SpawnError(f"Maximum sessions ({max_sessions}) reached")

        defaults = self.session_defaults
        config = replace(
            defaults,
            cwd=cwd or defaults.cwd,
            env={**defaults.env, **(env or {})},
            cols=cols,
            rows=rows,
            use_pty=defaults.use_pty if use_pty is None else use_pty,
        )
        session = ProcessSession(
            session_id=generate_session_id(),
            command=command,
            config=config,
            log_dir=self.config.log_dir,
        )
        session.set_on_exit(self._on_session_exit)

        # Spawns in flight count against the limit until they register.
        self._pending += 1
        try:
            await session.start()
        finally:
            self._pending -= 1
        # The exit watcher may already have run while the command was typed.
        if session.state == SessionState.RUNNING:
            self.sessions[session.session_id] = session
        return SpawnResult(session_id=session.session_id, pid=session.pid)

    def get_session(self, session_id: str) -> Optional[ProcessSession]:
        """Get a session by ID."""
        return self.sessions.get(session_id)

    async def send_keys(self, session_id: str, keys: str) -> bool:
        """Send tmux-style keys to a session. Returns False if the write failed."""
        session = self._get(session_id)
        logger.debug("send_keys %s: %r", session_id, keys)
        return await session.send_keys(keys)

    async def read(
        self, session_id: str, wait: float = 100, clear: bool = True
    ) -> ReadResult:
        """Read a session's buffered output.

        ``wait`` is in milliseconds: the call first sleeps that long so output
        can accumulate. With ``clear`` the buffer is drained by the read.
        """
        session = self._get(session_id)
        if wait > 0:
            # A process that exits during the wait still hands over its output.
            await asyncio.sleep(wait / 1000)

        lines = session.buffer.snapshot(clear=clear)
        return ReadResult(
            content="\n".join(lines),
            lines=len(lines),
            has_more=session.buffer.line_count > 0,
        )

    async def kill(self, session_id: str, signal_name: str = "SIGTERM") -> KillResult:
        """Signal a session and deregister it after the grace period.

        The session is removed even if the process has not exited yet; its
        input is closed and a background reaper escalates to SIGKILL if it
        lingers.
        """
        sig = KILL_SIGNALS.get(signal_name)
        if sig is None:
            raise ValueError(
                f"Unsupported signal {signal_name!r}; expected one of {', '.join(KILL_SIGNALS)}"
            )
        session = self._get(session_id)

        exit_code = await session.terminate(sig, self.config.kill_grace_period)

        if self.sessions.get(session_id) is session:
            del self.sessions[session_id]
        logger.info("Session %s killed (exit_code=%s)", session_id, exit_code)

        reaper = asyncio.create_task(session.stop(self.config.kill_escalation_timeout))
        self._reapers.add(reaper)
        reaper.add_done_callback(self._reapers.discard)

        return KillResult(success=True, exit_code=exit_code)

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        """Record a new terminal size for a session."""
        if cols < 1 or rows < 1:
            raise ValueError("cols and rows must be positive")
        self._get(session_id).resize(cols, rows)
        return True

    def list_sessions(self, verbose: bool = False) -> list[dict]:
        """List all live sessions."""
        return [session.info(verbose) for session in self.sessions.values()]

    def __len__(self) -> int:
        return len(self.sessions)
