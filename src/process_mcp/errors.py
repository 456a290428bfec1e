"""Errors raised by the session manager."""


class SessionError(Exception):
    """Base class for session manager errors."""

    code = "INTERNAL_ERROR"


class SpawnError(SessionError):
    """The child process could not be started."""

    code = "SPAWN_ERROR"


class SessionNotFound(SessionError):
    """No live session has the requested id."""

    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id
