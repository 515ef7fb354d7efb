"""Error taxonomy for RepoMentor.

Routes map these onto HTTP status codes:
- NotFoundError       → 404
- AlreadyExistsError  → 409
- UpstreamFailure     → 502 (hosted model, embedding, transcription, GitHub)
- ValueError          → 400 (bad input, left as the builtin)

ParseFailure never reaches the HTTP boundary; generators convert it into a
documented fallback value. TransportFailure is raised by realtime channels
when a send hits a closed socket and is handled by dropping the connection.
"""


class RepoMentorError(Exception):
    """Base class for all RepoMentor errors."""


class NotFoundError(RepoMentorError):
    """Session id unknown to its actor."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class AlreadyExistsError(RepoMentorError):
    """Duplicate session init."""

    def __init__(self, session_id: str):
        super().__init__(f"Session already exists: {session_id}")
        self.session_id = session_id


class UpstreamFailure(RepoMentorError):
    """A hosted-service or third-party API call failed."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class TranscriptionError(UpstreamFailure):
    """Speech-to-text failed or produced no usable text."""

    def __init__(self, message: str):
        super().__init__("transcription", message)


class ParseFailure(RepoMentorError):
    """Model output was not valid JSON in the expected shape."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class TransportFailure(RepoMentorError):
    """Realtime channel closed mid-turn."""
