"""Error taxonomy for the dictapipe pipeline."""

from typing import List, Optional


class DictaPipeError(Exception):
    """Base class for all dictapipe errors."""


class CaptureUnavailable(DictaPipeError):
    """The audio capture backend is missing or crashed. Fatal to the session."""


class SegmentTooShort(DictaPipeError):
    """A single-shot recording was shorter than the minimum duration."""

    def __init__(self, duration_ms: float, min_ms: float):
        self.duration_ms = duration_ms
        self.min_ms = min_ms
        super().__init__("Recording too short")


class NoSpeechDetected(DictaPipeError):
    """A segment contained no voiced window, or the backend returned no text."""

    def __init__(self, message: str = "No speech detected"):
        super().__init__(message)


class BackendError(DictaPipeError):
    """The transcription backend failed for one segment."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)


class BackendTimeout(BackendError):
    """The transcription call exceeded its timeout."""

    def __init__(self, message: str = "Transcription timed out"):
        super().__init__(message)


class SessionCancelled(DictaPipeError):
    """The session was explicitly aborted."""


class ConfigError(DictaPipeError):
    """Configuration is missing or invalid."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))
