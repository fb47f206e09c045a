"""Abstract base classes for transcription backends."""

from abc import ABC, abstractmethod
import logging

from ..models.transcription import BackendTranscript, TranscriptionOptions

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends.

    Implementations must tolerate concurrent ``transcribe`` calls and must
    let ``asyncio.CancelledError`` propagate when the caller cancels.
    """

    service_name = "unknown"

    @abstractmethod
    async def transcribe(self, container: bytes, options: TranscriptionOptions,
                         timeout: float) -> BackendTranscript:
        """Transcribe one WAV container.

        Args:
            container: Complete WAV file bytes
            options: Language, temperature, context bias, timestamps, diarization
            timeout: Seconds the backend may spend on this request

        Returns:
            BackendTranscript with text and optional segments/words

        Raises:
            BackendTimeout: The request exceeded ``timeout``
            BackendError: The service rejected or failed the request
        """
        pass

    def initialize(self) -> bool:
        """Initialize backend resources and verify configuration."""
        return True

    def cleanup(self) -> None:
        """Clean up backend resources."""
        pass
