"""Segment data models."""

from dataclasses import dataclass
from typing import Tuple

from .audio import AudioWindow


@dataclass(frozen=True)
class Segment:
    """One finalized utterance: a contiguous run of windows from the capture."""
    sequence_index: int
    windows: Tuple[AudioWindow, ...]
    started_at: float  # Wall-clock time of the first chunk
    ended_at: float    # Wall-clock time of the last chunk
    has_audio: bool    # True iff at least one window was voiced
    sample_rate: int = 16000

    @property
    def audio_data(self) -> bytes:
        return b''.join(window.data for window in self.windows)

    @property
    def duration_ms(self) -> float:
        return sum(window.duration_ms for window in self.windows)


@dataclass(frozen=True)
class EncodedAudio:
    """Segment bytes wrapped in a WAV container, ready for the backend."""
    sequence_index: int
    data: bytes
    sample_rate: int
    channels: int
    duration_seconds: float  # Duration of the segment before trimming

    @property
    def payload_size(self) -> int:
        return len(self.data)
