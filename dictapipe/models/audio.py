"""Audio-related data models."""

from dataclasses import dataclass


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int


@dataclass(frozen=True)
class AudioChunk:
    """A raw PCM chunk as delivered by an audio source."""
    data: bytes
    timestamp: float  # Time when this chunk arrived
    sequence_number: int = 0


@dataclass(frozen=True)
class AudioWindow:
    """A fixed-duration slice of raw samples classified as silent or voiced."""
    data: bytes
    is_silent: bool
    peak: int
    duration_ms: float
