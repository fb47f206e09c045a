"""Data models for the dictapipe pipeline."""

from .audio import AudioStats, AudioChunk, AudioWindow
from .segment import Segment, EncodedAudio
from .session import PipelineSession, SessionMode
from .transcription import TranscriptionOptions, BackendTranscript, TranscriptResult

__all__ = [
    "AudioStats",
    "AudioChunk",
    "AudioWindow",
    "Segment",
    "EncodedAudio",
    "PipelineSession",
    "SessionMode",
    "TranscriptionOptions",
    "BackendTranscript",
    "TranscriptResult",
]
