"""Transcription-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any


@dataclass
class TranscriptionOptions:
    """Per-request options forwarded to the transcription backend."""
    model: str = "voxtral-mini-latest"
    language: str = ""  # Empty means auto-detect
    temperature: Optional[float] = None
    context_bias: str = ""
    timestamp_granularities: List[str] = field(default_factory=list)
    diarize: bool = False


@dataclass
class BackendTranscript:
    """Raw successful response of a transcription backend."""
    text: str
    segments: Optional[List[Dict[str, Any]]] = None  # Speaker/time-aligned spans
    words: Optional[List[Dict[str, Any]]] = None


@dataclass
class TranscriptResult:
    """Result of transcribing one segment. Produced exactly once per dispatched segment."""
    sequence_index: int
    text: str
    latency_ms: int
    segments: Optional[List[Dict[str, Any]]] = None
    words: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None
    error_status: Optional[int] = None  # HTTP status when the backend reported one
    duration_seconds: float = 0.0       # Audio duration of the source segment
    service: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view used by the JSON sink and the CLI."""
        data: Dict[str, Any] = {
            "index": self.sequence_index,
            "text": self.text,
            "duration": round(self.duration_seconds, 1),
            "latency": self.latency_ms,
            "words": self.word_count,
        }
        if self.segments is not None:
            data["segments"] = self.segments
        if self.error is not None:
            data["error"] = self.error
            if self.error_status is not None:
                data["status"] = self.error_status
        return data


COST_PER_MINUTE = 0.003


def estimated_cost(duration_seconds: float) -> float:
    """Approximate backend cost of transcribing ``duration_seconds`` of audio."""
    return round(duration_seconds / 60.0 * COST_PER_MINUTE, 6)
