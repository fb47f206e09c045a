"""Services layer for dictapipe application logic."""

from .recording_service import RecordingService, RecordingState
from .pipeline_service import PipelineService, SessionHandle, create_backend
from .history import TranscriptHistory, HistoryEntry

__all__ = [
    "RecordingService",
    "RecordingState",
    "PipelineService",
    "SessionHandle",
    "create_backend",
    "TranscriptHistory",
    "HistoryEntry",
]
