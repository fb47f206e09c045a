"""dictapipe - voice dictation with silence-based segmentation and ordered transcription."""

__version__ = "0.1.0"
