"""Transcription module for dictapipe."""

from .base import AbstractTranscriptionBackend
from .dispatcher import TranscriptionDispatcher
from .emitter import OrderedEmitter
from .publisher import TranscriptionPublisher
from .mistral_backend import MistralTranscriptionBackend

__all__ = [
    "AbstractTranscriptionBackend",
    "TranscriptionDispatcher",
    "OrderedEmitter",
    "TranscriptionPublisher",
    "MistralTranscriptionBackend",
]
