"""Output sinks for ordered transcription results."""

from .sinks import OutputSink, ConsoleSink, JsonLinesSink, FileSink

__all__ = [
    "OutputSink",
    "ConsoleSink",
    "JsonLinesSink",
    "FileSink",
]
