"""Output sinks receiving ordered transcription results."""

import json
import logging
import threading
from pathlib import Path
from typing import IO, List, Optional

from pubsub import pub
from rich.console import Console
from rich.text import Text

from ..models.transcription import TranscriptResult, estimated_cost
from ..transcription.publisher import RESULT_TOPIC

logger = logging.getLogger(__name__)


class OutputSink:
    """Base sink: accepts results in order, error results included.

    A sink can be called directly or subscribed to the pubsub result topic.
    """

    def __init__(self):
        self.results: List[TranscriptResult] = []
        self.lock = threading.RLock()
        self.topic: Optional[str] = None

    def write(self, result: TranscriptResult) -> None:
        raise NotImplementedError

    def __call__(self, result: TranscriptResult) -> None:
        with self.lock:
            self.results.append(result)
            self.write(result)

    def _on_result(self, session_id: str, result: TranscriptResult) -> None:
        logger.debug(f"Sink received result {result.sequence_index} of session {session_id}")
        self(result)

    def subscribe(self, topic: str = RESULT_TOPIC) -> None:
        pub.subscribe(self._on_result, topic)
        self.topic = topic

    def unsubscribe(self) -> None:
        if self.topic:
            pub.unsubscribe(self._on_result, self.topic)
            self.topic = None

    def full_text(self) -> str:
        """All successful transcripts joined in delivery order."""
        with self.lock:
            return " ".join(r.text for r in self.results if r.text and not r.is_error)

    def close(self) -> None:
        self.unsubscribe()


class ConsoleSink(OutputSink):
    """Prints transcripts with rich; errors go to stderr in red."""

    def __init__(self, console: Optional[Console] = None,
                 error_console: Optional[Console] = None):
        super().__init__()
        self.console = console or Console(highlight=False)
        self.error_console = error_console or Console(stderr=True, highlight=False)

    def write(self, result: TranscriptResult) -> None:
        if result.is_error:
            self.error_console.print(
                Text(f"[{result.sequence_index}] Error: {result.error}", style="red"))
        elif result.text:
            self.console.print(result.text, markup=False)
        else:
            logger.debug(f"Segment {result.sequence_index} produced no text")


class JsonLinesSink(OutputSink):
    """Writes one JSON object per result."""

    def __init__(self, stream: IO[str]):
        super().__init__()
        self.stream = stream

    def write(self, result: TranscriptResult) -> None:
        data = result.to_dict()
        data["cost"] = estimated_cost(result.duration_seconds)
        self.stream.write(json.dumps(data) + "\n")
        self.stream.flush()


class FileSink(OutputSink):
    """Appends successful transcripts, one line per segment, to a text file."""

    def __init__(self, file_path: str):
        super().__init__()
        self.file_path = Path(file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, result: TranscriptResult) -> None:
        if result.is_error or not result.text:
            return
        with open(self.file_path, 'a', encoding='utf-8') as f:
            f.write(result.text + "\n")
