"""Order-restoring delivery of transcription results."""

import logging
from typing import Callable, Dict, List, Optional

from ..models.session import PipelineSession
from ..models.transcription import TranscriptResult

logger = logging.getLogger(__name__)


class OrderedEmitter:
    """Buffers results by sequence index and releases them strictly in order.

    Results may be submitted in any completion order. Error-bearing results
    occupy their slot like any other and are delivered, never skipped.
    """

    def __init__(self, session: PipelineSession,
                 callback: Optional[Callable[[TranscriptResult], None]] = None):
        self.session = session
        self._buffer: Dict[int, TranscriptResult] = {}
        self._callbacks: List[Callable[[TranscriptResult], None]] = []
        if callback:
            self._callbacks.append(callback)

    def on_ready(self, callback: Callable[[TranscriptResult], None]) -> None:
        self._callbacks.append(callback)

    @property
    def next_expected(self) -> int:
        return self.session.next_expected

    @property
    def buffered_count(self) -> int:
        return len(self._buffer)

    def submit(self, result: TranscriptResult) -> List[TranscriptResult]:
        """Accept one result; return the results released by it, in order."""
        if self.session.cancelled:
            logger.debug(f"Ignoring result {result.sequence_index}: session cancelled")
            return []

        index = result.sequence_index
        if index < self.session.next_expected or index in self._buffer:
            raise ValueError(f"Duplicate result for sequence index {index}")
        self._buffer[index] = result

        released = []
        while self.session.next_expected in self._buffer:
            ready = self._buffer.pop(self.session.next_expected)
            self.session.next_expected += 1
            released.append(ready)
            for callback in self._callbacks:
                callback(ready)

        if released:
            logger.debug(f"Released results {released[0].sequence_index}.."
                         f"{released[-1].sequence_index}")
        else:
            logger.debug(f"Buffered result {index}, waiting for {self.session.next_expected}")
        return released

    def discard(self) -> int:
        """Drop every buffered result without delivering it."""
        dropped = len(self._buffer)
        self._buffer.clear()
        if dropped:
            logger.info(f"Discarded {dropped} buffered result(s)")
        return dropped
