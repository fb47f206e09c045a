"""Recent transcript history for the interactive recorder."""

from dataclasses import dataclass
from typing import List, Optional

MAX_HISTORY = 10


@dataclass(frozen=True)
class HistoryEntry:
    transcript: str
    word_count: int
    duration_seconds: float
    latency_ms: int


class TranscriptHistory:
    """Newest-first list of successful transcripts, capped at ``max_entries``."""

    def __init__(self, max_entries: int = MAX_HISTORY):
        self.max_entries = max_entries
        self.entries: List[HistoryEntry] = []
        self.index = -1  # -1 = current transcript, 0..n = browsing

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def latest(self) -> Optional[HistoryEntry]:
        return self.entries[0] if self.entries else None

    def push(self, entry: HistoryEntry) -> None:
        self.entries.insert(0, entry)
        del self.entries[self.max_entries:]
        self.index = -1

    def cycle(self) -> Optional[HistoryEntry]:
        """Step to the next older entry, wrapping to the newest."""
        if not self.entries:
            return None
        self.index += 1
        if self.index >= len(self.entries):
            self.index = 0
        return self.entries[self.index]
