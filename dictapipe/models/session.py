"""Session-related data models."""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict


class SessionMode(Enum):
    """Boundary policy of a capture session."""
    SINGLE_SHOT = "single_shot"
    CONTINUOUS = "continuous"


@dataclass
class PipelineSession:
    """State of one recording session, passed explicitly to every pipeline component.

    Field ownership: ``next_sequence_index`` is written only by the scheduler,
    ``in_flight`` only by the dispatcher, ``next_expected`` only by the emitter.
    """
    mode: SessionMode
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    next_sequence_index: int = 0
    in_flight: Dict[int, "asyncio.Task"] = field(default_factory=dict)
    next_expected: int = 0
    cancelled: bool = False
    created_at: float = field(default_factory=time.time)

    def allocate_index(self) -> int:
        """Hand out the next gapless sequence index."""
        index = self.next_sequence_index
        self.next_sequence_index += 1
        return index

    @property
    def segments_finalized(self) -> int:
        return self.next_sequence_index

    @property
    def is_complete(self) -> bool:
        """True once every finalized segment has been delivered."""
        return not self.in_flight and self.next_expected == self.next_sequence_index
