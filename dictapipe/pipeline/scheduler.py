"""Segment boundary detection over a live PCM stream."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..audio.silence import SilenceWindower, DEFAULT_SILENCE_THRESHOLD
from ..exceptions import DictaPipeError, NoSpeechDetected, SegmentTooShort
from ..models.audio import AudioChunk, AudioWindow
from ..models.segment import Segment
from ..models.session import PipelineSession, SessionMode

logger = logging.getLogger(__name__)


@dataclass
class SegmentationSettings:
    """Tunables for windowing, boundary detection and trimming."""
    sample_rate: int = 16000
    channels: int = 1
    window_ms: int = 50
    silence_threshold: int = DEFAULT_SILENCE_THRESHOLD
    silence_timeout_seconds: float = 2.0  # 0 disables auto-stop
    pause_timeout_seconds: float = 1.0    # Continuous mode chunk split
    min_recording_ms: int = 500
    max_silence_ms: int = 1000
    pad_ms: int = 100


class SchedulerState(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"


class SegmentScheduler:
    """Turns a sequence of raw chunks into finalized, sequence-indexed segments.

    Silence is measured in audio time from the last voiced window. In
    continuous mode a silence run longer than ``pause_timeout_seconds``
    flushes the accumulated audio as a segment; in both modes a run of at
    least ``silence_timeout_seconds`` ends the session. Both thresholds are
    reset only by a voiced window.
    """

    def __init__(self, session: PipelineSession,
                 settings: Optional[SegmentationSettings] = None):
        self.session = session
        self.settings = settings or SegmentationSettings()
        self.windower = SilenceWindower(
            sample_rate=self.settings.sample_rate,
            window_ms=self.settings.window_ms,
            threshold=self.settings.silence_threshold,
            channels=self.settings.channels,
        )
        self.state = SchedulerState.IDLE
        self.finished = False
        self.rejection: Optional[DictaPipeError] = None

        self._windows: List[AudioWindow] = []
        self._has_voice = False
        self._accumulation_start_ms = 0.0
        self._captured_ms = 0.0
        self._silence_ms = 0.0
        self._origin: Optional[float] = None

    @property
    def mode(self) -> SessionMode:
        return self.session.mode

    @property
    def captured_ms(self) -> float:
        """Audio time consumed since start()."""
        return self._captured_ms

    @property
    def silence_ms(self) -> float:
        """Audio time since the last voiced window (or since start)."""
        return self._silence_ms

    @property
    def heard_voice(self) -> bool:
        return self._has_voice

    def start(self) -> None:
        if self.state is not SchedulerState.IDLE or self.finished:
            raise RuntimeError(f"Scheduler cannot start from state {self.state.value}")
        self.state = SchedulerState.CAPTURING
        logger.info(f"Session {self.session.session_id}: capturing ({self.mode.value})")

    def feed(self, chunk: AudioChunk) -> List[Segment]:
        """Consume one chunk and return any segments it completed."""
        if self.state is not SchedulerState.CAPTURING:
            logger.debug(f"Ignoring {len(chunk.data)} bytes: scheduler is {self.state.value}")
            return []
        if self._origin is None:
            self._origin = chunk.timestamp

        segments: List[Segment] = []
        for window in self.windower.feed(chunk.data):
            self._accept(window)

            if (self.mode is SessionMode.CONTINUOUS and self._has_voice
                    and self._silence_ms > self.settings.pause_timeout_seconds * 1000):
                logger.debug(f"Pause of {self._silence_ms:.0f}ms, flushing chunk")
                segments.append(self._finalize())

            timeout_ms = self.settings.silence_timeout_seconds * 1000
            if timeout_ms > 0 and self._silence_ms >= timeout_ms:
                logger.info(f"Silence timeout after {self._captured_ms:.0f}ms of audio")
                # Audio past the stop point is discarded
                self.windower.reset()
                segments.extend(self._end_session())
                break
        return segments

    def stop(self) -> List[Segment]:
        """Explicit stop: flush buffered bytes and finalize what was captured."""
        if self.state is not SchedulerState.CAPTURING:
            return []
        for window in self.windower.flush():
            self._accept(window)
        logger.info(f"Stop requested after {self._captured_ms:.0f}ms of audio")
        return self._end_session()

    def cancel(self) -> None:
        """Discard the in-progress segment without finalizing it."""
        if self.finished:
            return
        dropped = len(self._windows)
        self._windows = []
        self._has_voice = False
        self.windower.reset()
        self.state = SchedulerState.IDLE
        self.finished = True
        logger.info(f"Session {self.session.session_id}: capture cancelled, "
                    f"{dropped} windows discarded")

    def _accept(self, window: AudioWindow) -> None:
        self._windows.append(window)
        self._captured_ms += window.duration_ms
        if window.is_silent:
            self._silence_ms += window.duration_ms
        else:
            self._silence_ms = 0.0
            self._has_voice = True

    def _end_session(self) -> List[Segment]:
        self.state = SchedulerState.FINALIZING
        segments: List[Segment] = []
        if self.mode is SessionMode.SINGLE_SHOT:
            self.rejection = self._check_single_shot()
            if self.rejection is None:
                segments.append(self._finalize())
            else:
                logger.warning(f"Recording rejected: {self.rejection}")
                self._windows = []
        elif self._has_voice:
            segments.append(self._finalize())
        else:
            self._windows = []

        self.state = SchedulerState.IDLE
        self.finished = True
        return segments

    def _check_single_shot(self) -> Optional[DictaPipeError]:
        if self._captured_ms < self.settings.min_recording_ms:
            return SegmentTooShort(self._captured_ms, self.settings.min_recording_ms)
        if not self._has_voice:
            return NoSpeechDetected()
        return None

    def _finalize(self) -> Segment:
        self.state = SchedulerState.FINALIZING
        origin = self._origin or 0.0
        start_ms = self._accumulation_start_ms
        segment = Segment(
            sequence_index=self.session.allocate_index(),
            windows=tuple(self._windows),
            started_at=origin + start_ms / 1000.0,
            ended_at=origin + self._captured_ms / 1000.0,
            has_audio=self._has_voice,
            sample_rate=self.settings.sample_rate,
        )
        logger.info(f"Finalized segment {segment.sequence_index}: "
                    f"{len(segment.windows)} windows, {segment.duration_ms:.0f}ms")

        self._windows = []
        self._has_voice = False
        self._accumulation_start_ms = self._captured_ms
        self.state = SchedulerState.CAPTURING
        return segment
