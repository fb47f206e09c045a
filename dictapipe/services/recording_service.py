"""Single-shot recording lifecycle: record, transcribe, retry."""

import time
import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from ..audio.capture import AbstractAudioSource
from ..exceptions import CaptureUnavailable, NoSpeechDetected
from ..models.audio import AudioChunk
from ..models.segment import EncodedAudio
from ..models.session import PipelineSession, SessionMode
from ..models.transcription import TranscriptionOptions, TranscriptResult
from ..pipeline.preparation import SegmentPreparer
from ..pipeline.scheduler import SegmentScheduler, SegmentationSettings
from ..transcription.base import AbstractTranscriptionBackend
from ..transcription.dispatcher import TranscriptionDispatcher, DEFAULT_TIMEOUT_SECONDS
from .history import HistoryEntry, TranscriptHistory

logger = logging.getLogger(__name__)

SourceFactory = Callable[[Callable[[AudioChunk], None]], AbstractAudioSource]


class RecordingState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    READY = "ready"
    ERROR = "error"


class RecordingService:
    """State machine for one utterance at a time.

    Idle/Ready/Error -> Recording -> Transcribing -> Ready | Error, with
    cancel returning a recording to Ready (if a transcript exists) or Idle.
    The last encoded segment is retained so it can be re-transcribed.
    """

    def __init__(self,
                 backend: AbstractTranscriptionBackend,
                 settings: Optional[SegmentationSettings] = None,
                 options: Optional[TranscriptionOptions] = None,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS,
                 source_factory: Optional[SourceFactory] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize recording service.

        Args:
            backend: Transcription backend
            settings: Segmentation settings (single-shot auto-stop, minimum length)
            options: Options forwarded to the backend
            timeout: Per-call transcription timeout in seconds
            source_factory: Builds an audio source delivering chunks to a callback;
                            None when the caller feeds chunks itself
            clock: Wall clock used for timestamps
        """
        self.backend = backend
        self.settings = settings or SegmentationSettings()
        self.options = options or TranscriptionOptions()
        self.timeout = timeout
        self.source_factory = source_factory
        self.clock = clock
        self.preparer = SegmentPreparer(self.settings)

        self.state = RecordingState.IDLE
        self.error = ""
        self.transcript = ""
        self.word_count = 0
        self.duration = 0.0  # Seconds of captured audio
        self.latency_ms = 0
        self.started_at: Optional[float] = None
        self.history = TranscriptHistory()
        self.retained: Optional[EncodedAudio] = None
        self.last_result: Optional[TranscriptResult] = None

        self._session: Optional[PipelineSession] = None
        self._scheduler: Optional[SegmentScheduler] = None
        self._source: Optional[AbstractAudioSource] = None
        self._task: Optional[asyncio.Task] = None

    # Recording

    def start_recording(self) -> bool:
        """Open capture and begin a new recording.

        Raises:
            CaptureUnavailable: The audio source could not be opened
        """
        if self.state not in (RecordingState.IDLE, RecordingState.READY, RecordingState.ERROR):
            logger.warning(f"Cannot start recording while {self.state.value}")
            return False

        self.error = ""
        self.retained = None
        self.duration = 0.0
        self.history.index = -1
        self._session = PipelineSession(mode=SessionMode.SINGLE_SHOT)
        self._scheduler = SegmentScheduler(self._session, self.settings)
        self._scheduler.start()
        self.started_at = self.clock()
        self.state = RecordingState.RECORDING

        if self.source_factory:
            try:
                self._source = self.source_factory(self.feed)
                self._source.start_recording()
            except CaptureUnavailable as e:
                logger.error(f"Capture unavailable: {e}")
                self._scheduler.cancel()
                self._source = None
                self.state = RecordingState.ERROR
                self.error = str(e)
                raise

        logger.info(f"Recording started (session {self._session.session_id})")
        return True

    def feed(self, chunk: AudioChunk) -> None:
        """Accept captured audio; an auto-stop starts transcription."""
        if self.state is not RecordingState.RECORDING:
            return
        segments = self._scheduler.feed(chunk)
        self.duration = self._scheduler.captured_ms / 1000.0
        if self._scheduler.finished:
            self._finish_capture(segments)

    def stop_recording(self) -> Optional[asyncio.Task]:
        """Stop capture; returns the transcription task, or None if rejected."""
        if self.state is not RecordingState.RECORDING:
            return None
        return self._finish_capture(self._scheduler.stop())

    def cancel_recording(self) -> None:
        """Discard the current recording and return to the previous view."""
        if self.state is not RecordingState.RECORDING:
            return
        self._close_source()
        self._scheduler.cancel()
        self.retained = None

        latest = self.history.latest
        if latest:
            self.duration = latest.duration_seconds
            self.latency_ms = latest.latency_ms
        self.state = RecordingState.READY if self.transcript else RecordingState.IDLE
        logger.info(f"Recording cancelled, back to {self.state.value}")

    def _finish_capture(self, segments) -> Optional[asyncio.Task]:
        self._close_source()
        self.duration = self._scheduler.captured_ms / 1000.0

        rejection = self._scheduler.rejection
        if rejection is not None:
            self.state = RecordingState.ERROR
            self.error = str(rejection)
            return None

        self.retained = self.preparer.prepare(segments[0])
        return self._begin_transcription()

    def _close_source(self) -> None:
        if self._source is not None:
            self._source.stop_recording()
            self._source = None

    # Transcription

    def _begin_transcription(self) -> asyncio.Task:
        self.state = RecordingState.TRANSCRIBING
        self.error = ""
        dispatcher = TranscriptionDispatcher(
            self._session, self.backend, self.options,
            result_callback=self._on_result, timeout=self.timeout,
        )
        self._task = dispatcher.dispatch(self.retained)
        return self._task

    def _on_result(self, result: TranscriptResult) -> None:
        self.last_result = result
        self.latency_ms = result.latency_ms
        if result.is_error:
            self.state = RecordingState.ERROR
            self.error = result.error
        elif not result.text:
            self.state = RecordingState.ERROR
            self.error = str(NoSpeechDetected())
        else:
            self.state = RecordingState.READY
            self.transcript = result.text
            self.word_count = result.word_count
            self.history.push(HistoryEntry(
                transcript=result.text,
                word_count=result.word_count,
                duration_seconds=self.duration,
                latency_ms=result.latency_ms,
            ))
        logger.info(f"Transcription finished: {self.state.value}")

    async def wait_for_transcription(self) -> Optional[TranscriptResult]:
        """Wait for the current transcription, if any, and return its result."""
        if self._task is not None:
            await asyncio.wait([self._task])
            await asyncio.sleep(0)
        return self.last_result

    async def abort_transcription(self) -> None:
        """Cancel an in-flight transcription call."""
        if self.state is not RecordingState.TRANSCRIBING or self._task is None:
            return
        # Visible to waiters before the cancelled task wakes them
        self.state = RecordingState.ERROR
        self.error = "Aborted"
        self._task.cancel()
        await asyncio.wait([self._task])
        logger.info("Transcription aborted")

    def retranscribe(self) -> Optional[asyncio.Task]:
        """Send the retained segment to the backend again."""
        if self.state not in (RecordingState.READY, RecordingState.ERROR):
            return None
        if self.retained is None:
            self.state = RecordingState.ERROR
            self.error = "No recording to re-transcribe"
            return None
        logger.info("Re-transcribing retained recording")
        return self._begin_transcription()

    def cycle_history(self) -> None:
        if self.state in (RecordingState.RECORDING, RecordingState.TRANSCRIBING):
            return
        entry = self.history.cycle()
        if entry is None:
            return
        self.transcript = entry.transcript
        self.word_count = entry.word_count
        self.duration = entry.duration_seconds
        self.latency_ms = entry.latency_ms
        self.state = RecordingState.READY
