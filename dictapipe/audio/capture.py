"""Microphone capture delivering raw PCM chunks to a callback."""

import time
import logging
from abc import ABC, abstractmethod
from threading import Thread, Event
from typing import Optional, Callable
from datetime import datetime

import pyaudio

from ..exceptions import CaptureUnavailable
from ..models.audio import AudioChunk, AudioStats

logger = logging.getLogger(__name__)


class AbstractAudioSource(ABC):
    """A lazy, unbounded source of raw PCM chunks (16-bit, fixed rate) until stopped."""

    @abstractmethod
    def start_recording(self) -> None:
        """Begin delivering chunks. Raises CaptureUnavailable if capture cannot start."""
        pass

    @abstractmethod
    def stop_recording(self) -> None:
        """Stop delivering chunks and release the device."""
        pass


class AudioCapture(AbstractAudioSource):
    """Continuous PyAudio capture on a background thread."""

    def __init__(
        self,
        callback: Callable[[AudioChunk], None],
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        on_error: Optional[Callable[[CaptureUnavailable], None]] = None,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            callback: Receives every captured chunk, on the capture thread
            sample_rate: Audio sample rate (16kHz)
            chunk_size: Size of each audio chunk in samples
            channels: Number of audio channels (1 for mono)
            on_error: Receives a CaptureUnavailable if the stream dies mid-session
        """
        self.chunk_callback = callback
        self.error_callback = on_error
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = pyaudio.paInt16

        # Recording thread management
        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()
        self.is_recording = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    def start_recording(self) -> None:
        """Open the input stream and start the capture thread."""
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        logger.info("Starting audio recording")
        self.stream = self.__open_audio_stream()
        self.stop_event.clear()
        self.start_time = datetime.now()
        self.total_chunks = 0

        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "AudioCaptureThread"
        self.recording_thread.start()
        self.is_recording = True

    def stop_recording(self) -> None:
        """Stop recording and clean up resources."""
        if not self.is_recording:
            logger.warning("No recording in progress")
            return

        logger.info("Stopping audio recording")
        self.stop_event.set()

        if self.recording_thread and self.recording_thread.is_alive():
            self.recording_thread.join(timeout=2.0)
            if self.recording_thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")

        self.is_recording = False
        stats = self.get_recording_stats()
        logger.info(f"Recording stopped. Total chunks: {stats.total_chunks}, "
                    f"duration: {stats.duration_seconds:.1f}s")

    def __open_audio_stream(self):
        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
                stream_callback=None
            )
        except (OSError, IOError) as e:
            self.__terminate()
            raise CaptureUnavailable(f"Audio input unavailable: {e}") from e
        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk")
        return stream

    def __read_audio_chunk(self) -> bytes:
        audio_chunk = self.stream.read(self.chunk_size, exception_on_overflow=False)
        self.total_chunks += 1
        return audio_chunk

    def _record_continuously(self) -> None:
        """Internal method: continuous recording loop in background thread."""
        try:
            while not self.stop_event.is_set():
                audio_chunk = self.__read_audio_chunk()
                self.chunk_callback(AudioChunk(
                    data=audio_chunk,
                    timestamp=time.time(),
                    sequence_number=self.total_chunks,
                ))
        except (OSError, IOError) as e:
            logger.error(f"Audio capture failed: {e}")
            if self.error_callback:
                self.error_callback(CaptureUnavailable(f"Audio capture failed: {e}"))
        finally:
            if self.stream:
                self.stream.stop_stream()
                self.stream.close()
                self.stream = None
            self.__terminate()

    def __terminate(self) -> None:
        if self.pyaudio_instance:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
        )

    def __del__(self):
        """Ensure resources are cleaned up on deletion."""
        if self.is_recording:
            self.stop_recording()
