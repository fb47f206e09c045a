"""Pytest configuration and fixtures for dictapipe tests."""

import asyncio
import logging
import tempfile
from typing import Dict, List, Optional, Union
from unittest.mock import Mock, patch

import numpy as np
import pytest
from pubsub import pub

from dictapipe.audio.wav import encode_wav
from dictapipe.models.audio import AudioChunk
from dictapipe.models.segment import EncodedAudio
from dictapipe.models.transcription import BackendTranscript
from dictapipe.transcription.base import AbstractTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without audio hardware or network")
    config.addinivalue_line("markers", "integration: end-to-end pipeline tests with fake backends")


@pytest.fixture(autouse=True)
def clean_pubsub():
    """Drop pubsub listeners registered by a test."""
    yield
    pub.unsubAll()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def audio_test_data():
    """Generate 16-bit mono PCM test audio."""
    def generate_audio(pattern="sine", duration_ms=1000, amplitude=0.5, sample_rate=SAMPLE_RATE):
        """Generate audio data for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_ms: Duration of audio in milliseconds
            amplitude: Peak level as a fraction of full scale
            sample_rate: Sample rate in Hz

        Returns:
            bytes: Audio data as bytes
        """
        samples = int(sample_rate * duration_ms / 1000)

        if pattern == "sine":
            t = np.arange(samples) / sample_rate
            wave_data = np.sin(2 * np.pi * 440 * t)  # 440 Hz sine wave
        elif pattern == "noise":
            wave_data = np.random.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        audio_data = (wave_data * amplitude * 32767).astype('<i2')
        return audio_data.tobytes()

    return generate_audio


@pytest.fixture
def voice(audio_test_data):
    """Clearly voiced audio of the given duration."""
    return lambda duration_ms: audio_test_data("sine", duration_ms)


@pytest.fixture
def silence(audio_test_data):
    """Digital silence of the given duration."""
    return lambda duration_ms: audio_test_data("silence", duration_ms)


@pytest.fixture
def as_chunks():
    """Split a PCM byte string into AudioChunks of ``chunk_ms`` each."""
    def split(audio_data: bytes, chunk_ms: int = 100, start_time: float = 1000.0) -> List[AudioChunk]:
        chunk_bytes = SAMPLE_RATE * chunk_ms // 1000 * 2
        return [
            AudioChunk(
                data=audio_data[offset:offset + chunk_bytes],
                timestamp=start_time + offset / (SAMPLE_RATE * 2),
                sequence_number=i,
            )
            for i, offset in enumerate(range(0, len(audio_data), chunk_bytes))
        ]

    return split


@pytest.fixture
def encoded_segment():
    """Build a small backend-ready EncodedAudio for a sequence index."""
    def build(sequence_index: int, duration_ms: int = 100) -> EncodedAudio:
        pcm = b'\x00\x10' * (SAMPLE_RATE * duration_ms // 1000)
        return EncodedAudio(
            sequence_index=sequence_index,
            data=encode_wav(pcm),
            sample_rate=SAMPLE_RATE,
            channels=1,
            duration_seconds=duration_ms / 1000.0,
        )

    return build


class GatedBackend(AbstractTranscriptionBackend):
    """Fake backend whose n-th call blocks until ``release(n)``.

    Call order equals dispatch order, which equals sequence order.
    """

    service_name = "Fake"

    def __init__(self, outcomes: Optional[Dict[int, Union[str, Exception]]] = None,
                 gated: bool = True):
        self.outcomes = outcomes or {}
        self.gated = gated
        self.gates: Dict[int, asyncio.Event] = {}
        self.calls: List[bytes] = []
        self.options = []
        self.cancelled: List[int] = []
        self.active = 0
        self.max_active = 0

    def gate(self, n: int) -> asyncio.Event:
        if n not in self.gates:
            self.gates[n] = asyncio.Event()
        return self.gates[n]

    def release(self, *calls: int) -> None:
        for n in calls:
            self.gate(n).set()

    async def transcribe(self, container, options, timeout):
        n = len(self.calls)
        self.calls.append(container)
        self.options.append(options)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gated:
                await self.gate(n).wait()
            outcome = self.outcomes.get(n, f"segment {n}")
            if isinstance(outcome, Exception):
                raise outcome
            return BackendTranscript(text=outcome)
        except asyncio.CancelledError:
            self.cancelled.append(n)
            raise
        finally:
            self.active -= 1


@pytest.fixture
def gated_backend():
    """Backend whose calls complete only when the test releases them."""
    return GatedBackend()


@pytest.fixture
def backend_factory():
    return GatedBackend


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def eventually():
    return wait_until


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('dictapipe.audio.capture.pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }
