"""Unit tests for GoogleSpeechBackend with a mocked Speech client."""

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from google.api_core import exceptions as gax_exceptions

from dictapipe.exceptions import BackendError, BackendTimeout
from dictapipe.models.transcription import TranscriptionOptions
from dictapipe.transcription.google_backend import GoogleSpeechBackend


def word(text, start, end):
    return SimpleNamespace(word=text, start_time=timedelta(seconds=start),
                           end_time=timedelta(seconds=end))


def response(*alternatives):
    return SimpleNamespace(results=[SimpleNamespace(alternatives=[alt]) for alt in alternatives])


@pytest.fixture
def backend():
    backend = GoogleSpeechBackend(credentials_path="/tmp/creds.json", language="en-US")
    backend.client = Mock()
    return backend


@pytest.mark.unit
class TestGoogleSpeechBackend:

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            GoogleSpeechBackend(credentials_path=None)

    def test_build_config(self, backend):
        options = TranscriptionOptions(language="de-DE", context_bias="PyAudio, asyncio,",
                                       timestamp_granularities=["word"], diarize=True)

        config = backend.build_config(options)

        assert config.language_code == "de-DE"
        assert config.sample_rate_hertz == 16000
        assert config.enable_word_time_offsets is True
        assert list(config.speech_contexts[0].phrases) == ["PyAudio", "asyncio"]
        assert config.diarization_config.enable_speaker_diarization is True

    def test_build_config_defaults(self, backend):
        config = backend.build_config(TranscriptionOptions())

        assert config.language_code == "en-US"
        assert config.enable_word_time_offsets is False
        assert len(config.speech_contexts) == 0

    @pytest.mark.asyncio
    async def test_transcribe_joins_results(self, backend):
        backend.client.recognize.return_value = response(
            SimpleNamespace(transcript=" Hello there.", words=[word("Hello", 0.0, 0.4)]),
            SimpleNamespace(transcript="General Kenobi ", words=[]),
        )

        transcript = await backend.transcribe(b'RIFF', TranscriptionOptions(), timeout=3.0)

        assert transcript.text == "Hello there. General Kenobi"
        assert transcript.words == [{"word": "Hello", "start": 0.0, "end": 0.4}]
        kwargs = backend.client.recognize.call_args.kwargs
        assert kwargs["timeout"] == 3.0
        assert kwargs["audio"].content == b'RIFF'

    @pytest.mark.asyncio
    async def test_no_results(self, backend):
        backend.client.recognize.return_value = SimpleNamespace(results=[])

        transcript = await backend.transcribe(b'RIFF', TranscriptionOptions(), timeout=3.0)

        assert transcript.text == ""
        assert transcript.words is None

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, backend):
        backend.client.recognize.side_effect = gax_exceptions.DeadlineExceeded("slow")

        with pytest.raises(BackendTimeout):
            await backend.transcribe(b'RIFF', TranscriptionOptions(), timeout=3.0)

    @pytest.mark.asyncio
    async def test_api_error(self, backend):
        backend.client.recognize.side_effect = gax_exceptions.InvalidArgument("bad audio")

        with pytest.raises(BackendError) as exc_info:
            await backend.transcribe(b'RIFF', TranscriptionOptions(), timeout=3.0)

        assert exc_info.value.status == 400
        assert "bad audio" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_not_initialized(self):
        backend = GoogleSpeechBackend(credentials_path="/tmp/creds.json")

        with pytest.raises(BackendError):
            await backend.transcribe(b'RIFF', TranscriptionOptions(), timeout=3.0)
