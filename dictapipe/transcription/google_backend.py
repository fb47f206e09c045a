"""Google Speech-to-Text transcription backend."""

import asyncio
import logging
from typing import Optional, List, Dict, Any

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

from ..exceptions import BackendError, BackendTimeout
from ..models.transcription import BackendTranscript, TranscriptionOptions
from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)


class GoogleSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text API backend for transcription.

    The synchronous client call runs in a worker thread. Cancelling the
    awaiting task abandons the result; the request itself runs to completion
    or to its deadline.
    """

    service_name = "Google Speech-to-Text"

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 sample_rate: int = 16000,
                 language: str = "en-US",
                 enable_automatic_punctuation: bool = True):
        """Initialize Google Speech backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            sample_rate: Sample rate of the submitted audio in Hz
            language: Fallback language code when the request does not name one
            enable_automatic_punctuation: Enable automatic punctuation
        """
        self.credentials_path = credentials_path
        if not self.credentials_path:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.sample_rate = sample_rate
        self.language = language
        self.enable_automatic_punctuation = enable_automatic_punctuation
        self.client = None
        self.project_id = None

    def initialize(self) -> bool:
        """Initialize Google Speech client and verify credentials."""
        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
        self.client = speech.SpeechClient(credentials=credentials)
        self.project_id = credentials.project_id
        logger.info(f"Using Google Cloud project: {self.project_id}")
        return True

    def build_config(self, options: TranscriptionOptions) -> speech.RecognitionConfig:
        config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            language_code=options.language or self.language,
            enable_automatic_punctuation=self.enable_automatic_punctuation,
            enable_word_time_offsets="word" in options.timestamp_granularities,
        )
        if options.context_bias:
            phrases = [p.strip() for p in options.context_bias.split(",") if p.strip()]
            config.speech_contexts = [speech.SpeechContext(phrases=phrases)]
        if options.diarize:
            config.diarization_config = speech.SpeakerDiarizationConfig(
                enable_speaker_diarization=True)
        return config

    async def transcribe(self, container: bytes, options: TranscriptionOptions,
                         timeout: float) -> BackendTranscript:
        if self.client is None:
            raise BackendError("Google Speech backend is not initialized")

        config = self.build_config(options)
        audio = speech.RecognitionAudio(content=container)
        try:
            response = await asyncio.to_thread(
                self.client.recognize, config=config, audio=audio, timeout=timeout)
        except gax_exceptions.DeadlineExceeded as e:
            raise BackendTimeout() from e
        except gax_exceptions.GoogleAPICallError as e:
            raise BackendError(f"Google Speech API error: {e.message}", status=e.code) from e

        if not response.results:
            logger.debug("--- NO SPEECH DETECTED ---")
            return BackendTranscript(text="")
        return self.__extract_transcript(response)

    def __extract_transcript(self, response: speech.RecognizeResponse) -> BackendTranscript:
        texts = []
        words: List[Dict[str, Any]] = []
        for result in response.results:
            if not result.alternatives:
                continue
            alternative = result.alternatives[0]
            texts.append(alternative.transcript.strip())
            for word in alternative.words:
                words.append({
                    "word": word.word,
                    "start": word.start_time.total_seconds(),
                    "end": word.end_time.total_seconds(),
                })
        text = " ".join(t for t in texts if t)
        logger.debug(f"Transcript='{text}' ({len(response.results)} result(s))")
        return BackendTranscript(text=text, words=words or None)
