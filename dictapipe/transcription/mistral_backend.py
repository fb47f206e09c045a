"""Mistral audio transcription backend over HTTP."""

import json
import asyncio
import logging

import aiohttp

from ..exceptions import BackendError, BackendTimeout
from ..models.transcription import BackendTranscript, TranscriptionOptions
from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)

MISTRAL_TRANSCRIPTIONS_URL = "https://api.mistral.ai/v1/audio/transcriptions"


def extract_error_message(raw: str, status: int) -> str:
    """Pull a readable message out of an error response body.

    Tries ``message``, then ``detail`` (a validation list, a string or any
    JSON value), then the raw body, then ``HTTP <status>``.
    """
    try:
        body = json.loads(raw)
    except (ValueError, TypeError):
        return raw or f"HTTP {status}"
    if not isinstance(body, dict):
        return raw or f"HTTP {status}"

    message = body.get("message")
    detail = body.get("detail")
    if not message and isinstance(detail, list):
        parts = []
        for item in detail:
            if not isinstance(item, dict):
                parts.append(str(item))
                continue
            loc = ".".join(str(p) for p in item.get("loc") or [])
            parts.append(": ".join(p for p in (loc, item.get("msg")) if p))
        message = "; ".join(parts)
    elif not message and detail:
        message = detail if isinstance(detail, str) else json.dumps(detail)
    return message or raw or f"HTTP {status}"


class MistralTranscriptionBackend(AbstractTranscriptionBackend):
    """Sends WAV containers to the Mistral transcription endpoint."""

    service_name = "Mistral"

    def __init__(self, api_key: str, url: str = MISTRAL_TRANSCRIPTIONS_URL):
        """Initialize Mistral backend.

        Args:
            api_key: Mistral API key, sent as a bearer token
            url: Transcription endpoint
        """
        if not api_key:
            raise ValueError("Mistral API key is required")
        self.api_key = api_key
        self.url = url
        logger.info(f"MistralTranscriptionBackend initialized for {url}")

    def build_form(self, container: bytes, options: TranscriptionOptions) -> aiohttp.FormData:
        form = aiohttp.FormData()
        form.add_field("file", container, filename="recording.wav",
                       content_type="audio/wav")
        form.add_field("model", options.model)
        if options.language:
            form.add_field("language", options.language)
        if options.temperature is not None:
            form.add_field("temperature", str(options.temperature))
        if options.context_bias:
            form.add_field("context_bias", options.context_bias)
        for granularity in options.timestamp_granularities:
            form.add_field("timestamp_granularities[]", granularity)
        if options.diarize:
            form.add_field("diarize", "true")
        return form

    async def transcribe(self, container: bytes, options: TranscriptionOptions,
                         timeout: float) -> BackendTranscript:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        form = self.build_form(container, options)
        client_timeout = aiohttp.ClientTimeout(total=timeout)

        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.post(self.url, headers=headers, data=form) as response:
                    if response.status != 200:
                        raw = await response.text()
                        raise BackendError(self._error_message(raw, response.status),
                                           status=response.status)
                    data = await response.json()
        except asyncio.TimeoutError as e:
            raise BackendTimeout() from e
        except aiohttp.ClientError as e:
            raise BackendError(f"Request failed: {e}") from e

        logger.debug(f"Mistral response keys: {sorted(data)}")
        return BackendTranscript(
            text=(data.get("text") or "").strip(),
            segments=data.get("segments"),
            words=data.get("words"),
        )

    @staticmethod
    def _error_message(raw: str, status: int) -> str:
        message = extract_error_message(raw, status)
        if status == 401:
            message += " (check your API key)"
        return message
