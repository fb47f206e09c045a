"""Concurrent dispatch of finalized segments to a transcription backend."""

import time
import asyncio
import logging
import functools
from typing import Callable, Optional

from ..exceptions import BackendError, BackendTimeout, SessionCancelled
from ..models.segment import EncodedAudio
from ..models.session import PipelineSession
from ..models.transcription import TranscriptionOptions, TranscriptResult
from .base import AbstractTranscriptionBackend

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class TranscriptionDispatcher:
    """Fires one backend call per segment without waiting for earlier ones.

    Every call runs as an ``asyncio.Task`` registered in ``session.in_flight``
    and removed by its done-callback, whatever the outcome. Backend failures
    become error-bearing results; cancellation abandons the call silently.
    """

    def __init__(self,
                 session: PipelineSession,
                 backend: AbstractTranscriptionBackend,
                 options: Optional[TranscriptionOptions] = None,
                 result_callback: Optional[Callable[[TranscriptResult], None]] = None,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.session = session
        self.backend = backend
        self.options = options or TranscriptionOptions()
        self.result_callback = result_callback
        self.timeout = timeout
        self.dispatched = 0

    @property
    def pending_count(self) -> int:
        return len(self.session.in_flight)

    def dispatch(self, encoded: EncodedAudio) -> "asyncio.Task[TranscriptResult]":
        """Start transcribing in the background and return the task handle.

        Must be called from a running event loop.
        """
        if self.session.cancelled:
            raise SessionCancelled(f"Session {self.session.session_id} was cancelled")

        index = encoded.sequence_index
        task = asyncio.get_running_loop().create_task(
            self._transcribe(encoded),
            name=f"transcribe-{self.session.session_id}-{index}",
        )
        self.session.in_flight[index] = task
        task.add_done_callback(functools.partial(self._on_done, index))
        self.dispatched += 1
        logger.info(f"Dispatched segment {index} ({encoded.payload_size} bytes); "
                    f"{self.pending_count} in flight")
        return task

    async def _transcribe(self, encoded: EncodedAudio) -> TranscriptResult:
        index = encoded.sequence_index
        error: Optional[BackendError] = None
        transcript = None
        start_time = time.monotonic()
        try:
            transcript = await asyncio.wait_for(
                self.backend.transcribe(encoded.data, self.options, self.timeout),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            error = BackendTimeout()
        except BackendError as e:
            error = e
        except Exception as e:
            logger.error(f"Unexpected backend failure for segment {index}: {e}", exc_info=True)
            error = BackendError(str(e))
        latency_ms = int((time.monotonic() - start_time) * 1000)

        if error is not None:
            logger.warning(f"Segment {index} failed after {latency_ms}ms: {error.message}")
            return TranscriptResult(
                sequence_index=index,
                text="",
                latency_ms=latency_ms,
                error=error.message,
                error_status=error.status,
                duration_seconds=encoded.duration_seconds,
                service=self.backend.service_name,
            )

        text = (transcript.text or "").strip()
        logger.info(f"Segment {index} transcribed in {latency_ms}ms: '{text[:50]}'")
        return TranscriptResult(
            sequence_index=index,
            text=text,
            latency_ms=latency_ms,
            segments=transcript.segments,
            words=transcript.words,
            duration_seconds=encoded.duration_seconds,
            service=self.backend.service_name,
        )

    def _on_done(self, index: int, task: asyncio.Task) -> None:
        self.session.in_flight.pop(index, None)
        if task.cancelled():
            logger.info(f"Segment {index} abandoned")
            return
        if self.session.cancelled:
            logger.debug(f"Dropping result for segment {index}: session cancelled")
            return
        if self.result_callback:
            self.result_callback(task.result())

    async def drain(self) -> None:
        """Wait until every dispatched call has produced its result."""
        while self.session.in_flight:
            logger.info(f"Waiting for {self.pending_count} transcription(s)...")
            await asyncio.wait(list(self.session.in_flight.values()))
            # Done-callbacks may still be scheduled
            await asyncio.sleep(0)

    async def cancel_all(self) -> int:
        """Abort every in-flight call and wait for the tasks to unwind.

        Returns:
            Number of calls that were cancelled
        """
        tasks = list(self.session.in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
            await asyncio.sleep(0)
        logger.info(f"Cancelled {len(tasks)} in-flight transcription(s)")
        return len(tasks)
