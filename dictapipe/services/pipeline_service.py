"""Session-level pipeline: audio in, ordered transcripts out."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..config import DictaPipeConfig
from ..exceptions import DictaPipeError
from ..models.audio import AudioChunk
from ..models.segment import Segment
from ..models.session import PipelineSession, SessionMode
from ..models.transcription import TranscriptionOptions, TranscriptResult
from ..pipeline.preparation import SegmentPreparer
from ..pipeline.scheduler import SegmentScheduler, SegmentationSettings
from ..transcription.base import AbstractTranscriptionBackend
from ..transcription.dispatcher import TranscriptionDispatcher, DEFAULT_TIMEOUT_SECONDS
from ..transcription.emitter import OrderedEmitter
from ..transcription.publisher import TranscriptionPublisher

logger = logging.getLogger(__name__)

_STOP = object()        # Audio queue: explicit stop
_END_OF_RESULTS = object()  # Result queue: no more results will arrive


def create_backend(config: DictaPipeConfig) -> AbstractTranscriptionBackend:
    """Create and initialize the configured transcription backend."""
    name = config.get('transcription.backend', 'mistral')
    logger.info(f"Initializing {name} transcription backend...")
    if name == "google":
        from ..transcription.google_backend import GoogleSpeechBackend
        backend = GoogleSpeechBackend(
            credentials_path=config.get('google_cloud.credentials_path'),
            sample_rate=config.get('audio.sample_rate', 16000),
            language=config.get('google_cloud.language', 'en-US'),
        )
    else:
        from ..transcription.mistral_backend import MistralTranscriptionBackend
        backend = MistralTranscriptionBackend(api_key=config.get('transcription.api_key'))

    if not backend.initialize():
        raise RuntimeError(f"{name} backend failed to initialize")
    return backend


@dataclass
class SessionHandle:
    """Everything owned by one running session."""
    session: PipelineSession
    scheduler: SegmentScheduler
    preparer: SegmentPreparer
    dispatcher: TranscriptionDispatcher
    emitter: OrderedEmitter
    audio_queue: asyncio.Queue
    result_queue: asyncio.Queue
    results: List[TranscriptResult] = field(default_factory=list)  # Delivered, in order
    closed: asyncio.Event = field(default_factory=asyncio.Event)
    accepting: bool = True
    rejection: Optional[DictaPipeError] = None
    error: Optional[DictaPipeError] = None
    scheduler_task: Optional[asyncio.Task] = None
    emitter_task: Optional[asyncio.Task] = None

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def mode(self) -> SessionMode:
        return self.session.mode


class PipelineService:
    """Runs capture sessions through segmentation, dispatch and ordered delivery.

    Per session, a scheduler task consumes an audio queue and dispatches
    finalized segments; backend calls feed a result queue consumed by an
    emitter task, which delivers results in sequence order to callbacks and
    to the pubsub result topic.
    """

    def __init__(self,
                 backend: AbstractTranscriptionBackend,
                 settings: Optional[SegmentationSettings] = None,
                 options: Optional[TranscriptionOptions] = None,
                 timeout: float = DEFAULT_TIMEOUT_SECONDS,
                 publisher: Optional[TranscriptionPublisher] = None):
        self.backend = backend
        self.settings = settings or SegmentationSettings()
        self.options = options or TranscriptionOptions()
        self.timeout = timeout
        self.publisher = publisher or TranscriptionPublisher()

    def start_session(self,
                      mode: SessionMode,
                      settings: Optional[SegmentationSettings] = None,
                      on_result: Optional[Callable[[TranscriptResult], None]] = None,
                      on_segment_ready: Optional[Callable[[int], None]] = None) -> SessionHandle:
        """Create a session and start its tasks. Must be called inside a running loop."""
        session = PipelineSession(mode=mode)
        session_settings = settings or self.settings
        result_queue: asyncio.Queue = asyncio.Queue()
        handle = SessionHandle(
            session=session,
            scheduler=SegmentScheduler(session, session_settings),
            preparer=SegmentPreparer(session_settings),
            dispatcher=TranscriptionDispatcher(
                session, self.backend, self.options,
                result_callback=result_queue.put_nowait, timeout=self.timeout,
            ),
            emitter=OrderedEmitter(session),
            audio_queue=asyncio.Queue(),
            result_queue=result_queue,
        )
        handle.emitter.on_ready(lambda result: self._deliver(handle, result, on_result))
        handle.scheduler.start()

        loop = asyncio.get_running_loop()
        handle.scheduler_task = loop.create_task(
            self._run_scheduler(handle, on_segment_ready), name=f"scheduler-{session.session_id}")
        handle.emitter_task = loop.create_task(
            self._run_emitter(handle), name=f"emitter-{session.session_id}")

        self.publisher.publish_session_event(session.session_id, "started", mode.value)
        return handle

    def feed(self, handle: SessionHandle, chunk: AudioChunk) -> bool:
        """Queue one chunk for the session; False if the session no longer accepts audio."""
        if not handle.accepting or handle.scheduler.finished:
            logger.debug(f"Session {handle.session_id} not accepting audio")
            return False
        handle.audio_queue.put_nowait(chunk)
        return True

    async def stop(self, handle: SessionHandle) -> List[TranscriptResult]:
        """Stop capture, finalize the pending segment and wait for every result."""
        if handle.accepting:
            handle.accepting = False
            handle.audio_queue.put_nowait(_STOP)
        await asyncio.wait([handle.scheduler_task, handle.emitter_task])
        self._raise_task_failure(handle)
        return handle.results

    async def wait_closed(self, handle: SessionHandle) -> List[TranscriptResult]:
        """Wait for a session to end on its own (silence timeout) and deliver everything."""
        await handle.closed.wait()
        self._raise_task_failure(handle)
        return handle.results

    async def cancel(self, handle: SessionHandle, await_in_flight: bool = False) -> List[TranscriptResult]:
        """Abort the session.

        The in-progress segment is always discarded. Already-dispatched calls
        are abandoned, or awaited and delivered when ``await_in_flight`` is set.
        """
        handle.accepting = False
        if not handle.scheduler_task.done():
            handle.scheduler_task.cancel()
            await asyncio.wait([handle.scheduler_task])
        handle.scheduler.cancel()

        if await_in_flight:
            await handle.dispatcher.drain()
            if not handle.emitter_task.done():
                handle.result_queue.put_nowait(_END_OF_RESULTS)
                await asyncio.wait([handle.emitter_task])
        else:
            handle.session.cancelled = True
            await handle.dispatcher.cancel_all()
            handle.emitter.discard()
            if not handle.emitter_task.done():
                handle.emitter_task.cancel()
                await asyncio.wait([handle.emitter_task])

        self.publisher.publish_session_event(handle.session_id, "cancelled")
        handle.closed.set()
        logger.info(f"Session {handle.session_id} cancelled; "
                    f"{len(handle.results)} result(s) delivered")
        return handle.results

    async def fail(self, handle: SessionHandle, error: DictaPipeError) -> None:
        """End the session after a fatal error such as CaptureUnavailable."""
        logger.error(f"Session {handle.session_id} failed: {error}")
        handle.error = error
        await self.cancel(handle)
        self.publisher.publish_session_event(handle.session_id, "error", str(error))

    async def _run_scheduler(self, handle: SessionHandle,
                             on_segment_ready: Optional[Callable[[int], None]]) -> None:
        scheduler = handle.scheduler
        cancelled = False
        try:
            while not scheduler.finished:
                item = await handle.audio_queue.get()
                if item is _STOP:
                    segments = scheduler.stop()
                else:
                    segments = scheduler.feed(item)
                for segment in segments:
                    self._dispatch_segment(handle, segment, on_segment_ready)
            if scheduler.rejection is not None:
                handle.rejection = scheduler.rejection
                self.publisher.publish_session_event(handle.session_id, "rejected",
                                                     str(scheduler.rejection))
        except asyncio.CancelledError:
            cancelled = True
            raise
        except Exception as e:
            logger.error(f"Scheduler for session {handle.session_id} failed: {e}", exc_info=True)
            scheduler.cancel()
            raise
        finally:
            handle.accepting = False
            # cancel() owns shutdown of the emitter and in-flight calls
            if not cancelled:
                await handle.dispatcher.drain()
                handle.result_queue.put_nowait(_END_OF_RESULTS)

    def _dispatch_segment(self, handle: SessionHandle, segment: Segment,
                          on_segment_ready: Optional[Callable[[int], None]]) -> None:
        encoded = handle.preparer.prepare(segment)
        self.publisher.publish_segment_ready(handle.session_id, segment.sequence_index)
        if on_segment_ready:
            on_segment_ready(segment.sequence_index)
        handle.dispatcher.dispatch(encoded)

    async def _run_emitter(self, handle: SessionHandle) -> None:
        try:
            while True:
                item = await handle.result_queue.get()
                if item is _END_OF_RESULTS:
                    break
                handle.emitter.submit(item)

            self.publisher.publish_session_event(handle.session_id, "completed")
            logger.info(f"Session {handle.session_id} complete: "
                        f"{len(handle.results)} result(s) delivered")
        finally:
            handle.closed.set()

    def _deliver(self, handle: SessionHandle, result: TranscriptResult,
                 on_result: Optional[Callable[[TranscriptResult], None]]) -> None:
        handle.results.append(result)
        self.publisher.publish_result(handle.session_id, result)
        if on_result:
            on_result(result)

    @staticmethod
    def _raise_task_failure(handle: SessionHandle) -> None:
        for task in (handle.scheduler_task, handle.emitter_task):
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise task.exception()
