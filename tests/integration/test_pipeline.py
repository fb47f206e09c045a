"""End-to-end tests of PipelineService: audio in, ordered results out."""

import asyncio
import struct

import pytest
from pubsub import pub

from dictapipe.exceptions import BackendError, CaptureUnavailable, SegmentTooShort
from dictapipe.models.audio import AudioChunk
from dictapipe.models.session import SessionMode
from dictapipe.pipeline.scheduler import SegmentationSettings
from dictapipe.services.pipeline_service import PipelineService
from dictapipe.transcription.publisher import RESULT_TOPIC, SEGMENT_READY_TOPIC, SESSION_TOPIC


@pytest.fixture
def utterances(voice, silence, as_chunks):
    """``count`` voiced seconds, each followed by a pause long enough to split."""
    def build(count, tail_ms=0):
        data = b''.join(voice(1000) + silence(1200) for _ in range(count - 1))
        return as_chunks(data + voice(1000) + voice(tail_ms))
    return build


@pytest.fixture
def session_events():
    events = []

    def listener(session_id, event, detail):
        events.append((event, detail))

    pub.subscribe(listener, SESSION_TOPIC)
    yield events
    pub.unsubscribe(listener, SESSION_TOPIC)


def feed_all(service, handle, chunks):
    for chunk in chunks:
        assert service.feed(handle, chunk)


@pytest.mark.integration
class TestContinuousPipeline:

    @pytest.mark.asyncio
    async def test_two_chunks_delivered_in_order(self, gated_backend, utterances, eventually):
        service = PipelineService(gated_backend)
        delivered = []
        ready = []
        handle = service.start_session(SessionMode.CONTINUOUS, on_result=delivered.append,
                                       on_segment_ready=ready.append)

        feed_all(service, handle, utterances(2))
        await eventually(lambda: len(gated_backend.calls) == 1)
        stopping = asyncio.create_task(service.stop(handle))
        await eventually(lambda: len(gated_backend.calls) == 2)

        # Index 1 completes first
        gated_backend.release(1)
        await eventually(lambda: handle.emitter.buffered_count == 1)
        assert delivered == []

        gated_backend.release(0)
        results = await stopping

        assert [r.sequence_index for r in results] == [0, 1]
        assert [r.text for r in results] == ["segment 0", "segment 1"]
        assert delivered == results
        assert ready == [0, 1]
        assert gated_backend.max_active == 2
        assert handle.session.is_complete
        assert handle.closed.is_set()

    @pytest.mark.asyncio
    async def test_backend_failure_mid_stream(self, backend_factory, utterances, session_events):
        backend = backend_factory(outcomes={1: BackendError("Internal Server Error", status=500)},
                                  gated=False)
        service = PipelineService(backend)
        handle = service.start_session(SessionMode.CONTINUOUS)

        feed_all(service, handle, utterances(3))
        results = await service.stop(handle)

        assert [r.sequence_index for r in results] == [0, 1, 2]
        assert results[0].text == "segment 0"
        assert results[1].is_error
        assert results[1].error == "Internal Server Error"
        assert results[1].error_status == 500
        assert results[2].text == "segment 2"
        assert handle.error is None
        assert [event for event, _ in session_events] == ["started", "completed"]

    @pytest.mark.asyncio
    async def test_results_published_in_order(self, gated_backend, utterances, eventually):
        published = []
        segment_events = []

        def on_result(session_id, result):
            published.append((session_id, result.sequence_index))

        def on_segment(session_id, sequence_index):
            segment_events.append(sequence_index)

        pub.subscribe(on_result, RESULT_TOPIC)
        pub.subscribe(on_segment, SEGMENT_READY_TOPIC)

        service = PipelineService(gated_backend)
        handle = service.start_session(SessionMode.CONTINUOUS)
        feed_all(service, handle, utterances(3))
        stopping = asyncio.create_task(service.stop(handle))
        await eventually(lambda: len(gated_backend.calls) == 3)

        gated_backend.release(2, 1, 0)
        await stopping

        assert published == [(handle.session_id, 0), (handle.session_id, 1),
                             (handle.session_id, 2)]
        assert segment_events == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_silence_timeout_closes_session(self, backend_factory, voice, silence, as_chunks):
        service = PipelineService(backend_factory(outcomes={0: "only one"}, gated=False))
        handle = service.start_session(SessionMode.CONTINUOUS)

        feed_all(service, handle, as_chunks(voice(500) + silence(2000)))
        results = await asyncio.wait_for(service.wait_closed(handle), timeout=2.0)

        assert [r.text for r in results] == ["only one"]
        assert service.feed(handle, as_chunks(voice(100))[0]) is False

    @pytest.mark.asyncio
    async def test_concurrent_sessions_are_independent(self, backend_factory, utterances):
        service = PipelineService(backend_factory(gated=False))
        first = service.start_session(SessionMode.CONTINUOUS)
        second = service.start_session(SessionMode.CONTINUOUS)

        feed_all(service, first, utterances(2))
        feed_all(service, second, utterances(1))
        first_results, second_results = await asyncio.gather(service.stop(first),
                                                             service.stop(second))

        assert [r.sequence_index for r in first_results] == [0, 1]
        assert [r.sequence_index for r in second_results] == [0]
        assert first.session_id != second.session_id

    @pytest.mark.asyncio
    async def test_segment_callback_failure_ends_session(self, backend_factory, utterances):
        backend = backend_factory(gated=False)
        service = PipelineService(backend)

        def on_segment_ready(sequence_index):
            raise RuntimeError("listener crashed")

        handle = service.start_session(SessionMode.CONTINUOUS, on_segment_ready=on_segment_ready)
        feed_all(service, handle, utterances(3))

        with pytest.raises(RuntimeError, match="listener crashed"):
            await asyncio.wait_for(service.stop(handle), timeout=2.0)

        assert handle.closed.is_set()
        assert handle.emitter_task.done()
        assert handle.session.in_flight == {}
        assert backend.calls == []
        assert service.feed(handle, utterances(1)[0]) is False


@pytest.mark.integration
class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_abandons_in_flight(self, gated_backend, utterances, eventually, session_events):
        service = PipelineService(gated_backend)
        delivered = []
        handle = service.start_session(SessionMode.CONTINUOUS, on_result=delivered.append)

        # Two dispatched utterances and part of a third still being captured
        feed_all(service, handle, utterances(3, tail_ms=0)[:-5])
        await eventually(lambda: len(gated_backend.calls) == 2)

        results = await service.cancel(handle)

        assert results == []
        assert delivered == []
        assert sorted(gated_backend.cancelled) == [0, 1]
        assert handle.session.in_flight == {}
        assert handle.session.next_sequence_index == 2
        assert handle.session.cancelled
        assert service.feed(handle, utterances(1)[0]) is False
        assert ("cancelled", "") in session_events

    @pytest.mark.asyncio
    async def test_cancel_awaiting_in_flight(self, gated_backend, utterances, eventually):
        service = PipelineService(gated_backend)
        handle = service.start_session(SessionMode.CONTINUOUS)
        feed_all(service, handle, utterances(3)[:-5])
        await eventually(lambda: len(gated_backend.calls) == 2)

        cancelling = asyncio.create_task(service.cancel(handle, await_in_flight=True))
        await asyncio.sleep(0.01)
        gated_backend.release(1, 0)
        results = await cancelling

        assert [r.sequence_index for r in results] == [0, 1]
        assert gated_backend.cancelled == []
        assert handle.session.next_sequence_index == 2
        assert handle.session.in_flight == {}

    @pytest.mark.asyncio
    async def test_no_tasks_leak_after_mid_flight_cancel(self, backend_factory, utterances, eventually):
        backend = backend_factory()
        service = PipelineService(backend)
        handle = service.start_session(SessionMode.CONTINUOUS)
        feed_all(service, handle, utterances(5))
        await eventually(lambda: len(backend.calls) == 4)
        backend.release(0, 2)
        await eventually(lambda: len(handle.session.in_flight) == 2)
        tracked = [handle.scheduler_task, handle.emitter_task]

        await service.cancel(handle)

        assert handle.session.in_flight == {}
        assert all(task.done() for task in tracked)
        assert sorted(backend.cancelled) == [1, 3]
        leftover = [task for task in asyncio.all_tasks()
                    if task is not asyncio.current_task() and not task.done()]
        assert leftover == []

    @pytest.mark.asyncio
    async def test_capture_failure_ends_session(self, gated_backend, utterances, eventually, session_events):
        service = PipelineService(gated_backend)
        handle = service.start_session(SessionMode.CONTINUOUS)
        feed_all(service, handle, utterances(2))
        await eventually(lambda: len(gated_backend.calls) == 1)

        await service.fail(handle, CaptureUnavailable("Audio capture failed: device unplugged"))

        assert isinstance(handle.error, CaptureUnavailable)
        assert handle.closed.is_set()
        assert handle.session.in_flight == {}
        assert session_events[-1] == ("error", "Audio capture failed: device unplugged")


@pytest.mark.integration
class TestSingleShotPipeline:

    @pytest.mark.asyncio
    async def test_single_segment(self, backend_factory, voice, as_chunks):
        service = PipelineService(backend_factory(outcomes={0: "hello world"}, gated=False))
        handle = service.start_session(SessionMode.SINGLE_SHOT)

        feed_all(service, handle, as_chunks(voice(1000)))
        results = await service.stop(handle)

        assert len(results) == 1
        assert results[0].word_count == 2
        assert results[0].duration_seconds == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_session_settings_reach_encoder(self, backend_factory, audio_test_data):
        backend = backend_factory(gated=False)
        service = PipelineService(backend)
        settings = SegmentationSettings(sample_rate=8000, window_ms=100, silence_timeout_seconds=0)
        handle = service.start_session(SessionMode.SINGLE_SHOT, settings=settings)

        audio = (audio_test_data("sine", 500, sample_rate=8000)
                 + audio_test_data("silence", 3000, sample_rate=8000)
                 + audio_test_data("sine", 500, sample_rate=8000))
        window_bytes = 1600
        chunks = [AudioChunk(data=audio[offset:offset + window_bytes],
                             timestamp=1000.0 + offset / 16000, sequence_number=i)
                  for i, offset in enumerate(range(0, len(audio), window_bytes))]
        feed_all(service, handle, chunks)
        results = await service.stop(handle)

        assert len(results) == 1
        container = backend.calls[0]
        assert struct.unpack_from('<I', container, 24)[0] == 8000
        # 5 voiced + 10 kept silent + 1 pad + 5 voiced windows
        assert struct.unpack_from('<I', container, 40)[0] == 21 * window_bytes
        assert results[0].duration_seconds == pytest.approx(4.0)

    @pytest.mark.asyncio
    async def test_rejected_recording(self, backend_factory, voice, as_chunks, session_events):
        backend = backend_factory(gated=False)
        service = PipelineService(backend)
        handle = service.start_session(SessionMode.SINGLE_SHOT)

        feed_all(service, handle, as_chunks(voice(300)))
        results = await service.stop(handle)

        assert results == []
        assert isinstance(handle.rejection, SegmentTooShort)
        assert backend.calls == []
        assert ("rejected", "Recording too short") in session_events
