"""Transcription publisher module for pub/sub event publishing."""

import logging
from pubsub import pub

from ..models.transcription import TranscriptResult

logger = logging.getLogger(__name__)

SEGMENT_READY_TOPIC = "dictapipe.segment_ready"
RESULT_TOPIC = "dictapipe.result"
SESSION_TOPIC = "dictapipe.session"


class TranscriptionPublisher:
    """Publishes pipeline events using pubsub.pub.

    Listeners must accept the keyword arguments of the topic they subscribe to:
    ``session_id, sequence_index`` for segment-ready, ``session_id, result``
    for results and ``session_id, event, detail`` for session lifecycle.
    """

    def __init__(self,
                 segment_topic: str = SEGMENT_READY_TOPIC,
                 result_topic: str = RESULT_TOPIC,
                 session_topic: str = SESSION_TOPIC):
        self.segment_topic = segment_topic
        self.result_topic = result_topic
        self.session_topic = session_topic
        logger.debug(f"TranscriptionPublisher initialized with topics: "
                     f"{segment_topic}, {result_topic}, {session_topic}")

    def publish_segment_ready(self, session_id: str, sequence_index: int) -> None:
        pub.sendMessage(self.segment_topic, session_id=session_id,
                        sequence_index=sequence_index)

    def publish_result(self, session_id: str, result: TranscriptResult) -> None:
        pub.sendMessage(self.result_topic, session_id=session_id, result=result)
        logger.debug(f"Published transcription result {result.sequence_index}")

    def publish_session_event(self, session_id: str, event: str, detail: str = "") -> None:
        pub.sendMessage(self.session_topic, session_id=session_id, event=event,
                        detail=detail)
