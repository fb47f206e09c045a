"""Turns finalized segments into backend-ready WAV payloads."""

import logging
from typing import Optional

from ..audio.silence import SilenceWindower, SilenceTrimmer
from ..audio.wav import ContainerEncoder
from ..models.segment import EncodedAudio, Segment
from .scheduler import SegmentationSettings

logger = logging.getLogger(__name__)


class SegmentPreparer:
    """Trims surplus silence from a segment and wraps it in a WAV container."""

    def __init__(self, settings: Optional[SegmentationSettings] = None):
        self.settings = settings or SegmentationSettings()
        windower = SilenceWindower(
            sample_rate=self.settings.sample_rate,
            window_ms=self.settings.window_ms,
            threshold=self.settings.silence_threshold,
            channels=self.settings.channels,
        )
        self.trimmer = SilenceTrimmer.from_durations(
            windower,
            max_silence_ms=self.settings.max_silence_ms,
            pad_ms=self.settings.pad_ms,
        )
        self.encoder = ContainerEncoder(self.settings.sample_rate, self.settings.channels)

    def prepare(self, segment: Segment) -> EncodedAudio:
        pcm = self.trimmer.trim(segment.windows)
        original_size = sum(len(w.data) for w in segment.windows)
        if len(pcm) < original_size:
            logger.info(f"Segment {segment.sequence_index}: trimmed silence, "
                        f"{original_size} -> {len(pcm)} bytes")
        return self.encoder.encode(segment.sequence_index, pcm,
                                   segment.duration_ms / 1000.0)
