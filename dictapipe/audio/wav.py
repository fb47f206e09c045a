"""In-memory WAV container encoding for raw 16-bit PCM."""

import logging
import struct

from ..models.segment import EncodedAudio

logger = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44
WAVE_FORMAT_PCM = 1
BITS_PER_SAMPLE = 16

# RIFF chunk, "fmt " subchunk (16 bytes, PCM) and "data" subchunk header
_HEADER = struct.Struct('<4sI4s4sIHHIIHH4sI')


def encode_wav(pcm: bytes, sample_rate: int = 16000, channels: int = 1) -> bytes:
    """Prefix raw little-endian PCM with a 44-byte RIFF/WAVE header.

    All size fields are derived from ``len(pcm)``; no pad byte is appended,
    so the declared data length always equals the payload length.
    """
    block_align = channels * BITS_PER_SAMPLE // 8
    byte_rate = sample_rate * block_align
    data_length = len(pcm)
    header = _HEADER.pack(
        b'RIFF', 36 + data_length, b'WAVE',
        b'fmt ', 16, WAVE_FORMAT_PCM, channels, sample_rate,
        byte_rate, block_align, BITS_PER_SAMPLE,
        b'data', data_length,
    )
    return header + pcm


class ContainerEncoder:
    """Wraps trimmed segment bytes into an ``EncodedAudio`` value."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels

    def encode(self, sequence_index: int, pcm: bytes, duration_seconds: float) -> EncodedAudio:
        data = encode_wav(pcm, self.sample_rate, self.channels)
        logger.debug(f"Encoded segment {sequence_index}: {len(pcm)} PCM bytes, "
                     f"{len(data)} bytes total")
        return EncodedAudio(
            sequence_index=sequence_index,
            data=data,
            sample_rate=self.sample_rate,
            channels=self.channels,
            duration_seconds=duration_seconds,
        )
