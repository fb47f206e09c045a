"""Amplitude-based silence detection and trimming for 16-bit PCM audio."""

import logging
from typing import Iterable, List

import numpy as np

from ..models.audio import AudioWindow

logger = logging.getLogger(__name__)

BYTES_PER_SAMPLE = 2  # 16-bit signed little-endian
MAX_AMPLITUDE = 32767
DEFAULT_SILENCE_THRESHOLD = round(MAX_AMPLITUDE * 0.01)  # ~1% of full scale


def peak_amplitude(audio_data: bytes) -> int:
    """Return the peak absolute sample value of a block of 16-bit PCM.

    A trailing odd byte is ignored. The result is clamped to [0, 32767].
    """
    usable = len(audio_data) - (len(audio_data) % BYTES_PER_SAMPLE)
    if usable <= 0:
        return 0
    samples = np.frombuffer(audio_data, dtype='<i2', count=usable // BYTES_PER_SAMPLE)
    # Widen before abs() so -32768 does not overflow
    peak = int(np.abs(samples.astype(np.int32)).max())
    return min(peak, MAX_AMPLITUDE)


class SilenceWindower:
    """Slices a PCM byte stream into fixed-duration windows and classifies them."""

    def __init__(self,
                 sample_rate: int = 16000,
                 window_ms: int = 50,
                 threshold: int = DEFAULT_SILENCE_THRESHOLD,
                 channels: int = 1):
        """Initialize the windower.

        Args:
            sample_rate: Audio sample rate in Hz
            window_ms: Window duration in milliseconds
            threshold: Peak amplitude below which a window counts as silent
            channels: Number of interleaved channels
        """
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.sample_rate = sample_rate
        self.window_ms = window_ms
        self.threshold = threshold
        self.channels = channels
        self.bytes_per_ms = sample_rate * channels * BYTES_PER_SAMPLE / 1000.0
        self.window_bytes = (sample_rate * window_ms // 1000) * channels * BYTES_PER_SAMPLE
        if self.window_bytes <= 0:
            raise ValueError("window is shorter than one sample")

        # Bytes carried between streaming reads
        self._remainder = bytearray()

    def classify(self, audio_data: bytes) -> AudioWindow:
        """Build one window from raw bytes."""
        peak = peak_amplitude(audio_data)
        return AudioWindow(
            data=bytes(audio_data),
            is_silent=peak < self.threshold,
            peak=peak,
            duration_ms=len(audio_data) / self.bytes_per_ms,
        )

    def window(self, audio_data: bytes) -> List[AudioWindow]:
        """Split a complete byte string into windows.

        Produces ceil(N / window_bytes) windows; the last one holds the remainder.
        """
        size = self.window_bytes
        return [self.classify(audio_data[offset:offset + size])
                for offset in range(0, len(audio_data), size)]

    def feed(self, audio_data: bytes) -> List[AudioWindow]:
        """Append streamed bytes and return every window that is now complete."""
        self._remainder.extend(audio_data)
        complete = len(self._remainder) - (len(self._remainder) % self.window_bytes)
        if complete == 0:
            return []
        windows = self.window(bytes(self._remainder[:complete]))
        del self._remainder[:complete]
        return windows

    def flush(self) -> List[AudioWindow]:
        """Emit the carried remainder as a final partial window, if any."""
        if not self._remainder:
            return []
        windows = [self.classify(bytes(self._remainder))]
        self._remainder.clear()
        return windows

    def reset(self) -> None:
        self._remainder.clear()

    @property
    def pending_bytes(self) -> int:
        return len(self._remainder)


class SilenceTrimmer:
    """Caps interior silence runs of a finalized segment.

    Runs of up to ``max_silence_windows + pad_windows`` silent windows pass
    through untouched. Longer runs keep their first ``max_silence_windows``
    windows verbatim, followed by ``pad_windows`` windows of digital silence;
    the rest of the run is dropped.
    """

    def __init__(self, max_silence_windows: int = 20, pad_windows: int = 2,
                 window_bytes: int = 1600):
        if max_silence_windows < 0 or pad_windows < 0:
            raise ValueError("window counts must be non-negative")
        self.max_silence_windows = max_silence_windows
        self.pad_windows = pad_windows
        self.window_bytes = window_bytes

    @classmethod
    def from_durations(cls, windower: SilenceWindower, max_silence_ms: int = 1000,
                       pad_ms: int = 100) -> "SilenceTrimmer":
        return cls(
            max_silence_windows=max_silence_ms // windower.window_ms,
            pad_windows=pad_ms // windower.window_ms,
            window_bytes=windower.window_bytes,
        )

    def trim(self, windows: Iterable[AudioWindow]) -> bytes:
        out = bytearray()
        run = 0
        surplus: List[bytes] = []  # Silent windows beyond the cap, not yet committed
        collapsed = False

        for window in windows:
            if not window.is_silent:
                if surplus:
                    out.extend(b''.join(surplus))
                    surplus.clear()
                run = 0
                collapsed = False
                out.extend(window.data)
                continue

            run += 1
            if run <= self.max_silence_windows:
                out.extend(window.data)
            elif collapsed:
                continue
            else:
                surplus.append(window.data)
                if len(surplus) > self.pad_windows:
                    out.extend(bytes(self.window_bytes * self.pad_windows))
                    surplus.clear()
                    collapsed = True

        if surplus:
            out.extend(b''.join(surplus))

        logger.debug(f"Trimmed silence: {len(out)} bytes kept")
        return bytes(out)
