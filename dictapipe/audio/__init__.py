"""Audio capture and processing module."""

from .capture import AudioCapture, AbstractAudioSource
from .silence import SilenceWindower, SilenceTrimmer, peak_amplitude
from .wav import ContainerEncoder, encode_wav

__all__ = [
    'AudioCapture',
    'AbstractAudioSource',
    'SilenceWindower',
    'SilenceTrimmer',
    'peak_amplitude',
    'ContainerEncoder',
    'encode_wav',
]
