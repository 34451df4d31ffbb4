"""Input layer - audio decoding and normalization."""

from .loader import AudioBuffer, AudioLoader
from .normalizer import AudioNormalizer

__all__ = [
    "AudioBuffer",
    "AudioLoader",
    "AudioNormalizer",
]
