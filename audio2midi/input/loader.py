"""Audio loading utilities."""

import logging
from dataclasses import dataclass
from pathlib import Path

import librosa
import numpy as np

from ..core import UnsupportedAudioError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioBuffer:
    """Decoded audio samples, one row per channel."""

    samples: np.ndarray  # (n_channels, n_samples)
    sample_rate: int

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        if samples.ndim != 2:
            raise UnsupportedAudioError(
                f"Audio samples must be 1-D or (channels, samples), got shape {samples.shape}"
            )
        object.__setattr__(self, "samples", samples)

    @property
    def n_channels(self) -> int:
        return self.samples.shape[0]

    @property
    def n_samples(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        if self.sample_rate <= 0:
            return 0.0
        return self.n_samples / self.sample_rate

    @property
    def mono(self) -> np.ndarray:
        """The first channel as a 1-D array."""
        return self.samples[0]


class AudioLoader:
    """Decodes audio files into AudioBuffers at their native rate."""

    SUPPORTED_FORMATS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".mp4"}

    def load(self, path: str) -> AudioBuffer:
        """
        Load an audio file, keeping all channels.

        Args:
            path: Path to audio file

        Returns:
            AudioBuffer at the file's own sample rate

        Raises:
            UnsupportedAudioError: If file format not supported or undecodable
            FileNotFoundError: If file doesn't exist
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")

        if path.suffix.lower() not in self.SUPPORTED_FORMATS:
            raise UnsupportedAudioError(
                f"Unsupported format: {path.suffix}. "
                f"Supported: {sorted(self.SUPPORTED_FORMATS)}"
            )

        try:
            audio, sr = librosa.load(str(path), sr=None, mono=False)
        except Exception as e:
            raise UnsupportedAudioError(f"Could not decode {path.name}: {e}") from e

        buffer = AudioBuffer(samples=audio, sample_rate=int(sr))
        logger.info(
            "Decoded %s: %.2fs, %d channel(s), %d Hz",
            path.name, buffer.duration, buffer.n_channels, buffer.sample_rate,
        )
        return buffer
