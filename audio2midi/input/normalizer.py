"""Channel mixdown and resampling into the estimator's input format."""

import logging
from typing import Optional

import librosa
import numpy as np

from ..core import UnsupportedAudioError
from ..core.constants import AUDIO_SAMPLE_RATE
from .loader import AudioBuffer

logger = logging.getLogger(__name__)


class AudioNormalizer:
    """Mixes audio down to mono and resamples it to a fixed rate."""

    def __init__(self, target_sr: int = AUDIO_SAMPLE_RATE, res_type: str = "polyphase"):
        """
        Initialize AudioNormalizer.

        Args:
            target_sr: Default output sample rate
            res_type: librosa resampler. The default polyphase filter is
                band-limited and deterministic.
        """
        self.target_sr = target_sr
        self.res_type = res_type

    def normalize(self, buffer: AudioBuffer, target_sr: Optional[int] = None) -> AudioBuffer:
        """
        Convert a buffer to a single channel at the target rate.

        Channels are averaged before resampling. The input is not modified.

        Raises:
            UnsupportedAudioError: On empty input or invalid rates
        """
        target_sr = int(self.target_sr if target_sr is None else target_sr)
        self._validate(buffer, target_sr)

        mono = buffer.samples.mean(axis=0) if buffer.n_channels > 1 else buffer.samples[0].copy()

        if buffer.sample_rate == target_sr:
            resampled = mono
        else:
            resampled = librosa.resample(
                mono,
                orig_sr=buffer.sample_rate,
                target_sr=target_sr,
                res_type=self.res_type,
                fix=True,
            )

        expected = self.output_length(buffer, target_sr)
        if len(resampled) != expected:
            resampled = librosa.util.fix_length(resampled, size=expected)

        logger.debug(
            "Normalized %d ch @ %d Hz -> 1 ch @ %d Hz (%d samples)",
            buffer.n_channels, buffer.sample_rate, target_sr, expected,
        )
        return AudioBuffer(samples=resampled.astype(np.float32), sample_rate=target_sr)

    @staticmethod
    def output_length(buffer: AudioBuffer, target_sr: int) -> int:
        """Number of samples the normalized buffer holds."""
        return -(-buffer.n_samples * target_sr // int(buffer.sample_rate))

    def _validate(self, buffer: AudioBuffer, target_sr: int) -> None:
        if target_sr <= 0:
            raise UnsupportedAudioError(f"Target sample rate must be positive, got {target_sr}")
        if buffer.sample_rate <= 0:
            raise UnsupportedAudioError(f"Sample rate must be positive, got {buffer.sample_rate}")
        if buffer.n_channels == 0:
            raise UnsupportedAudioError("Audio has no channels")
        if buffer.n_samples == 0:
            raise UnsupportedAudioError("Audio is empty")
        if not np.all(np.isfinite(buffer.samples)):
            raise UnsupportedAudioError("Audio contains non-finite samples")
