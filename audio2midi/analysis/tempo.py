"""Tempo estimation for the MIDI tempo hint."""

import logging

import librosa
import numpy as np

from ..core.constants import DEFAULT_TEMPO
from ..input import AudioBuffer

logger = logging.getLogger(__name__)


class TempoAnalyzer:
    """Detect tempo from audio."""

    def __init__(self, hop_length: int = 512, default_tempo: float = DEFAULT_TEMPO):
        self.hop_length = hop_length
        self.default_tempo = default_tempo

    def detect(self, buffer: AudioBuffer) -> float:
        """
        Estimate the tempo of mono audio.

        Some signals (e.g., a single sustained tone) do not produce reliable
        beat tracking and yield a tempo of 0; the default tempo is used then.

        Returns:
            Tempo in BPM
        """
        tempo, _ = librosa.beat.beat_track(
            y=buffer.mono,
            sr=buffer.sample_rate,
            hop_length=self.hop_length,
        )

        # Handle tempo as array (newer librosa versions)
        if isinstance(tempo, np.ndarray):
            tempo = float(tempo.ravel()[0]) if tempo.size > 0 else 0.0

        if not np.isfinite(tempo) or tempo <= 0:
            logger.info("Tempo detection failed; using %.1f BPM", self.default_tempo)
            return self.default_tempo

        return float(tempo)
