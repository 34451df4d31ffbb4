"""CQT-based frame matrix estimation.

Produces activations on the same grid a neural estimator uses (88 semitone
bins from A0, three contour sub-bins per semitone, 256-sample hop at
22050 Hz) straight from a Constant-Q Transform. Less accurate than a trained
model, but deterministic and free of model weights.
"""

import logging
from typing import Optional

import librosa
import numpy as np
from librosa.util.exceptions import ParameterError

from .base import FrameMatrixSource, ProgressCallback
from ..core import FrameMatrices, InferenceError
from ..core.constants import (
    ANNOTATIONS_BASE_FREQUENCY,
    ANNOTATIONS_N_SEMITONES,
    AUDIO_SAMPLE_RATE,
    CONTOURS_BINS_PER_SEMITONE,
    FFT_HOP,
)
from ..input import AudioBuffer

logger = logging.getLogger(__name__)


class CQTFrameSource(FrameMatrixSource):
    """Estimate frame/onset/contour activations from a Constant-Q Transform."""

    def __init__(
        self,
        sample_rate: int = AUDIO_SAMPLE_RATE,
        hop_length: int = FFT_HOP,
        n_semitones: int = ANNOTATIONS_N_SEMITONES,
        bins_per_semitone: int = CONTOURS_BINS_PER_SEMITONE,
        fmin: float = ANNOTATIONS_BASE_FREQUENCY,
        top_db: float = 40.0,
        silence_floor: float = 1e-3,
        onset_gain: float = 4.0,
    ):
        """
        Initialize CQTFrameSource.

        Args:
            sample_rate: Expected input sample rate
            hop_length: Samples between frames
            n_semitones: Number of pitch bins
            bins_per_semitone: Contour sub-bins per pitch bin
            fmin: Frequency of the lowest pitch bin (Hz)
            top_db: Dynamic range mapped onto [0, 1]
            silence_floor: Minimum magnitude reference, keeps silence at 0
            onset_gain: Scale applied to rising frame energy for onsets
        """
        self.sample_rate = sample_rate
        self.hop_length = hop_length
        self.n_semitones = n_semitones
        self.bins_per_semitone = bins_per_semitone
        self.fmin = fmin
        self.top_db = top_db
        self.silence_floor = silence_floor
        self.onset_gain = onset_gain

    def infer(
        self,
        buffer: AudioBuffer,
        progress: Optional[ProgressCallback] = None,
    ) -> FrameMatrices:
        if buffer.sample_rate != self.sample_rate:
            raise InferenceError(
                f"CQT estimator expects {self.sample_rate} Hz audio, got {buffer.sample_rate} Hz"
            )
        if buffer.n_channels != 1:
            raise InferenceError(f"CQT estimator expects mono audio, got {buffer.n_channels} channels")

        self._report(progress, 0.0)

        try:
            contours = self._contours(buffer.mono)
        except (ParameterError, ValueError) as e:
            raise InferenceError(f"CQT analysis failed: {e}") from e
        self._report(progress, 0.6)

        frames = self._frames(contours)
        self._report(progress, 0.8)

        onsets = self._onsets(frames)
        self._report(progress, 1.0)

        logger.debug("CQT activations: %d frames x %d bins", frames.shape[0], frames.shape[1])
        return FrameMatrices(
            frames=frames,
            onsets=onsets,
            contours=contours,
            frame_hop_seconds=self.hop_length / self.sample_rate,
            bins_per_semitone=self.bins_per_semitone,
        )

    def _contours(self, audio: np.ndarray) -> np.ndarray:
        """Sub-semitone activations in [0, 1], shape (n_frames, n_bins)."""
        C = np.abs(librosa.cqt(
            audio,
            sr=self.sample_rate,
            hop_length=self.hop_length,
            fmin=self.fmin,
            n_bins=self.n_semitones * self.bins_per_semitone,
            bins_per_octave=12 * self.bins_per_semitone,
        ))

        ref = max(float(C.max()), self.silence_floor)
        C_db = librosa.amplitude_to_db(C, ref=ref, top_db=None)
        contours = np.clip((C_db + self.top_db) / self.top_db, 0.0, 1.0)
        return contours.T

    def _frames(self, contours: np.ndarray) -> np.ndarray:
        """Semitone activations: peak of the sub-bins around each semitone centre."""
        n_frames = contours.shape[0]
        bps = self.bins_per_semitone
        half = bps // 2

        # Sub-bin group of semitone b is centred on contour bin b * bps
        padded = np.pad(contours, ((0, 0), (half, bps)), mode="constant")
        groups = padded[:, : self.n_semitones * bps].reshape(n_frames, self.n_semitones, bps)
        frames = groups.max(axis=2)

        # Keep spectral peaks only; leakage into neighbouring semitones is dropped
        left = np.pad(frames, ((0, 0), (1, 0)), mode="constant")[:, :-1]
        right = np.pad(frames, ((0, 0), (0, 1)), mode="constant")[:, 1:]
        peaks = (frames >= left) & (frames >= right)
        return np.where(peaks, frames, 0.0)

    def _onsets(self, frames: np.ndarray) -> np.ndarray:
        """Rising energy over one and two frames, whichever is smaller."""
        padded = np.pad(frames, ((2, 0), (0, 0)), mode="constant")
        diff_1 = padded[2:] - padded[1:-1]
        diff_2 = padded[2:] - padded[:-2]
        rise = np.maximum(np.minimum(diff_1, diff_2), 0.0)
        return np.clip(rise * self.onset_gain, 0.0, 1.0)
