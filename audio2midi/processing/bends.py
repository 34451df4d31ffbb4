"""Pitch bend extraction from contour activations."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from scipy.signal.windows import gaussian

from ..core import DecodingError, FrameMatrices, PitchBend, RawNote
from ..core.constants import CONTOURS_BINS_PER_SEMITONE, FRAME_HOP_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class BendConfig:
    """Configuration for pitch bend extraction.

    Attributes:
        bins_per_semitone: Contour sub-bins per pitch bin (default: 3)
        n_bins_tolerance: Search radius around the nominal pitch, in sub-bins (default: 25)
        gaussian_std: Width of the weighting toward the nominal pitch, in sub-bins (default: 5.0)
        frame_hop_seconds: Duration of one frame (default: 256 / 22050)
        zero_tolerance: Curves whose deviations all stay within this are dropped (default: 1e-6)
    """

    bins_per_semitone: int = CONTOURS_BINS_PER_SEMITONE
    n_bins_tolerance: int = 25
    gaussian_std: float = 5.0
    frame_hop_seconds: float = FRAME_HOP_SECONDS
    zero_tolerance: float = 1e-6


class PitchBendExtractor:
    """Derive per-frame pitch deviations for decoded notes."""

    def __init__(self, config: Optional[BendConfig] = None):
        self.config = config or BendConfig()
        window_length = 2 * self.config.n_bins_tolerance + 1
        self._window = gaussian(window_length, std=self.config.gaussian_std)

    def attach_bends(
        self,
        note: RawNote,
        contours,
        frame_hop_seconds: Optional[float] = None,
    ) -> List[PitchBend]:
        """
        Compute the bend curve of one note.

        For every frame of the note the strongest contour sub-bin near the
        note's nominal pitch is located, weighted toward the nominal pitch.
        Its offset, divided by the sub-bins per semitone, is the deviation.

        Args:
            note: Decoded note
            contours: Contour activations, shape (n_frames, n_contour_bins)
            frame_hop_seconds: Overrides the configured frame duration

        Returns:
            (time offset in seconds, semitone deviation) per frame, or an
            empty list when the note does not bend.

        Raises:
            DecodingError: If the note lies outside the contour matrix
        """
        contours = np.asarray(contours)
        hop = frame_hop_seconds if frame_hop_seconds is not None else self.config.frame_hop_seconds
        bps = self.config.bins_per_semitone
        tolerance = self.config.n_bins_tolerance

        if contours.ndim != 2:
            raise DecodingError(f"contours must be 2-D, got shape {contours.shape}")
        n_frames, n_contour_bins = contours.shape
        if note.n_frames <= 0 or note.start_frame < 0 or note.end_frame > n_frames:
            raise DecodingError(
                f"Note frames [{note.start_frame}, {note.end_frame}) outside contour range [0, {n_frames})"
            )

        center = note.pitch_bin * bps
        if not 0 <= center < n_contour_bins:
            raise DecodingError(
                f"Pitch bin {note.pitch_bin} outside contour range of {n_contour_bins} sub-bins"
            )

        low = max(center - tolerance, 0)
        high = min(n_contour_bins, center + tolerance + 1)
        window = self._window[low - (center - tolerance): high - (center - tolerance)]

        submatrix = contours[note.start_frame:note.end_frame, low:high] * window
        offsets = np.argmax(submatrix, axis=1) + low - center
        # Frames without any contour activity carry no pitch information
        offsets[submatrix.max(axis=1) <= 0] = 0

        deviations = offsets / bps
        if np.all(np.abs(deviations) <= self.config.zero_tolerance):
            return []

        return [(k * hop, float(d)) for k, d in enumerate(deviations)]

    def extract(self, notes: Sequence[RawNote], matrices: FrameMatrices) -> List[List[PitchBend]]:
        """Bend curves for each note, in the order given."""
        if matrices.bins_per_semitone != self.config.bins_per_semitone:
            raise DecodingError(
                f"Contours have {matrices.bins_per_semitone} sub-bins per semitone, "
                f"extractor expects {self.config.bins_per_semitone}"
            )

        curves = [
            self.attach_bends(note, matrices.contours, matrices.frame_hop_seconds)
            for note in notes
        ]
        logger.debug("%d of %d notes carry pitch bends", sum(1 for c in curves if c), len(curves))
        return curves
