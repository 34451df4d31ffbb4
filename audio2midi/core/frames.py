"""Frame matrices produced by a pitch estimator."""

from dataclasses import dataclass

import numpy as np

from .constants import CONTOURS_BINS_PER_SEMITONE, FRAME_HOP_SECONDS
from .errors import DecodingError


def as_frame_matrix(values, name: str = "matrix") -> np.ndarray:
    """Return a read-only float copy of a (n_frames, n_bins) activation grid."""
    matrix = np.array(values, dtype=np.float64)
    if matrix.ndim != 2:
        raise DecodingError(f"{name} must be 2-D (frames x bins), got shape {matrix.shape}")
    if not np.all(np.isfinite(matrix)):
        raise DecodingError(f"{name} contains non-finite values")
    matrix.setflags(write=False)
    return matrix


@dataclass(frozen=True)
class FrameMatrices:
    """Aligned frame, onset and contour activations for one recording.

    Attributes:
        frames: Note activity, shape (n_frames, n_pitch_bins)
        onsets: Onset activity, shape (n_frames, n_pitch_bins)
        contours: Fine pitch activity, shape
            (n_frames, n_pitch_bins * bins_per_semitone)
        frame_hop_seconds: Duration of one frame
        bins_per_semitone: Contour sub-bins per pitch bin
    """

    frames: np.ndarray
    onsets: np.ndarray
    contours: np.ndarray
    frame_hop_seconds: float = FRAME_HOP_SECONDS
    bins_per_semitone: int = CONTOURS_BINS_PER_SEMITONE

    def __post_init__(self):
        frames = as_frame_matrix(self.frames, "frames")
        onsets = as_frame_matrix(self.onsets, "onsets")
        contours = as_frame_matrix(self.contours, "contours")

        if frames.shape != onsets.shape:
            raise DecodingError(
                f"frames {frames.shape} and onsets {onsets.shape} differ in shape"
            )
        if contours.shape[0] != frames.shape[0]:
            raise DecodingError(
                f"contours have {contours.shape[0]} frames, expected {frames.shape[0]}"
            )
        if contours.shape[1] != frames.shape[1] * self.bins_per_semitone:
            raise DecodingError(
                f"contours have {contours.shape[1]} bins, expected "
                f"{frames.shape[1]} x {self.bins_per_semitone}"
            )

        object.__setattr__(self, "frames", frames)
        object.__setattr__(self, "onsets", onsets)
        object.__setattr__(self, "contours", contours)

    @property
    def n_frames(self) -> int:
        return self.frames.shape[0]

    @property
    def n_pitch_bins(self) -> int:
        return self.frames.shape[1]

    @property
    def duration(self) -> float:
        """Covered time span in seconds."""
        return self.n_frames * self.frame_hop_seconds
