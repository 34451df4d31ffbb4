"""Polyphonic note decoding from frame and onset activations.

Each pitch bin is decoded independently:
- Onsets are thresholded local peaks of the onset activations
- A note runs from its onset while frame activations stay above threshold
- Notes shorter than a minimum number of frames are dropped
- Velocity is the onset strength at the initiating frame
- Optionally, notes are recovered from frame energy no onset accounts for
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional

import numpy as np

from ..core import DecodingError, FrameMatrices, RawNote
from ..core.constants import (
    DEFAULT_FRAME_THRESHOLD,
    DEFAULT_MIN_NOTE_FRAMES,
    DEFAULT_ONSET_THRESHOLD,
)
from ..core.frames import as_frame_matrix

logger = logging.getLogger(__name__)


@dataclass
class DecoderConfig:
    """Configuration for note decoding.

    Attributes:
        onset_threshold: Minimum onset activation to start a note (default: 0.25)
        frame_threshold: Minimum frame activation to sustain a note (default: 0.25)
        min_note_frames: Shortest note kept, in frames (default: 5)
        energy_tolerance: Sub-threshold frames bridged inside a note (default: 0)
        infer_onsets: Add onsets where frame activations rise sharply (default: False)
        melodia_trick: Recover notes from leftover frame energy without an onset (default: False)
        min_pitch_bin: Lowest bin decoded, None for no limit (default: None)
        max_pitch_bin: Highest bin decoded, None for no limit (default: None)
    """

    onset_threshold: float = DEFAULT_ONSET_THRESHOLD
    frame_threshold: float = DEFAULT_FRAME_THRESHOLD
    min_note_frames: int = DEFAULT_MIN_NOTE_FRAMES
    energy_tolerance: int = 0
    infer_onsets: bool = False
    melodia_trick: bool = False
    min_pitch_bin: Optional[int] = None
    max_pitch_bin: Optional[int] = None

    def validate(self) -> None:
        """Raise ValueError on out-of-range settings."""
        for name in ("onset_threshold", "frame_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if self.min_note_frames < 1:
            raise ValueError(f"min_note_frames must be at least 1, got {self.min_note_frames}")
        if self.energy_tolerance < 0:
            raise ValueError(f"energy_tolerance must be >= 0, got {self.energy_tolerance}")


def find_onset_frames(activations: np.ndarray, threshold: float) -> np.ndarray:
    """
    Indices of onset peaks in one pitch bin's onset activations.

    A frame is an onset when it exceeds the threshold, is strictly greater
    than the previous frame and not smaller than the next one. A plateau of
    equal values therefore yields a single onset at its first frame.
    """
    previous = np.concatenate(([-np.inf], activations[:-1]))
    following = np.concatenate((activations[1:], [-np.inf]))
    is_onset = (activations > threshold) & (activations > previous) & (activations >= following)
    return np.flatnonzero(is_onset)


def infer_onsets(frames: np.ndarray, onsets: np.ndarray, n_diff: int = 2) -> np.ndarray:
    """
    Combine onset activations with onsets inferred from rising frame energy.

    The rise over 1..n_diff frames (smallest of them) is rescaled to the
    onset matrix's peak and merged with an element-wise maximum.
    """
    diffs = []
    for n in range(1, n_diff + 1):
        padded = np.pad(frames, ((n, 0), (0, 0)), mode="constant")
        diffs.append(padded[n:] - padded[:-n])

    frame_diff = np.min(diffs, axis=0)
    frame_diff[frame_diff < 0] = 0
    frame_diff[:n_diff] = 0

    max_diff = frame_diff.max() if frame_diff.size else 0.0
    if max_diff > 0:
        frame_diff = frame_diff * (onsets.max() / max_diff)

    return np.maximum(onsets, frame_diff)


class NoteDecoder:
    """Turn frame/onset activation matrices into discrete notes."""

    def __init__(
        self,
        onset_threshold: float = DEFAULT_ONSET_THRESHOLD,
        frame_threshold: float = DEFAULT_FRAME_THRESHOLD,
        min_note_frames: int = DEFAULT_MIN_NOTE_FRAMES,
        config: Optional[DecoderConfig] = None,
    ):
        """Initialize NoteDecoder.

        Args:
            onset_threshold: Minimum onset activation to start a note
            frame_threshold: Minimum frame activation to sustain a note
            min_note_frames: Shortest note kept, in frames
            config: Optional DecoderConfig for advanced settings
        """
        if config is not None:
            self.config = config
        else:
            self.config = DecoderConfig(
                onset_threshold=onset_threshold,
                frame_threshold=frame_threshold,
                min_note_frames=min_note_frames,
            )
        self.config.validate()

    def decode(
        self,
        frames,
        onsets,
        onset_threshold: Optional[float] = None,
        frame_threshold: Optional[float] = None,
        min_note_frames: Optional[int] = None,
    ) -> List[RawNote]:
        """
        Decode notes from frame and onset activations.

        Args:
            frames: Frame activations, shape (n_frames, n_pitch_bins)
            onsets: Onset activations, same shape as frames
            onset_threshold: Overrides the configured onset threshold
            frame_threshold: Overrides the configured frame threshold
            min_note_frames: Overrides the configured minimum length

        Returns:
            Notes sorted by (start_frame, pitch_bin). Same-bin notes never
            overlap.

        Raises:
            DecodingError: If the matrices are malformed
        """
        try:
            frames = as_frame_matrix(frames, "frames")
            onsets = as_frame_matrix(onsets, "onsets")
            if frames.shape != onsets.shape:
                raise DecodingError(
                    f"frames {frames.shape} and onsets {onsets.shape} differ in shape"
                )
        except DecodingError as e:
            logger.error("Rejected activation matrices: %s", e)
            raise

        overrides = {
            key: value
            for key, value in (
                ("onset_threshold", onset_threshold),
                ("frame_threshold", frame_threshold),
                ("min_note_frames", min_note_frames),
            )
            if value is not None
        }
        config = replace(self.config, **overrides)
        config.validate()

        if config.infer_onsets:
            onsets = infer_onsets(frames, onsets)

        n_bins = frames.shape[1]
        low = max(0, config.min_pitch_bin if config.min_pitch_bin is not None else 0)
        high = min(n_bins - 1, config.max_pitch_bin if config.max_pitch_bin is not None else n_bins - 1)

        notes: List[RawNote] = []
        for pitch_bin in range(low, high + 1):
            notes.extend(
                self._decode_bin(frames[:, pitch_bin], onsets[:, pitch_bin], pitch_bin, config)
            )

        if config.melodia_trick:
            notes.extend(self._recover_frame_notes(frames, notes, low, high, config))

        notes.sort(key=lambda n: (n.start_frame, n.pitch_bin))
        logger.debug("Decoded %d notes from %d frames x %d bins", len(notes), *frames.shape)
        return notes

    def decode_matrices(self, matrices: FrameMatrices) -> List[RawNote]:
        """Decode notes from a FrameMatrices bundle."""
        return self.decode(matrices.frames, matrices.onsets)

    def _decode_bin(
        self,
        frame_column: np.ndarray,
        onset_column: np.ndarray,
        pitch_bin: int,
        config: DecoderConfig,
    ) -> List[RawNote]:
        """Decode one pitch bin. Onsets are resolved latest first."""
        onset_frames = find_onset_frames(onset_column, config.onset_threshold)
        if len(onset_frames) == 0:
            return []

        active = frame_column > config.frame_threshold
        claimed = np.zeros(len(frame_column), dtype=bool)

        notes = []
        for start in onset_frames[::-1]:
            end = self._extend(active, claimed, int(start), config.energy_tolerance)
            if end - start < config.min_note_frames:
                continue

            claimed[start:end] = True
            velocity = float(np.clip(onset_column[start], 0.0, 1.0))
            notes.append(RawNote(pitch_bin, int(start), int(end), velocity))

        notes.reverse()
        return notes

    def _recover_frame_notes(
        self,
        frames: np.ndarray,
        notes: List[RawNote],
        low: int,
        high: int,
        config: DecoderConfig,
    ) -> List[RawNote]:
        """
        Notes carried by frame energy that no onset accounts for.

        The strongest remaining frame activation seeds a note that is
        extended in both directions. Its frames, and the same frames of the
        neighbouring bins, are then removed from the remaining energy. This
        repeats until nothing above the frame threshold is left.
        """
        remaining = frames.copy()
        remaining[:, :low] = 0.0
        remaining[:, high + 1:] = 0.0
        for note in notes:
            self._clear(remaining, note.pitch_bin, note.start_frame, note.end_frame)

        n_frames = remaining.shape[0]
        unclaimed = np.zeros(n_frames, dtype=bool)

        recovered = []
        while remaining.size and remaining.max() > config.frame_threshold:
            peak, pitch_bin = np.unravel_index(np.argmax(remaining), remaining.shape)
            peak, pitch_bin = int(peak), int(pitch_bin)

            active = remaining[:, pitch_bin] > config.frame_threshold
            end = self._extend(active, unclaimed, peak, config.energy_tolerance)
            start = n_frames - self._extend(
                active[::-1], unclaimed, n_frames - 1 - peak, config.energy_tolerance
            )
            self._clear(remaining, pitch_bin, start, end)

            if end - start < config.min_note_frames:
                continue
            velocity = float(np.clip(frames[start:end, pitch_bin].mean(), 0.0, 1.0))
            recovered.append(RawNote(pitch_bin, start, end, velocity))

        logger.debug("Recovered %d notes without onsets", len(recovered))
        return recovered

    @staticmethod
    def _clear(energy: np.ndarray, pitch_bin: int, start: int, end: int) -> None:
        """Zero a note's frames in its bin and both neighbouring bins."""
        energy[start:end, max(pitch_bin - 1, 0):pitch_bin + 2] = 0.0

    @staticmethod
    def _extend(active: np.ndarray, claimed: np.ndarray, start: int, tolerance: int) -> int:
        """Exclusive end frame of a note beginning at ``start``."""
        end = start
        gap = 0
        i = start
        while i < len(active) and not claimed[i]:
            if active[i]:
                gap = 0
                end = i + 1
            else:
                gap += 1
                if gap > tolerance:
                    break
            i += 1
        return end
