"""Tests for polyphonic note decoding."""

import numpy as np
import pytest

from audio2midi.core import DecodingError, FrameMatrices, RawNote
from audio2midi.processing import DecoderConfig, NoteDecoder, find_onset_frames, infer_onsets


def empty_matrices(n_frames: int = 40, n_bins: int = 12):
    return np.zeros((n_frames, n_bins)), np.zeros((n_frames, n_bins))


def add_note(frames, onsets, pitch_bin, start, end, onset=0.9, level=0.8):
    """Write an onset at ``start`` and frame activity over [start, end)."""
    onsets[start, pitch_bin] = onset
    frames[start:end, pitch_bin] = level


def spans(notes):
    return [(n.pitch_bin, n.start_frame, n.end_frame) for n in notes]


def smooth_random_matrices(seed: int, n_frames: int = 300, n_bins: int = 16):
    """Random activations with some temporal continuity."""
    rng = np.random.default_rng(seed)
    frames = rng.random((n_frames, n_bins))
    kernel = np.ones(4) / 4
    frames = np.apply_along_axis(lambda c: np.convolve(c, kernel, mode="same"), 0, frames)
    onsets = rng.random((n_frames, n_bins)) ** 3
    return frames, onsets


class TestFindOnsetFrames:
    """Tests for onset peak picking."""

    def test_peak_above_threshold(self):
        """A local maximum above threshold is an onset."""
        activations = np.array([0.0, 0.1, 0.9, 0.2, 0.0])
        assert list(find_onset_frames(activations, 0.25)) == [2]

    def test_below_threshold_ignored(self):
        """Peaks under the threshold are not onsets."""
        activations = np.array([0.0, 0.2, 0.0])
        assert len(find_onset_frames(activations, 0.25)) == 0

    def test_smeared_transient_yields_single_onset(self):
        """Only the peak of a spread-out transient counts."""
        activations = np.array([0.0, 0.3, 0.8, 0.5, 0.3, 0.0])
        assert list(find_onset_frames(activations, 0.25)) == [2]

    def test_plateau_yields_earliest_frame(self):
        """A flat run of equal values gives one onset at its start."""
        activations = np.array([0.0, 0.7, 0.7, 0.7, 0.0])
        assert list(find_onset_frames(activations, 0.25)) == [1]

    def test_edges_can_be_onsets(self):
        """First and last frames count as peaks when higher than their one neighbour."""
        activations = np.array([0.9, 0.1, 0.0, 0.2, 0.6])
        assert list(find_onset_frames(activations, 0.25)) == [0, 4]


class TestNoteDecoder:
    """Tests for NoteDecoder."""

    def test_single_note_scenario(self):
        """One onset with eight active frames gives one note at that bin."""
        frames, onsets = empty_matrices(n_frames=15, n_bins=8)
        onsets[2, 5] = 0.9
        frames[2:10, 5] = 0.8

        notes = NoteDecoder().decode(frames, onsets, 0.25, 0.25, 5)

        assert len(notes) == 1
        note = notes[0]
        assert (note.pitch_bin, note.start_frame, note.end_frame) == (5, 2, 10)
        assert note.velocity == pytest.approx(0.9)

    def test_silence_yields_no_notes(self):
        """All-zero activations decode to nothing."""
        frames, onsets = empty_matrices()
        assert NoteDecoder().decode(frames, onsets) == []

    def test_short_notes_discarded(self):
        """Notes shorter than min_note_frames are dropped."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 3, 5, 9)  # 4 frames

        assert NoteDecoder(min_note_frames=5).decode(frames, onsets) == []
        assert len(NoteDecoder(min_note_frames=4).decode(frames, onsets)) == 1

    def test_note_stops_at_first_inactive_frame(self):
        """A dip below the frame threshold ends the note."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 3, 5, 15)
        frames[11, 3] = 0.1

        notes = NoteDecoder().decode(frames, onsets)

        assert [(n.start_frame, n.end_frame) for n in notes] == [(5, 11)]

    def test_onset_without_frame_activity(self):
        """An onset needs frame activity to become a note."""
        frames, onsets = empty_matrices()
        onsets[5, 3] = 0.9

        assert NoteDecoder().decode(frames, onsets) == []

    def test_repeated_onset_splits_note(self):
        """A second onset in a sustained bin starts a new note."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 4, 2, 20)
        onsets[10, 4] = 0.7

        notes = NoteDecoder().decode(frames, onsets)

        assert [(n.start_frame, n.end_frame) for n in notes] == [(2, 10), (10, 20)]
        assert notes[1].velocity == pytest.approx(0.7)

    def test_discarded_later_note_does_not_truncate(self):
        """A too-short later note leaves the earlier note whole."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 4, 2, 10)
        onsets[8, 4] = 0.6  # would only last 2 frames

        notes = NoteDecoder().decode(frames, onsets)

        assert [(n.start_frame, n.end_frame) for n in notes] == [(2, 10)]

    def test_polyphonic_overlap_allowed(self):
        """Different bins decode independently and may overlap."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 3, 5, 20)
        add_note(frames, onsets, 7, 8, 25)
        add_note(frames, onsets, 10, 5, 12)

        notes = NoteDecoder().decode(frames, onsets)

        assert [(n.start_frame, n.pitch_bin) for n in notes] == [(5, 3), (5, 10), (8, 7)]

    def test_velocity_clipped(self):
        """Onset strengths above 1 give velocity 1."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 2, 0, 10, onset=1.4)

        notes = NoteDecoder().decode(frames, onsets)

        assert notes[0].velocity == 1.0

    def test_energy_tolerance_bridges_gaps(self):
        """Short dips are bridged when energy_tolerance allows it."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 1, 2, 12)
        frames[6, 1] = 0.0

        strict = NoteDecoder(config=DecoderConfig(min_note_frames=3)).decode(frames, onsets)
        tolerant = NoteDecoder(config=DecoderConfig(min_note_frames=3, energy_tolerance=1)).decode(frames, onsets)

        assert [(n.start_frame, n.end_frame) for n in strict] == [(2, 6)]
        assert [(n.start_frame, n.end_frame) for n in tolerant] == [(2, 12)]

    def test_trailing_tolerance_frames_trimmed(self):
        """Bridged frames after the last active frame are not part of the note."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 1, 2, 12)

        notes = NoteDecoder(config=DecoderConfig(energy_tolerance=5)).decode(frames, onsets)

        assert [(n.start_frame, n.end_frame) for n in notes] == [(2, 12)]

    def test_pitch_bin_range(self):
        """Bins outside min_pitch_bin..max_pitch_bin are ignored."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 1, 2, 12)
        add_note(frames, onsets, 5, 2, 12)
        add_note(frames, onsets, 9, 2, 12)

        config = DecoderConfig(min_pitch_bin=2, max_pitch_bin=8)
        notes = NoteDecoder(config=config).decode(frames, onsets)

        assert [n.pitch_bin for n in notes] == [5]

    def test_inferred_onsets(self):
        """Rising frame energy stands in for a missing onset when enabled."""
        frames, onsets = empty_matrices()
        frames[5:15, 3] = 0.5
        onsets[30, 0] = 1.0  # sets the onset scale, no frame activity

        plain = NoteDecoder().decode(frames, onsets)
        inferred = NoteDecoder(config=DecoderConfig(infer_onsets=True)).decode(frames, onsets)

        assert plain == []
        assert inferred == [RawNote(3, 5, 15, 1.0)]

    def test_decode_matrices(self):
        """decode_matrices reads frames and onsets from the bundle."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 2, 3, 13)
        matrices = FrameMatrices(frames=frames, onsets=onsets, contours=np.zeros((40, 36)))

        assert NoteDecoder().decode_matrices(matrices) == [RawNote(2, 3, 13, 0.9)]

    def test_inputs_not_mutated(self):
        """Decoding leaves the caller's arrays untouched."""
        frames, onsets = smooth_random_matrices(3)
        frames_copy, onsets_copy = frames.copy(), onsets.copy()

        NoteDecoder(config=DecoderConfig(infer_onsets=True, melodia_trick=True)).decode(frames, onsets)

        assert np.array_equal(frames, frames_copy)
        assert np.array_equal(onsets, onsets_copy)

    def test_deterministic(self):
        """The same input always decodes to the same notes."""
        frames, onsets = smooth_random_matrices(5)
        decoder = NoteDecoder()
        assert decoder.decode(frames, onsets) == decoder.decode(frames, onsets)


class TestMelodiaTrick:
    """Notes recovered from frame energy that has no onset."""

    def melodia(self, **kwargs):
        return NoteDecoder(config=DecoderConfig(melodia_trick=True, **kwargs))

    def test_frame_only_block_needs_option(self):
        """Frame energy without an onset becomes a note only when enabled."""
        frames, onsets = empty_matrices()
        frames[5:15, 3] = 0.8

        assert NoteDecoder().decode(frames, onsets) == []

        notes = self.melodia().decode(frames, onsets)
        assert spans(notes) == [(3, 5, 15)]
        assert notes[0].velocity == pytest.approx(0.8)

    def test_extends_both_ways_from_strongest_frame(self):
        """The note grows backward and forward from its peak; velocity is the mean energy."""
        frames, onsets = empty_matrices()
        frames[5:15, 3] = 0.5
        frames[10, 3] = 0.9

        notes = self.melodia().decode(frames, onsets)

        assert spans(notes) == [(3, 5, 15)]
        assert notes[0].velocity == pytest.approx(0.54)

    def test_onset_notes_are_not_duplicated(self):
        """Energy already used by onset notes is not recovered again."""
        frames, onsets = empty_matrices()
        add_note(frames, onsets, 3, 2, 10)
        frames[15:25, 3] = 0.7

        notes = self.melodia().decode(frames, onsets)

        assert spans(notes) == [(3, 2, 10), (3, 15, 25)]

    def test_neighbouring_bins_suppressed(self):
        """Energy leaking into adjacent bins does not become a second note."""
        frames, onsets = empty_matrices()
        frames[5:15, 3] = 0.8
        frames[5:15, 4] = 0.6

        assert spans(self.melodia().decode(frames, onsets)) == [(3, 5, 15)]

    def test_short_blocks_discarded(self):
        """Recovered notes obey min_note_frames."""
        frames, onsets = empty_matrices()
        frames[5:8, 3] = 0.8

        assert self.melodia().decode(frames, onsets) == []

    def test_energy_tolerance_bridges_gaps(self):
        """Recovery bridges dips of up to energy_tolerance frames."""
        frames, onsets = empty_matrices()
        frames[5:15, 3] = 0.8
        frames[9, 3] = 0.0

        assert spans(self.melodia(energy_tolerance=1).decode(frames, onsets)) == [(3, 5, 15)]
        assert spans(self.melodia().decode(frames, onsets)) == [(3, 10, 15)]

    def test_pitch_bin_range_respected(self):
        """Recovery ignores bins outside the decoded range."""
        frames, onsets = empty_matrices()
        frames[5:15, 1] = 0.8

        assert self.melodia(min_pitch_bin=2).decode(frames, onsets) == []

    @pytest.mark.parametrize("seed", range(3))
    def test_same_bin_notes_never_overlap(self, seed):
        """Recovered and onset notes of a bin never share frames."""
        frames, onsets = smooth_random_matrices(seed)
        notes = self.melodia(frame_threshold=0.5).decode(frames, onsets)

        by_bin = {}
        for note in notes:
            by_bin.setdefault(note.pitch_bin, []).append(note)
        for group in by_bin.values():
            group.sort(key=lambda n: n.start_frame)
            for earlier, later in zip(group, group[1:]):
                assert earlier.end_frame <= later.start_frame


class TestDecoderErrors:
    """Malformed input and configuration."""

    def test_shape_mismatch(self):
        """Frames and onsets must have the same shape."""
        with pytest.raises(DecodingError, match="differ in shape"):
            NoteDecoder().decode(np.zeros((10, 5)), np.zeros((10, 6)))

    def test_one_dimensional_input(self):
        """Matrices must be 2-D."""
        with pytest.raises(DecodingError, match="2-D"):
            NoteDecoder().decode(np.zeros(10), np.zeros(10))

    def test_nan_input(self):
        """NaN activations are rejected."""
        frames = np.zeros((10, 5))
        frames[3, 2] = np.nan
        with pytest.raises(DecodingError, match="non-finite"):
            NoteDecoder().decode(frames, np.zeros((10, 5)))

    @pytest.mark.parametrize(
        "kwargs",
        [{"min_note_frames": 0}, {"onset_threshold": 1.5}, {"frame_threshold": -0.1}],
    )
    def test_invalid_config(self, kwargs):
        """Out-of-range settings raise ValueError at construction."""
        with pytest.raises(ValueError):
            NoteDecoder(**kwargs)

    def test_invalid_override(self):
        """Per-call overrides are validated too."""
        frames, onsets = empty_matrices()
        with pytest.raises(ValueError):
            NoteDecoder().decode(frames, onsets, min_note_frames=0)


class TestDecoderProperties:
    """Invariants over random activations."""

    @pytest.mark.parametrize("seed", range(5))
    def test_same_bin_notes_never_overlap(self, seed):
        """Notes in one bin never share a frame."""
        frames, onsets = smooth_random_matrices(seed)
        notes = NoteDecoder(min_note_frames=2).decode(frames, onsets)

        by_bin = {}
        for note in notes:
            by_bin.setdefault(note.pitch_bin, []).append(note)
        for group in by_bin.values():
            group.sort(key=lambda n: n.start_frame)
            for earlier, later in zip(group, group[1:]):
                assert earlier.end_frame <= later.start_frame

    @pytest.mark.parametrize("seed", range(5))
    @pytest.mark.parametrize("min_note_frames", [1, 3, 5])
    def test_minimum_length_respected(self, seed, min_note_frames):
        """Every note lasts at least min_note_frames."""
        frames, onsets = smooth_random_matrices(seed)
        notes = NoteDecoder(min_note_frames=min_note_frames).decode(frames, onsets)
        assert all(n.end_frame - n.start_frame >= min_note_frames for n in notes)

    @pytest.mark.parametrize("seed", range(5))
    @pytest.mark.parametrize("min_note_frames", [1, 3, 5])
    def test_higher_onset_threshold_never_adds_notes(self, seed, min_note_frames):
        """Note count is non-increasing in the onset threshold."""
        frames, onsets = smooth_random_matrices(seed)
        decoder = NoteDecoder(frame_threshold=0.4, min_note_frames=min_note_frames)

        counts = [
            len(decoder.decode(frames, onsets, onset_threshold=threshold))
            for threshold in np.linspace(0.0, 1.0, 21)
        ]

        assert all(a >= b for a, b in zip(counts, counts[1:]))

    @pytest.mark.parametrize("seed", range(3))
    def test_output_sorted(self, seed):
        """Notes come out ordered by start frame, then bin."""
        frames, onsets = smooth_random_matrices(seed)
        notes = NoteDecoder().decode(frames, onsets)
        keys = [(n.start_frame, n.pitch_bin) for n in notes]
        assert keys == sorted(keys)


class TestInferOnsets:
    """Tests for onset inference from frame activations."""

    def test_rising_edge_becomes_onset(self):
        """A step up in frame energy becomes an onset scaled to the onset peak."""
        frames = np.zeros((10, 2))
        frames[4:, 1] = 0.5
        onsets = np.zeros((10, 2))
        onsets[0, 0] = 0.8

        combined = infer_onsets(frames, onsets)

        assert combined[4, 1] == pytest.approx(0.8)
        assert combined[5, 1] == 0.0
        assert combined[0, 0] == pytest.approx(0.8)

    def test_first_frames_not_inferred(self):
        """Energy present from the very start does not create onsets."""
        frames = np.ones((10, 1))
        onsets = np.full((10, 1), 0.5)
        combined = infer_onsets(frames, onsets)
        np.testing.assert_allclose(combined, 0.5)
