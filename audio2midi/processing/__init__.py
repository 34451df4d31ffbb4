"""Processing layer - activations to notes.

This layer converts estimator output into note events:
- Polyphonic note decoding (onsets, sustain, minimum length)
- Pitch bend extraction from contour activations
- Frame to time conversion
"""

from .decoder import NoteDecoder, DecoderConfig, find_onset_frames, infer_onsets
from .bends import PitchBendExtractor, BendConfig
from .timing import notes_to_events, frames_to_seconds

__all__ = [
    "NoteDecoder",
    "DecoderConfig",
    "find_onset_frames",
    "infer_onsets",
    "PitchBendExtractor",
    "BendConfig",
    "notes_to_events",
    "frames_to_seconds",
]
