"""Frame to time conversion for decoded notes."""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..core import NoteEvent, PitchBend, RawNote
from ..core.constants import FRAME_HOP_SECONDS, MIDI_MAX, MIDI_MIN, MIDI_OFFSET

logger = logging.getLogger(__name__)


def frames_to_seconds(frames, frame_hop_seconds: float = FRAME_HOP_SECONDS):
    """Convert frame indices to seconds."""
    return np.asarray(frames, dtype=np.float64) * frame_hop_seconds


def notes_to_events(
    notes: Sequence[RawNote],
    bends: Optional[Sequence[List[PitchBend]]] = None,
    frame_hop_seconds: float = FRAME_HOP_SECONDS,
    midi_offset: int = MIDI_OFFSET,
) -> List[NoteEvent]:
    """
    Convert frame-based notes into time-based NoteEvents.

    Args:
        notes: Decoded notes
        bends: Bend curve per note (same order), or None for no bends
        frame_hop_seconds: Duration of one frame
        midi_offset: MIDI pitch of pitch bin 0

    Returns:
        NoteEvents sorted by (start_time, pitch)
    """
    if bends is None:
        bends = [[] for _ in notes]
    if len(bends) != len(notes):
        raise ValueError(f"Got {len(bends)} bend curves for {len(notes)} notes")

    events = []
    for note, curve in zip(notes, bends):
        pitch = note.pitch_bin + midi_offset
        if not MIDI_MIN <= pitch <= MIDI_MAX:
            logger.warning("Dropping note at bin %d: pitch %d outside MIDI range", note.pitch_bin, pitch)
            continue

        start, end = frames_to_seconds([note.start_frame, note.end_frame], frame_hop_seconds)
        events.append(
            NoteEvent(
                start_time=float(start),
                end_time=float(end),
                pitch=pitch,
                velocity=note.velocity,
                pitch_bends=list(curve),
            )
        )

    events.sort(key=lambda e: (e.start_time, e.pitch))
    return events
