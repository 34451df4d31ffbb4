"""Note data classes - the units produced by decoding."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .constants import MIDI_MAX, MIDI_MIN, PITCH_NAMES
from .errors import DecodingError

# (time offset from note start in seconds, deviation in semitones)
PitchBend = Tuple[float, float]


@dataclass(frozen=True)
class RawNote:
    """A note in frame units, as emitted by the decoder."""

    pitch_bin: int
    start_frame: int
    end_frame: int  # exclusive
    velocity: float  # onset strength (0-1)

    @property
    def n_frames(self) -> int:
        return self.end_frame - self.start_frame


@dataclass
class NoteEvent:
    """A time-stamped MIDI note with an optional pitch bend curve."""

    start_time: float  # seconds
    end_time: float  # seconds
    pitch: int  # MIDI pitch (0-127)
    velocity: float = 0.8  # 0-1
    pitch_bends: List[PitchBend] = field(default_factory=list)

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise DecodingError(
                f"Note end {self.end_time:.4f}s is not after start {self.start_time:.4f}s"
            )
        if not MIDI_MIN <= self.pitch <= MIDI_MAX:
            raise DecodingError(f"Pitch {self.pitch} outside MIDI range")

    @property
    def duration(self) -> float:
        """Note duration in seconds."""
        return self.end_time - self.start_time

    @property
    def pitch_name(self) -> str:
        """Get note name (e.g., 'C4', 'A#3')."""
        octave = (self.pitch // 12) - 1
        return f"{PITCH_NAMES[self.pitch % 12]}{octave}"

    @property
    def midi_velocity(self) -> int:
        """Velocity scaled to MIDI range, never 0 (which reads as note-off)."""
        return int(min(127, max(1, round(self.velocity * 127))))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "pitch": self.pitch,
            "pitch_name": self.pitch_name,
            "velocity": self.velocity,
            "pitch_bends": [list(b) for b in self.pitch_bends],
        }
