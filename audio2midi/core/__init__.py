"""Core types and constants for audio2midi."""

from .note import RawNote, NoteEvent, PitchBend
from .frames import FrameMatrices
from .errors import (
    TranscriptionError,
    UnsupportedAudioError,
    InferenceError,
    DecodingError,
    SerializationError,
    ConversionCancelled,
)
from .constants import (
    PITCH_NAMES,
    AUDIO_SAMPLE_RATE,
    FFT_HOP,
    FRAME_HOP_SECONDS,
    MIDI_OFFSET,
    DEFAULT_TEMPO,
)

__all__ = [
    "RawNote",
    "NoteEvent",
    "PitchBend",
    "FrameMatrices",
    "TranscriptionError",
    "UnsupportedAudioError",
    "InferenceError",
    "DecodingError",
    "SerializationError",
    "ConversionCancelled",
    "PITCH_NAMES",
    "AUDIO_SAMPLE_RATE",
    "FFT_HOP",
    "FRAME_HOP_SECONDS",
    "MIDI_OFFSET",
    "DEFAULT_TEMPO",
]
