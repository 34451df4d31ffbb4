"""Error types raised by the conversion pipeline."""


class TranscriptionError(Exception):
    """Base class for all conversion failures."""


class UnsupportedAudioError(TranscriptionError):
    """Input audio is empty, malformed or in an unsupported format."""


class InferenceError(TranscriptionError):
    """The frame matrix estimator failed."""


class DecodingError(TranscriptionError):
    """Frame matrices or notes broke the contract between stages."""


class SerializationError(TranscriptionError):
    """Notes could not be encoded into a MIDI file."""


class ConversionCancelled(TranscriptionError):
    """A run was superseded by a reset or a newer run."""
