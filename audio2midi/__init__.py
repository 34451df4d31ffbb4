"""audio2midi - Audio to MIDI transcription.

Architecture Layers:
    1. core/          - Note types, frame matrices, constants and errors
    2. input/         - Audio decoding, mixdown and resampling
    3. analysis/      - Signal-level hints (tempo)
    4. transcription/ - Frame matrix estimators (CQT, Basic Pitch)
    5. processing/    - Note decoding, pitch bends, frame to time conversion
    6. output/        - MIDI export
    7. pipeline       - Staged conversion with progress and cancellation
"""

__version__ = "0.1.0"

# Core types
from .core import (
    RawNote,
    NoteEvent,
    FrameMatrices,
    TranscriptionError,
    UnsupportedAudioError,
    InferenceError,
    DecodingError,
    SerializationError,
    ConversionCancelled,
)

# Input layer
from .input import AudioBuffer, AudioLoader, AudioNormalizer

# Analysis layer
from .analysis import TempoAnalyzer

# Transcription layer
from .transcription import FrameMatrixSource, CQTFrameSource, BasicPitchSource

# Processing layer
from .processing import (
    NoteDecoder,
    DecoderConfig,
    PitchBendExtractor,
    BendConfig,
    notes_to_events,
)

# Output layer
from .output import MIDIExporter

# Pipeline
from .pipeline import (
    PipelineOrchestrator,
    PipelineConfig,
    ConversionState,
    ConversionResult,
    Stage,
)

__all__ = [
    # Core
    "RawNote",
    "NoteEvent",
    "FrameMatrices",
    "TranscriptionError",
    "UnsupportedAudioError",
    "InferenceError",
    "DecodingError",
    "SerializationError",
    "ConversionCancelled",
    # Input
    "AudioBuffer",
    "AudioLoader",
    "AudioNormalizer",
    # Analysis
    "TempoAnalyzer",
    # Transcription
    "FrameMatrixSource",
    "CQTFrameSource",
    "BasicPitchSource",
    # Processing
    "NoteDecoder",
    "DecoderConfig",
    "PitchBendExtractor",
    "BendConfig",
    "notes_to_events",
    # Output
    "MIDIExporter",
    # Pipeline
    "PipelineOrchestrator",
    "PipelineConfig",
    "ConversionState",
    "ConversionResult",
    "Stage",
]
