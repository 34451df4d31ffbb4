"""Transcription layer - frame matrix estimators.

Estimators turn normalized audio into frame, onset and contour activations:
- CQT-based estimator (deterministic, no model weights)
- Basic Pitch neural estimator (optional ``basic-pitch`` package)
"""

from .base import FrameMatrixSource, ProgressCallback
from .cqt import CQTFrameSource
from .neural import BasicPitchSource

__all__ = [
    "FrameMatrixSource",
    "ProgressCallback",
    "CQTFrameSource",
    "BasicPitchSource",
]
