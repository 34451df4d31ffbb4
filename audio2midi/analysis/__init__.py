"""Analysis layer - signal-level estimates used as hints."""

from .tempo import TempoAnalyzer

__all__ = [
    "TempoAnalyzer",
]
