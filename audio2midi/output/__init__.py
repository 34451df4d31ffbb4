"""Output layer - Export to MIDI.

This layer encodes decoded notes, with their pitch bends, as a
single-track Standard MIDI File.
"""

from .midi import MIDIExporter

__all__ = [
    "MIDIExporter",
]
