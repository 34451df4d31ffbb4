"""MIDI export functionality."""

import io
import logging
import math
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import mido

from ..core import NoteEvent, SerializationError
from ..core.constants import (
    DEFAULT_PITCH_BEND_RANGE,
    DEFAULT_TEMPO,
    DEFAULT_TICKS_PER_BEAT,
    N_PITCH_BEND_TICKS,
)

logger = logging.getLogger(__name__)

# Ordering of events sharing a tick
NOTE_OFF = 0
NOTE_ON = 1
PITCH_BEND = 2

N_MIDI_CHANNELS = 16
DRUM_CHANNEL = 9

TimedMessage = Tuple[int, int, mido.Message]


class MIDIExporter:
    """Encode notes as a single-track Standard MIDI File."""

    def __init__(
        self,
        tempo: float = DEFAULT_TEMPO,
        ticks_per_beat: int = DEFAULT_TICKS_PER_BEAT,
        pitch_bend_range: float = DEFAULT_PITCH_BEND_RANGE,
        instrument_program: int = 0,
        channel: int = 0,
        track_name: str = "Transcription",
    ):
        """
        Initialize MIDIExporter.

        Args:
            tempo: Tempo in BPM
            ticks_per_beat: Time division (ticks per quarter note)
            pitch_bend_range: Semitones reached at full pitch wheel deflection
            instrument_program: MIDI program number (0-127)
            channel: MIDI channel of notes without bends (0-15)
            track_name: Name stored in the track
        """
        self.tempo = tempo
        self.ticks_per_beat = ticks_per_beat
        self.pitch_bend_range = pitch_bend_range
        self.instrument_program = instrument_program
        self.channel = channel
        self.track_name = track_name

    def serialize(self, notes: Sequence[NoteEvent], tempo: Optional[float] = None) -> bytes:
        """
        Encode notes as MIDI file bytes.

        Args:
            notes: Notes to encode
            tempo: Tempo in BPM, overrides the configured tempo

        Returns:
            The complete file contents

        Raises:
            SerializationError: If the notes cannot be encoded
        """
        tempo = self.tempo if tempo is None else tempo
        if not (isinstance(tempo, (int, float)) and math.isfinite(tempo) and tempo > 0):
            raise SerializationError(f"Tempo must be a positive number of BPM, got {tempo!r}")

        try:
            midi = self.notes_to_midi_file(notes, tempo)
            buffer = io.BytesIO()
            midi.save(file=buffer)
        except (ValueError, TypeError, OSError) as e:
            raise SerializationError(f"Could not encode MIDI: {e}") from e

        data = buffer.getvalue()
        logger.debug("Serialized %d notes into %d bytes", len(notes), len(data))
        return data

    def export(
        self,
        notes: Sequence[NoteEvent],
        output_path: str,
        tempo: Optional[float] = None,
    ) -> int:
        """
        Export notes to MIDI file.

        Args:
            notes: Notes to encode
            output_path: Path to output MIDI file
            tempo: Tempo in BPM, overrides the configured tempo

        Returns:
            Number of bytes written
        """
        data = self.serialize(notes, tempo)

        # Ensure output directory exists
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)

        Path(output_path).write_bytes(data)
        return len(data)

    def notes_to_midi_file(self, notes: Sequence[NoteEvent], tempo: float) -> mido.MidiFile:
        """Build the MidiFile without encoding it."""
        midi_tempo = mido.bpm2tempo(tempo)
        spans = [self._span(note, midi_tempo) for note in notes]
        channels = self._assign_channels(notes, spans)

        track = mido.MidiTrack()
        track.append(mido.MetaMessage("track_name", name=self.track_name, time=0))
        track.append(mido.MetaMessage("set_tempo", tempo=midi_tempo, time=0))
        track.append(mido.MetaMessage("time_signature", numerator=4, denominator=4, time=0))
        for channel in sorted(set(channels) | {self.channel}):
            track.append(mido.Message(
                "program_change", program=self.instrument_program, channel=channel, time=0
            ))

        previous_tick = 0
        for tick, _, message in self._timed_messages(notes, spans, channels, midi_tempo):
            track.append(message.copy(time=tick - previous_tick))
            previous_tick = tick
        track.append(mido.MetaMessage("end_of_track", time=0))

        midi = mido.MidiFile(type=0, ticks_per_beat=self.ticks_per_beat)
        midi.tracks.append(track)
        return midi

    def _assign_channels(self, notes: Sequence[NoteEvent], spans: Sequence[Tuple[int, int]]) -> List[int]:
        """
        Channel of each note.

        The pitch wheel acts on a whole channel, so every bent note gets a
        channel of its own from start to end. Unbent notes share the
        configured channel, which never carries a bend. When all channels are
        taken the note keeps its pitch but loses its bends.
        """
        pool = [c for c in range(N_MIDI_CHANNELS) if c not in (self.channel, DRUM_CHANNEL)]
        busy_until = {channel: -1 for channel in pool}
        channels = [self.channel] * len(notes)

        for i in sorted(range(len(notes)), key=lambda i: spans[i][0]):
            if not notes[i].pitch_bends:
                continue
            start, end = spans[i]
            # The bend reset lands on the end tick, so reuse needs a strictly later start
            free = [channel for channel in pool if busy_until[channel] < start]
            if not free:
                logger.warning(
                    "No free MIDI channel for the bends of pitch %d at %.3fs; bends dropped",
                    notes[i].pitch, notes[i].start_time,
                )
                continue
            busy_until[free[0]] = end
            channels[i] = free[0]

        return channels

    def _timed_messages(
        self,
        notes: Sequence[NoteEvent],
        spans: Sequence[Tuple[int, int]],
        channels: Sequence[int],
        midi_tempo: int,
    ) -> List[TimedMessage]:
        """All note and bend messages with absolute ticks, in playback order."""
        events: List[TimedMessage] = []

        for note, (start, end), channel in zip(notes, spans, channels):
            bent = bool(note.pitch_bends) and channel != self.channel

            events.append((start, NOTE_ON, mido.Message(
                "note_on", note=note.pitch, velocity=note.midi_velocity, channel=channel
            )))

            if bent:
                for offset, semitones in note.pitch_bends:
                    tick = min(self._to_ticks(note.start_time + offset, midi_tempo), end)
                    events.append((tick, PITCH_BEND, mido.Message(
                        "pitchwheel", pitch=self._bend_value(semitones), channel=channel
                    )))

            events.append((end, NOTE_OFF, mido.Message(
                "note_off", note=note.pitch, velocity=0, channel=channel
            )))

            if bent:
                events.append((end, PITCH_BEND, mido.Message(
                    "pitchwheel", pitch=0, channel=channel
                )))

        # Stable: equal (tick, kind) keep note order
        events.sort(key=lambda event: (event[0], event[1]))
        return events

    def _span(self, note: NoteEvent, midi_tempo: int) -> Tuple[int, int]:
        """Start and end tick of a note, at least one tick long."""
        start = self._to_ticks(note.start_time, midi_tempo)
        return start, max(self._to_ticks(note.end_time, midi_tempo), start + 1)

    def _to_ticks(self, seconds: float, midi_tempo: int) -> int:
        return int(round(mido.second2tick(seconds, self.ticks_per_beat, midi_tempo)))

    def _bend_value(self, semitones: float) -> int:
        """Pitch wheel value for a deviation in semitones."""
        half_range = N_PITCH_BEND_TICKS
        value = int(round(semitones / self.pitch_bend_range * half_range))
        return max(-half_range, min(half_range - 1, value))
