"""Global constants for audio2midi."""

# Pitch names
PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Estimator input format
AUDIO_SAMPLE_RATE = 22050
AUDIO_N_CHANNELS = 1
FFT_HOP = 256
FRAME_HOP_SECONDS = FFT_HOP / AUDIO_SAMPLE_RATE

# Pitch grid of the frame/onset/contour matrices
ANNOTATIONS_BASE_FREQUENCY = 27.5  # A0
ANNOTATIONS_N_SEMITONES = 88  # piano keys
NOTES_BINS_PER_SEMITONE = 1
CONTOURS_BINS_PER_SEMITONE = 3
N_FREQ_BINS_NOTES = ANNOTATIONS_N_SEMITONES * NOTES_BINS_PER_SEMITONE
N_FREQ_BINS_CONTOURS = ANNOTATIONS_N_SEMITONES * CONTOURS_BINS_PER_SEMITONE
MIDI_OFFSET = 21

# Decoding defaults
DEFAULT_ONSET_THRESHOLD = 0.25
DEFAULT_FRAME_THRESHOLD = 0.25
DEFAULT_MIN_NOTE_FRAMES = 5

# MIDI container
DEFAULT_TEMPO = 120.0
DEFAULT_TICKS_PER_BEAT = 480
DEFAULT_PITCH_BEND_RANGE = 2.0  # semitones
N_PITCH_BEND_TICKS = 8192

# MIDI ranges
MIDI_MIN = 0
MIDI_MAX = 127
