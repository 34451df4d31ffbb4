"""Conversion pipeline: audio buffer to notes and MIDI bytes.

Stages:
    Loading     - validate, mix down and resample the audio
    Processing  - estimate activations, decode notes, extract bends, encode MIDI

Every run carries an identity token. State updates from a run that is no
longer current (after ``reset()`` or a newer ``submit()``) are dropped, so a
cancelled run never becomes observable again.
"""

import itertools
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from .core import (
    ConversionCancelled,
    DecodingError,
    FrameMatrices,
    InferenceError,
    NoteEvent,
    TranscriptionError,
)
from .core.constants import (
    AUDIO_SAMPLE_RATE,
    DEFAULT_PITCH_BEND_RANGE,
    DEFAULT_TEMPO,
    DEFAULT_TICKS_PER_BEAT,
    MIDI_OFFSET,
)
from .analysis import TempoAnalyzer
from .input import AudioBuffer, AudioNormalizer
from .output import MIDIExporter
from .processing import BendConfig, DecoderConfig, NoteDecoder, PitchBendExtractor, notes_to_events
from .transcription import FrameMatrixSource

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Conversion stages."""

    IDLE = "idle"
    LOADING = "loading"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class ConversionState:
    """Snapshot of a conversion's progress."""

    stage: Stage = Stage.IDLE
    percent: int = 0
    message: str = ""
    error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.stage in (Stage.LOADING, Stage.PROCESSING)


@dataclass
class StageTimings:
    """Track timing of processing stages."""

    stages: Dict[str, float] = field(default_factory=dict)
    _current_stage: Optional[str] = field(default=None, repr=False)
    _start_time: float = field(default=0.0, repr=False)

    def start(self, stage: str) -> None:
        """Start timing a stage, stopping the previous one."""
        self.stop()
        self._current_stage = stage
        self._start_time = time.perf_counter()

    def stop(self) -> float:
        """Stop timing the current stage, return duration."""
        if self._current_stage is None:
            return 0.0
        duration = time.perf_counter() - self._start_time
        self.stages[self._current_stage] = duration
        self._current_stage = None
        return duration

    @property
    def total_time(self) -> float:
        """Get total time across all stages."""
        return sum(self.stages.values())


@dataclass
class ConversionResult:
    """Output of a completed conversion."""

    notes: List[NoteEvent]
    midi_bytes: bytes
    duration: float  # seconds of normalized audio
    tempo: float = DEFAULT_TEMPO
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def byte_size(self) -> int:
        return len(self.midi_bytes)


@dataclass
class PipelineConfig:
    """Settings for a conversion run.

    Attributes:
        target_sr: Sample rate the estimator receives (default: 22050)
        decoder: Note decoding settings
        bends: Pitch bend extraction settings
        extract_bends: Attach pitch bend curves to notes (default: True)
        midi_offset: MIDI pitch of pitch bin 0 (default: 21, A0)
        tempo: Tempo written to the MIDI file in BPM, None to estimate it
            from the audio (default: 120)
        ticks_per_beat: MIDI time division (default: 480)
        pitch_bend_range: Semitones at full pitch wheel deflection (default: 2)
    """

    target_sr: int = AUDIO_SAMPLE_RATE
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    bends: BendConfig = field(default_factory=BendConfig)
    extract_bends: bool = True
    midi_offset: int = MIDI_OFFSET
    tempo: Optional[float] = DEFAULT_TEMPO
    ticks_per_beat: int = DEFAULT_TICKS_PER_BEAT
    pitch_bend_range: float = DEFAULT_PITCH_BEND_RANGE


StateListener = Callable[[ConversionState], None]


class PipelineOrchestrator:
    """
    Runs conversions and publishes their progress.

    At most one run is current. ``submit()`` starts a run on a background
    worker and supersedes any previous run; ``reset()`` cancels the current
    run and returns to idle.
    """

    def __init__(
        self,
        source: FrameMatrixSource,
        config: Optional[PipelineConfig] = None,
        on_change: Optional[StateListener] = None,
    ):
        """
        Initialize PipelineOrchestrator.

        Args:
            source: Estimator producing frame/onset/contour activations
            config: Pipeline settings
            on_change: Called with every new state of the current run
        """
        self.source = source
        self.config = config or PipelineConfig()
        self.on_change = on_change

        self.normalizer = AudioNormalizer(target_sr=self.config.target_sr)
        self.tempo_analyzer = TempoAnalyzer()
        self.decoder = NoteDecoder(config=self.config.decoder)
        self.bend_extractor = PitchBendExtractor(self.config.bends)
        self.exporter = MIDIExporter(
            tempo=self.config.tempo or DEFAULT_TEMPO,
            ticks_per_beat=self.config.ticks_per_beat,
            pitch_bend_range=self.config.pitch_bend_range,
        )

        # Reentrant so listeners may read state or call reset()
        self._lock = threading.RLock()
        self._run_ids = itertools.count(1)
        self._current_run = 0
        self._state = ConversionState()
        self._result: Optional[ConversionResult] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._future: Optional[Future] = None

    @property
    def state(self) -> ConversionState:
        with self._lock:
            return self._state

    @property
    def result(self) -> Optional[ConversionResult]:
        with self._lock:
            return self._result

    def convert(self, buffer: AudioBuffer) -> ConversionResult:
        """
        Run a conversion in the calling thread.

        Raises:
            TranscriptionError: If any stage fails (state becomes FAILED)
            ConversionCancelled: If the run was reset or superseded meanwhile
        """
        run_id = self._begin_run()
        return self._run(run_id, buffer)

    def submit(self, buffer: AudioBuffer) -> Future:
        """Start a conversion on the background worker, replacing any current run."""
        with self._lock:
            if self._future is not None:
                self._future.cancel()
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="audio2midi")
            run_id = self._begin_run()
            self._future = self._executor.submit(self._run, run_id, buffer)
            return self._future

    def reset(self) -> None:
        """Cancel the current run, release its result and return to idle."""
        with self._lock:
            self._current_run = next(self._run_ids)
            self._result = None
            if self._future is not None:
                self._future.cancel()
                self._future = None
            self._publish(ConversionState())
        logger.debug("Pipeline reset")

    def shutdown(self, wait: bool = True) -> None:
        """Cancel the current run and stop the background worker."""
        self.reset()
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    def _begin_run(self) -> int:
        with self._lock:
            run_id = next(self._run_ids)
            self._current_run = run_id
            self._result = None
            self._publish(ConversionState())
            return run_id

    def _run(self, run_id: int, buffer: AudioBuffer) -> ConversionResult:
        config = self.config
        timings = StageTimings()

        try:
            self._update(run_id, Stage.LOADING, 10, "Loading audio...")
            timings.start("normalize")
            self._update(run_id, Stage.LOADING, 20, "Converting to mono and resampling...")
            normalized = self.normalizer.normalize(buffer, config.target_sr)
            tempo = config.tempo
            if tempo is None:
                timings.start("tempo")
                self._update(run_id, Stage.LOADING, 25, "Estimating tempo...")
                tempo = self.tempo_analyzer.detect(normalized)
            self._update(run_id, Stage.LOADING, 30, "Loading pitch estimator...")
            self._checkpoint(run_id)

            timings.start("inference")
            self._update(run_id, Stage.PROCESSING, 40, "Running pitch detection...")
            matrices = self.source.infer(
                normalized,
                progress=lambda fraction: self._update(
                    run_id,
                    Stage.PROCESSING,
                    40 + int(fraction * 45),
                    f"Analyzing audio: {int(fraction * 100)}%",
                ),
            )
            if not isinstance(matrices, FrameMatrices):
                raise InferenceError(
                    f"Estimator returned {type(matrices).__name__}, expected FrameMatrices"
                )
            self._checkpoint(run_id)

            timings.start("decode")
            self._update(run_id, Stage.PROCESSING, 85, "Converting to MIDI notes...")
            raw_notes = self.decoder.decode_matrices(matrices)

            bends = None
            if config.extract_bends:
                self._update(run_id, Stage.PROCESSING, 88, "Adding pitch bends...")
                bends = self.bend_extractor.extract(raw_notes, matrices)
            notes = notes_to_events(raw_notes, bends, matrices.frame_hop_seconds, config.midi_offset)
            self._checkpoint(run_id)

            timings.start("serialize")
            self._update(run_id, Stage.PROCESSING, 90, "Generating MIDI file...")
            midi_bytes = self.exporter.serialize(notes, tempo=tempo)
            timings.stop()

            result = ConversionResult(
                notes=notes,
                midi_bytes=midi_bytes,
                duration=normalized.duration,
                tempo=tempo,
                timings=dict(timings.stages),
            )
            with self._lock:
                self._checkpoint(run_id)
                self._result = result
                self._publish(ConversionState(
                    Stage.COMPLETE, 100, f"Conversion complete! {len(notes)} notes detected."
                ))
            logger.info(
                "Converted %.2fs of audio into %d notes (%d bytes) in %.2fs",
                result.duration, len(notes), result.byte_size, timings.total_time,
            )
            return result

        except ConversionCancelled:
            logger.info("Run %d cancelled", run_id)
            raise
        except DecodingError as e:
            logger.exception("Internal decoding defect in run %d", run_id)
            self._fail(run_id, str(e))
            raise
        except TranscriptionError as e:
            logger.warning("Conversion failed: %s", e)
            self._fail(run_id, str(e))
            raise
        except Exception as e:
            logger.exception("Unexpected error in run %d", run_id)
            self._fail(run_id, str(e) or type(e).__name__)
            raise

    def _update(self, run_id: int, stage: Stage, percent: int, message: str) -> bool:
        """Publish progress of a run. Returns False when the run is stale."""
        with self._lock:
            if run_id != self._current_run:
                return False
            percent = max(self._state.percent, min(100, int(percent)))
            self._publish(ConversionState(stage, percent, message))
            return True

    def _fail(self, run_id: int, error: str) -> None:
        with self._lock:
            if run_id != self._current_run:
                return
            self._result = None
            self._publish(ConversionState(Stage.FAILED, self._state.percent, "Conversion failed", error))

    def _checkpoint(self, run_id: int) -> None:
        if run_id != self._current_run:
            raise ConversionCancelled(f"Run {run_id} was superseded")

    def _publish(self, state: ConversionState) -> None:
        """Replace the state and notify the listener. Caller holds the lock."""
        self._state = state
        if self.on_change is not None:
            self.on_change(state)
