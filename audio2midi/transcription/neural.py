"""Neural frame matrix estimation with Spotify's Basic Pitch."""

import logging
import tempfile
from pathlib import Path
from typing import Optional

import soundfile as sf

from .base import FrameMatrixSource, ProgressCallback
from ..core import FrameMatrices, InferenceError
from ..core.constants import AUDIO_SAMPLE_RATE, CONTOURS_BINS_PER_SEMITONE, FRAME_HOP_SECONDS
from ..input import AudioBuffer

logger = logging.getLogger(__name__)


class BasicPitchSource(FrameMatrixSource):
    """
    Frame matrix estimator backed by the ``basic-pitch`` package.

    The model is loaded lazily on first use and reused afterwards.
    """

    sample_rate = AUDIO_SAMPLE_RATE

    def __init__(self, model_path: Optional[str] = None):
        """
        Initialize BasicPitchSource.

        Args:
            model_path: Saved model to load (default: the bundled ICASSP 2022 model)
        """
        self.model_path = model_path
        self._model = None

    def _load_model(self):
        """Import basic-pitch and load the model once."""
        if self._model is not None:
            return self._model

        try:
            from basic_pitch import ICASSP_2022_MODEL_PATH
            from basic_pitch.inference import Model
        except ImportError as e:
            raise InferenceError(
                "basic-pitch is required for neural inference. Run: pip install basic-pitch"
            ) from e

        path = self.model_path or ICASSP_2022_MODEL_PATH
        logger.info("Loading Basic Pitch model from %s", path)
        try:
            self._model = Model(path)
        except Exception as e:
            raise InferenceError(f"Could not load Basic Pitch model: {e}") from e
        return self._model

    def infer(
        self,
        buffer: AudioBuffer,
        progress: Optional[ProgressCallback] = None,
    ) -> FrameMatrices:
        if buffer.sample_rate != self.sample_rate or buffer.n_channels != 1:
            raise InferenceError(
                f"Basic Pitch expects mono {self.sample_rate} Hz audio, "
                f"got {buffer.n_channels} channel(s) at {buffer.sample_rate} Hz"
            )
        model = self._load_model()
        from basic_pitch.inference import run_inference

        self._report(progress, 0.0)

        # Basic Pitch reads from disk, so the buffer is written out temporarily
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as tmp:
            tmp_path = tmp.name
        sf.write(tmp_path, buffer.mono, buffer.sample_rate)

        try:
            output = run_inference(tmp_path, model)
        except Exception as e:
            raise InferenceError(f"Basic Pitch inference failed: {e}") from e
        finally:
            Path(tmp_path).unlink(missing_ok=True)

        self._report(progress, 1.0)

        return FrameMatrices(
            frames=output["note"],
            onsets=output["onset"],
            contours=output["contour"],
            frame_hop_seconds=FRAME_HOP_SECONDS,
            bins_per_semitone=CONTOURS_BINS_PER_SEMITONE,
        )
