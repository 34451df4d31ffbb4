"""Base classes for frame matrix estimation."""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..core import FrameMatrices
from ..input import AudioBuffer

ProgressCallback = Callable[[float], None]


class FrameMatrixSource(ABC):
    """Abstract pitch estimator producing frame, onset and contour activations."""

    #: Sample rate the estimator expects its input at
    sample_rate: int

    @abstractmethod
    def infer(
        self,
        buffer: AudioBuffer,
        progress: Optional[ProgressCallback] = None,
    ) -> FrameMatrices:
        """
        Estimate activations for normalized mono audio.

        Args:
            buffer: Mono audio at ``sample_rate``
            progress: Called with the fraction done, in [0, 1]

        Returns:
            FrameMatrices aligned on a common frame hop

        Raises:
            InferenceError: If estimation fails
        """
        pass

    @staticmethod
    def _report(progress: Optional[ProgressCallback], fraction: float) -> None:
        if progress is not None:
            progress(min(1.0, max(0.0, float(fraction))))
