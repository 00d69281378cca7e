"""
Dark-Frame Entropy Engine

This module harvests entropy from an image sensor whose aperture is
deliberately covered:

1. Capture - one frame per sample from the camera (or replayed files)
2. Validate - the frame must be dark, so the pixels carry sensor noise
   rather than scene content
3. Extract - one bit per pixel from lsb(R) ^ lsb(G) ^ lsb(B)
4. Debias - Von Neumann correction over bit pairs
5. Condition - SHA-256 whitening into a 64-char hex digest, or the raw
   corrected bitstream for external statistical testing

ECE Physics Background:
-----------------------
DARK CURRENT NOISE:
- Even with no photons arriving, silicon photodiodes generate electrons
  thermally; the count per exposure follows Poisson statistics
- Read noise from the column amplifiers and ADC adds a Gaussian component
- Both dominate the least significant bits of a covered sensor

WHY COVER THE LENS:
- With light present, LSBs partly track scene texture and edges, which an
  observer could predict or reproduce
- Covering the lens leaves only noise sources internal to the sensor

The engine owns the capture and thermal collaborators and makes sure only
one batch runs at a time. Each batch itself is driven by a fresh
BatchAccumulator.
"""

import logging
from concurrent.futures import Executor
from pathlib import Path
from typing import Optional, Sequence, Union

from .batch import BatchAccumulator, BatchResult, ProgressCallback
from .capture import ImageFileSource, SampleSource, WebcamSource
from .config import BatchConfiguration
from .errors import BatchInProgressError
from .thermal import ThermalSensor

logger = logging.getLogger(__name__)


class DarkFrameEngine:
    """
    True Random Number Generator using covered-sensor noise.

    Usage:
        with create_engine() as engine:
            result = await engine.generate(BatchConfiguration(sample_count=5))
            print(result.digest)
    """

    def __init__(
        self,
        source: SampleSource,
        thermal: Optional[ThermalSensor] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Args:
            source: Capture collaborator handing over one sample per request.
            thermal: Optional device temperature source (advisory only).
            executor: Optional execution context for the per-sample bit
                harvesting; None runs it on the event loop.
        """
        self.source = source
        self.thermal = thermal
        self.executor = executor
        self._active: Optional[BatchAccumulator] = None

    @property
    def busy(self) -> bool:
        """True while a batch is running."""
        return self._active is not None

    @property
    def status(self) -> str:
        if self._active is None:
            return "Idle"
        return self._active.status

    async def generate(
        self,
        config: BatchConfiguration,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        """
        Run one batch to completion.

        Args:
            config: Batch settings, fixed for the whole run.
            on_progress: Called with (i, N) after each processed sample.

        Returns:
            The terminal BatchResult (COMPLETED or FAILED).

        Raises:
            BatchInProgressError: If another batch is still running.
        """
        if self._active is not None:
            raise BatchInProgressError("A batch is already running; wait for it to finish")

        accumulator = BatchAccumulator(config, thermal=self.thermal, executor=self.executor)
        self._active = accumulator
        try:
            return await accumulator.run(self.source, on_progress=on_progress)
        finally:
            self._active = None

    def close(self) -> None:
        """
        Release the capture device.

        Should be called when done so the camera is free for other
        applications.
        """
        close = getattr(self.source, "close", None)
        if close is not None:
            close()
        logger.info("Entropy engine resources released.")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensures cleanup."""
        self.close()
        return False


def create_engine(
    device: int = 0,
    images: Optional[Sequence[Union[str, Path]]] = None,
    thermal: Optional[ThermalSensor] = None,
    executor: Optional[Executor] = None,
) -> DarkFrameEngine:
    """
    Factory function to create an engine for a camera or a set of files.

    Args:
        device: OpenCV camera index, used when no images are given.
        images: Image files to replay instead of opening a camera.
        thermal: Optional device temperature source.
        executor: Optional execution context for bit harvesting.

    Returns:
        DarkFrameEngine bound to the chosen source.

    Raises:
        CaptureError: If the camera cannot be opened.
    """
    if images:
        source = ImageFileSource(images)
        logger.info("Replaying %d image files", len(source.paths))
    else:
        source = WebcamSource(device)
    return DarkFrameEngine(source, thermal=thermal, executor=executor)
