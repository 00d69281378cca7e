"""
Batch accumulation across N captured samples.

State machine: IDLE -> RUNNING -> COMPLETED | FAILED

For each sample i = 1..N the accumulator acquires a frame, checks that it
is dark, harvests its Von Neumann corrected bits and appends them to a
private buffer. Any failure stops the batch at that sample: a single
bright or broken frame taints the whole batch, so no partial result is
ever reported as success. Cancellation propagates to the caller and
discards the buffer.
"""

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from .capture import SampleSource
from .conditioning import DIGEST_BITS, condition
from .config import BatchConfiguration, OutputMode
from .errors import (
    BatchInProgressError,
    CaptureError,
    ConfigurationError,
    DarkFrameError,
    DecodeError,
    ValidationError,
)
from .extraction import harvest
from .thermal import ThermalSensor
from .validation import TemperatureStatus, below_threshold, mean_luminance

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class BatchState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchResult:
    """
    Terminal outcome of one batch run.

    Exactly one of `output` (completed) or `reason` (failed) is set.
    `bit_count` is the size of the output in bits (the bitstream length in
    RAW mode, 256 for a digest); `corrected_bits` is the size of the
    corrected buffer it was conditioned from.
    `failed_sample` is the 1-based index of the offending sample, or None
    for configuration errors.
    """

    state: BatchState
    mode: OutputMode
    output: Optional[str] = None
    bit_count: int = 0
    corrected_bits: int = 0
    reason: Optional[str] = None
    failed_sample: Optional[int] = None
    error: Optional[BaseException] = None
    temperature_warning: bool = False

    @property
    def ok(self) -> bool:
        return self.state is BatchState.COMPLETED

    @property
    def digest(self) -> Optional[str]:
        """Hex digest for whitened batches."""
        if self.ok and self.mode is OutputMode.WHITENED:
            return self.output
        return None

    @property
    def bitstream(self) -> Optional[str]:
        """'0'/'1' text for raw export batches."""
        if self.ok and self.mode is OutputMode.RAW:
            return self.output
        return None

    def summary(self) -> str:
        if not self.ok:
            return f"Batch failed: {self.reason}"
        if self.mode is OutputMode.RAW:
            return f"Test data generated: {self.bit_count} bits."
        return f"Whitening complete. Generated {DIGEST_BITS} bits (Hexadecimal)."


class BatchAccumulator:
    """
    Drives one batch run from capture to conditioned output.

    An accumulator is single-use: create a new one for every batch. The
    corrected bit buffer never leaves this object until the run
    completes, at which point only the conditioned result is handed out.

    Args:
        config: Immutable batch settings.
        thermal: Optional temperature source for the advisory check.
        executor: Optional executor that runs the CPU-bound extraction and
            correction step. Without one the step runs inline on the loop.
    """

    def __init__(
        self,
        config: BatchConfiguration,
        thermal: Optional[ThermalSensor] = None,
        executor: Optional[Executor] = None,
    ):
        self.config = config
        self.thermal = thermal
        self.executor = executor
        self.state = BatchState.IDLE
        self.status = "Idle"
        self._chunks: List[np.ndarray] = []
        self._temperature_warning = False

    async def run(
        self,
        source: SampleSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchResult:
        """
        Capture and process all samples of the batch.

        Args:
            source: Capture collaborator, asked once per sample.
            on_progress: Called with (i, N) after each processed sample.

        Returns:
            A COMPLETED or FAILED BatchResult.

        Raises:
            BatchInProgressError: If this accumulator is already running.
            RuntimeError: If this accumulator already finished a batch.
            asyncio.CancelledError: If the run is cancelled.
        """
        if self.state is BatchState.RUNNING:
            raise BatchInProgressError("A batch is already running")
        if self.state is not BatchState.IDLE:
            raise RuntimeError("BatchAccumulator is single-use; create a new one")

        try:
            self.config.validate()
        except ConfigurationError as e:
            self.state = BatchState.FAILED
            self.status = "Batch failed."
            logger.warning("Rejected batch configuration: %s", e)
            return BatchResult(
                state=BatchState.FAILED,
                mode=self.config.mode,
                reason=str(e),
                error=e,
            )

        total = self.config.sample_count
        self.state = BatchState.RUNNING
        self.status = "Starting batch..."
        logger.info("Starting batch of %d samples (%s mode)", total, self.config.mode.value)

        try:
            for index in range(1, total + 1):
                try:
                    await self._process(source, index, total)
                except DarkFrameError as e:
                    return self._fail(index, str(e), e)
                except Exception as e:
                    return self._fail(index, f"Error processing image {index}: {e}", e)

                if on_progress is not None:
                    try:
                        on_progress(index, total)
                    except Exception as e:
                        reason = f"Progress callback failed after image {index}: {e}"
                        return self._fail(index, reason, e)
        except asyncio.CancelledError:
            self._chunks = []
            self.state = BatchState.FAILED
            self.status = "Batch cancelled."
            logger.info("Batch cancelled; partial output discarded")
            raise

        return self._complete()

    async def _process(self, source: SampleSource, index: int, total: int) -> None:
        self.status = f"Capturing image {index} of {total}..."
        try:
            sample = await source.acquire()
        except DecodeError as e:
            raise DecodeError(f"Failed to decode image {index}: {e}", index) from e
        except (CaptureError, OSError, RuntimeError) as e:
            raise CaptureError(f"Image capture failed for image {index}: {e}", index) from e

        try:
            self.status = f"Processing image {index} of {total}..."
            luminance = mean_luminance(sample)
            if not below_threshold(luminance, self.config.dark_threshold):
                raise ValidationError(
                    f"Image {index} is not dark enough (mean luminance "
                    f"{luminance:.1f} >= {self.config.dark_threshold:.1f}). "
                    "Please ensure the camera lens is completely covered.",
                    sample_index=index,
                    luminance=luminance,
                    threshold=self.config.dark_threshold,
                )

            self._check_temperature(index)

            if self.executor is None:
                bits = harvest(sample)
            else:
                loop = asyncio.get_running_loop()
                bits = await loop.run_in_executor(self.executor, harvest, sample)

            self._chunks.append(bits)
            logger.debug(
                "Sample %d/%d: luminance %.2f, %d corrected bits",
                index, total, luminance, len(bits),
            )
        finally:
            sample.close()

    def _check_temperature(self, index: int) -> None:
        if self.thermal is None:
            return
        status = self.thermal.status(self.config.temperature_warn_c)
        if status is TemperatureStatus.HIGH:
            self._temperature_warning = True
            logger.warning(
                "High temperature (%.1f°C) during image %d",
                self.thermal.celsius, index,
            )

    def _fail(self, index: int, reason: str, error: BaseException) -> BatchResult:
        self._chunks = []
        self.state = BatchState.FAILED
        self.status = "Batch failed."
        logger.warning("Batch failed at sample %d: %s", index, reason)
        return BatchResult(
            state=BatchState.FAILED,
            mode=self.config.mode,
            reason=reason,
            failed_sample=index,
            error=error,
            temperature_warning=self._temperature_warning,
        )

    def _complete(self) -> BatchResult:
        chunks, self._chunks = self._chunks, []
        if chunks:
            bits = np.concatenate(chunks)
        else:
            bits = np.zeros(0, dtype=np.uint8)

        if self.config.mode is OutputMode.WHITENED:
            self.status = "Batch complete. Applying SHA-256 whitening..."
        output = condition(bits, self.config.mode)

        self.state = BatchState.COMPLETED
        result = BatchResult(
            state=BatchState.COMPLETED,
            mode=self.config.mode,
            output=output,
            bit_count=len(bits) if self.config.mode is OutputMode.RAW else DIGEST_BITS,
            corrected_bits=len(bits),
            temperature_warning=self._temperature_warning,
        )
        self.status = result.summary()
        logger.info(
            "Batch complete: %d samples, %d corrected bits",
            self.config.sample_count, len(bits),
        )
        return result
