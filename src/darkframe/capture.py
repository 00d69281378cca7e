"""
Capture sources that feed the batch pipeline.

A source hands over one decoded PixelSample per acquire() call and fails
with CaptureError (or DecodeError) when it cannot. Blocking device and
file reads run in worker threads so the batch loop suspends instead of
spinning while a frame is on its way.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import AsyncIterator, List, Optional, Protocol, Sequence, Union

import cv2
import numpy as np

from .errors import CaptureError
from .sample import PixelSample, decode_sample

logger = logging.getLogger(__name__)


class SampleSource(Protocol):
    """Anything that can hand over one decoded sample per request."""

    async def acquire(self) -> PixelSample:
        ...


class WebcamSource:
    """
    Captures dark frames from a local camera through OpenCV.

    Every device call runs on one dedicated worker thread owned by the
    source, so reads are serialised even when an awaiting task is
    cancelled mid-read. close() waits for an in-flight read before it
    releases the device.

    ECE Note: Auto-exposure fights the cover. With the lens blocked it
    ramps exposure and gain up, which amplifies the noise floor but also
    any light leak, so it is switched to manual where the driver allows.
    """

    # Video capture parameters
    VIDEO_WIDTH = 320
    VIDEO_HEIGHT = 240

    # Live cover feed resolution (Y plane)
    PREVIEW_WIDTH = 64
    PREVIEW_HEIGHT = 48

    def __init__(self, device: int = 0, width: int = VIDEO_WIDTH, height: int = VIDEO_HEIGHT):
        """
        Open the camera.

        Raises:
            CaptureError: If the device cannot be opened.
        """
        self.device = device
        self._capture: Optional[cv2.VideoCapture] = cv2.VideoCapture(device)
        if not self._capture.isOpened():
            self._capture.release()
            self._capture = None
            raise CaptureError(f"Could not open camera device {device}")

        self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        # 0.25 selects manual exposure on V4L2 backends
        self._capture.set(cv2.CAP_PROP_AUTO_EXPOSURE, 0.25)
        self._device_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"camera{device}")
        self._frames = 0
        logger.info("Camera %d opened for dark-frame capture", device)

    @property
    def closed(self) -> bool:
        return self._capture is None

    def _read_frame(self) -> np.ndarray:
        with self._device_lock:
            if self._capture is None:
                raise CaptureError("Camera is closed")
            ret, frame = self._capture.read()
        if not ret or frame is None:
            raise CaptureError(f"Camera {self.device} returned no frame")
        return frame

    async def _read(self) -> np.ndarray:
        if self._capture is None:
            raise CaptureError("Camera is closed")
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self._read_frame)
        except RuntimeError as e:
            # The worker was shut down by close() between the check and submit
            raise CaptureError(f"Camera {self.device} is closed") from e

    async def acquire(self) -> PixelSample:
        """Capture one frame and return it as an RGB sample."""
        frame = await self._read()
        self._frames += 1
        return PixelSample.from_bgr(frame, label=f"camera{self.device}#{self._frames}")

    async def luminance_feed(self, interval: float = 0.1) -> AsyncIterator[np.ndarray]:
        """
        Yield low-resolution luminance planes for the live cover monitor.

        Args:
            interval: Seconds to wait between frames.
        """
        while True:
            frame = await self._read()
            small = cv2.resize(
                frame,
                (self.PREVIEW_WIDTH, self.PREVIEW_HEIGHT),
                interpolation=cv2.INTER_AREA,
            )
            yield cv2.cvtColor(small, cv2.COLOR_BGR2GRAY)
            await asyncio.sleep(interval)

    def close(self) -> None:
        """
        Release the camera so other applications can use it.

        Blocks until a read already running on the worker has returned.
        """
        if self._capture is None:
            return
        self._executor.shutdown(wait=True)
        with self._device_lock:
            if self._capture is not None:
                self._capture.release()
                self._capture = None
                logger.info("Camera %d released", self.device)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class ImageFileSource:
    """
    Replays previously captured frames from image files, in order.

    Useful for reproducing a batch offline: the same ordered files always
    yield the same digest.
    """

    def __init__(self, paths: Sequence[Union[str, Path]]):
        self.paths: List[Path] = [Path(p) for p in paths]
        self._position = 0

    @property
    def remaining(self) -> int:
        return len(self.paths) - self._position

    async def acquire(self) -> PixelSample:
        if self._position >= len(self.paths):
            raise CaptureError("No more image files to replay")
        path = self.paths[self._position]
        self._position += 1
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise CaptureError(f"Could not read {path}: {e}") from e
        return decode_sample(data, label=path.name)

    def close(self) -> None:
        self._position = len(self.paths)
