"""
Pixel samples handed over by the capture source.

A PixelSample wraps one decoded frame as an RGB uint8 array of shape
(height, width, 3). Samples are short-lived: the batch loop closes each
one as soon as its bits have been harvested, whatever the outcome.
"""

from typing import Optional

import cv2
import numpy as np

from .errors import DecodeError


class PixelSample:
    """
    One decoded image from the obstructed sensor.

    ECE Note: Only the 8-bit R, G and B channels matter here. An alpha
    channel carries no sensor noise and is dropped on construction.
    """

    def __init__(self, pixels: np.ndarray, label: Optional[str] = None):
        """
        Wrap a pixel grid.

        Args:
            pixels: Array of shape (H, W, 3) or (H, W, 4), dtype uint8, RGB order.
            label: Optional description used in log messages.

        Raises:
            DecodeError: If the array is not a non-empty 8-bit colour grid.
        """
        if not isinstance(pixels, np.ndarray):
            raise DecodeError(f"Expected a numpy array, got {type(pixels).__name__}")
        if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
            raise DecodeError(f"Expected an (H, W, 3) colour grid, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            raise DecodeError(f"Expected 8-bit channels, got dtype {pixels.dtype}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise DecodeError("Pixel grid is empty")

        self._pixels: Optional[np.ndarray] = pixels[:, :, :3]
        self.label = label

    @classmethod
    def from_bgr(cls, frame: np.ndarray, label: Optional[str] = None) -> "PixelSample":
        """Build a sample from an OpenCV frame (BGR or BGRA channel order)."""
        if not isinstance(frame, np.ndarray) or frame.ndim != 3 or frame.shape[2] not in (3, 4):
            shape = getattr(frame, "shape", None)
            raise DecodeError(f"Expected a BGR frame, got shape {shape}")
        if frame.shape[2] == 4:
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGB)
        else:
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return cls(rgb, label=label)

    @property
    def pixels(self) -> np.ndarray:
        """The RGB grid. Raises ValueError once the sample is closed."""
        if self._pixels is None:
            raise ValueError("Pixel sample is closed")
        return self._pixels

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def closed(self) -> bool:
        return self._pixels is None

    def close(self) -> None:
        """Release the pixel buffer. Safe to call more than once."""
        self._pixels = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        if self.closed:
            return f"PixelSample(closed, label={self.label!r})"
        return f"PixelSample({self.width}x{self.height}, label={self.label!r})"


def decode_sample(data: bytes, label: Optional[str] = None) -> PixelSample:
    """
    Decode an encoded image (JPEG, PNG, ...) into a PixelSample.

    Args:
        data: Encoded image bytes.
        label: Optional description used in log messages.

    Returns:
        The decoded sample in RGB order.

    Raises:
        DecodeError: If OpenCV cannot interpret the bytes as an image.
    """
    if not data:
        raise DecodeError("Cannot decode an empty image buffer")

    buffer = np.frombuffer(data, dtype=np.uint8)
    frame = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if frame is None:
        raise DecodeError(f"Could not decode image data ({len(data)} bytes)")
    return PixelSample.from_bgr(frame, label=label)
