"""
Environmental checks on the entropy source.

Two checks guard the sensor:
1. Dark-sample validation - every captured frame must have a mean
   luminance below the configured threshold before its bits are used.
2. Live cover monitoring - an advisory flag computed from a continuous
   low-resolution luminance (Y plane) feed. It never gates a batch.

The device temperature check is advisory too: a hot sensor produces more
thermal noise but also more drift, so it is reported, not enforced.
"""

import logging
from enum import Enum
from typing import AsyncIterable, AsyncIterator

import numpy as np

from .config import (
    DEFAULT_COVER_THRESHOLD,
    DEFAULT_DARK_THRESHOLD,
    DEFAULT_TEMPERATURE_WARN_C,
)
from .sample import PixelSample

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma weights for R, G, B, in thousandths
LUMA_WEIGHTS = np.array([299, 587, 114], dtype=np.int64)
LUMA_SCALE = 1000


def mean_luminance(sample: PixelSample) -> float:
    """
    Average of 0.299*R + 0.587*G + 0.114*B over every pixel.

    The weighted sum is accumulated in integers and divided once, so a
    uniform grid of value v reads as exactly v.
    """
    pixels = sample.pixels
    weighted = int((pixels.astype(np.int64) @ LUMA_WEIGHTS).sum())
    count = pixels.shape[0] * pixels.shape[1]
    return weighted / (LUMA_SCALE * count)


def below_threshold(luminance: float, threshold: float) -> bool:
    """The darkness comparison shared by the sample gate and the cover check."""
    return luminance < threshold


def is_dark(sample: PixelSample, threshold: float = DEFAULT_DARK_THRESHOLD) -> bool:
    """
    Check that the sensor aperture was obstructed for this sample.

    Args:
        sample: Captured pixel grid.
        threshold: Mean luminance the sample must stay strictly below.

    Returns:
        True if the mean luminance is below the threshold.
    """
    return below_threshold(mean_luminance(sample), threshold)


def frame_luminance(plane) -> float:
    """
    Average a luminance (Y) plane.

    The live feed already delivers luma, so no channel weighting applies.
    An empty plane reads as 0.0.
    """
    plane = np.asarray(plane)
    if plane.size == 0:
        return 0.0
    return float(plane.astype(np.float64).mean())


def is_covered(plane, threshold: float = DEFAULT_COVER_THRESHOLD) -> bool:
    """True when the live luminance plane suggests the lens is covered."""
    return below_threshold(frame_luminance(plane), threshold)


async def watch_cover(
    feed: AsyncIterable,
    threshold: float = DEFAULT_COVER_THRESHOLD,
) -> AsyncIterator[bool]:
    """
    Turn a luminance-plane feed into a stream of covered flags.

    Only changes are logged; every frame still yields a flag so callers
    can refresh their display on each update.
    """
    previous = None
    async for plane in feed:
        covered = is_covered(plane, threshold)
        if covered != previous:
            logger.info("Camera %s", "covered" if covered else "not covered")
            previous = covered
        yield covered


class TemperatureStatus(Enum):
    NORMAL = "normal"
    HIGH = "high"


def temperature_status(
    tenths_of_degree_c: int,
    warn_threshold: float = DEFAULT_TEMPERATURE_WARN_C,
) -> TemperatureStatus:
    """
    Classify a device temperature reading.

    Args:
        tenths_of_degree_c: Temperature in tenths of a degree Celsius
            (e.g. 452 means 45.2 C), as battery and thermal drivers report it.
        warn_threshold: Temperature in Celsius above which noise quality
            may be degraded.

    Returns:
        HIGH if the temperature is strictly above the threshold.
    """
    if tenths_of_degree_c / 10.0 > warn_threshold:
        return TemperatureStatus.HIGH
    return TemperatureStatus.NORMAL
