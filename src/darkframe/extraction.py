"""
Raw bit harvesting and Von Neumann debiasing.

ECE Physics Background:
-----------------------
With the aperture covered, each pixel value is dominated by dark current
(thermally generated electrons) and read noise from the column amplifiers.
The least significant bit of every channel flips essentially at random,
but the three channels of one pixel share some common-mode noise from
the same photosite neighbourhood and readout chain.

LSB XOR EXTRACTION:
- One bit per pixel: lsb(R) ^ lsb(G) ^ lsb(B)
- XOR of independent-ish bits pushes the result toward 50/50
- Correlated offsets common to all channels cancel out

VON NEUMANN CORRECTION:
- Read bits in non-overlapping pairs
- 01 -> 0, 10 -> 1, 00 and 11 are discarded
- For a stationary source with P(1) = p, P(01) = P(10) = p(1-p), so the
  output is unbiased at the cost of throughput (at most 1 bit per pair,
  about 1 bit per 4 input bits for an unbiased source)
"""

import numpy as np

from .sample import PixelSample


def extract_bits(sample: PixelSample) -> np.ndarray:
    """
    Derive one raw bit per pixel from the channel LSBs.

    Args:
        sample: Decoded pixel grid.

    Returns:
        uint8 array of 0/1 values, length width * height, in row-major
        scan order.
    """
    pixels = sample.pixels
    red = pixels[:, :, 0]
    green = pixels[:, :, 1]
    blue = pixels[:, :, 2]
    bits = np.bitwise_and(red ^ green ^ blue, 1)
    return bits.astype(np.uint8).ravel()


def von_neumann_correct(bits) -> np.ndarray:
    """
    Debias a bit sequence with the Von Neumann pair transform.

    A trailing unpaired bit is dropped. Samples are corrected one at a
    time, so it is never carried over into the next sample.

    Args:
        bits: Sequence of 0/1 values.

    Returns:
        uint8 array of corrected bits, at most len(bits) // 2 long.
    """
    bits = np.asarray(bits, dtype=np.uint8).ravel()
    usable = len(bits) - (len(bits) % 2)
    pairs = bits[:usable].reshape(-1, 2)
    # 01 -> first bit 0, 10 -> first bit 1
    keep = pairs[:, 0] != pairs[:, 1]
    return pairs[keep, 0].copy()


def harvest(sample: PixelSample) -> np.ndarray:
    """Extract and correct one sample in a single step."""
    return von_neumann_correct(extract_bits(sample))
