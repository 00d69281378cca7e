"""
Quick statistics and plots for raw-export bitstreams.

These are sanity checks, not a certification. For real assessment feed
the exported file to a formal battery:
- NIST SP 800-22 Statistical Test Suite
- Diehard/Dieharder tests
- TestU01 (Crush, BigCrush)
"""

import logging
from typing import Dict

import matplotlib
# Use non-interactive backend for headless environments
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from .conditioning import pack_bits

logger = logging.getLogger(__name__)

# Each Monte Carlo point needs two 32-bit coordinates
POINT_BYTES = 8
MIN_PI_POINTS = 1000


def _whole_bytes(bits) -> np.ndarray:
    """Pack only complete bytes; padding would bias the last one."""
    bits = np.asarray(bits, dtype=np.uint8).ravel()
    whole = len(bits) - (len(bits) % 8)
    return np.frombuffer(pack_bits(bits[:whole]), dtype=np.uint8)


def bitstream_statistics(bits) -> Dict[str, float]:
    """
    Summary statistics of a corrected bitstream.

    Returns:
        Dictionary with bit_count, ones_ratio, byte_count, byte_mean,
        shannon_entropy (bits per byte, max 8.0) and chi_squared (over the
        256 byte values, ~255 expected for uniform data).
    """
    bits = np.asarray(bits, dtype=np.uint8).ravel()
    byte_array = _whole_bytes(bits)

    stats = {
        'bit_count': int(len(bits)),
        'ones_ratio': float(bits.mean()) if len(bits) else 0.0,
        'byte_count': int(len(byte_array)),
        'byte_mean': 0.0,
        'shannon_entropy': 0.0,
        'chi_squared': 0.0,
    }
    if len(byte_array) == 0:
        return stats

    # Shannon entropy: H = -sum p(x) log2(p(x))
    _, counts = np.unique(byte_array, return_counts=True)
    probabilities = counts / len(byte_array)
    entropy = -np.sum(probabilities * np.log2(probabilities))

    histogram = np.bincount(byte_array, minlength=256)
    expected = len(byte_array) / 256
    chi_squared = np.sum((histogram - expected) ** 2 / expected)

    stats['byte_mean'] = float(byte_array.mean())
    stats['shannon_entropy'] = float(entropy)
    stats['chi_squared'] = float(chi_squared)
    return stats


def monte_carlo_pi(bits) -> Dict[str, float]:
    """
    Estimate pi from the bitstream by dropping points in the unit square.

    Every 64 bits form one point: two big-endian unsigned 32-bit
    coordinates scaled to [0, 1].

    Raises:
        ValueError: If the stream holds fewer than 1000 points.
    """
    data = pack_bits(np.asarray(bits, dtype=np.uint8).ravel())
    points_count = len(data) // POINT_BYTES
    if points_count < MIN_PI_POINTS:
        raise ValueError(
            f"Bitstream too short: need at least {MIN_PI_POINTS * POINT_BYTES * 8} bits"
        )

    coords = np.frombuffer(data[:points_count * POINT_BYTES], dtype='>u4')
    coords = coords.astype(np.float64) / 4294967295.0
    x, y = coords[0::2], coords[1::2]
    inside = int(np.count_nonzero(x * x + y * y <= 1.0))

    estimate = 4.0 * inside / points_count
    return {
        'points': points_count,
        'inside': inside,
        'estimate': estimate,
        'error_percent': abs((estimate - np.pi) / np.pi) * 100,
    }


def create_histogram_plot(bits, output_path: str) -> None:
    """
    Plot the distribution of packed byte values.

    ECE Validation: a good source gives a flat histogram across all 256
    byte values; peaks or valleys point at bias in the sensor noise.
    """
    stats = bitstream_statistics(bits)
    byte_array = _whole_bytes(bits)

    fig, ax = plt.subplots(figsize=(12, 6))
    ax.hist(byte_array, bins=256, range=(0, 256), color='steelblue',
            edgecolor='none', alpha=0.7)

    expected_count = len(byte_array) / 256
    ax.axhline(y=expected_count, color='red', linestyle='--',
               label=f'Expected uniform: {expected_count:.1f}')
    ax.set_xlabel('Byte Value (0-255)', fontsize=12)
    ax.set_ylabel('Frequency', fontsize=12)
    ax.set_title(
        f'Dark-Frame Bitstream Histogram - {len(byte_array):,} bytes\n'
        f'χ² = {stats["chi_squared"]:.1f} (uniform expectation: ~255)',
        fontsize=14
    )
    ax.legend(loc='upper right')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    logger.debug("Histogram saved to: %s", output_path)


def create_bitmap_plot(bits, output_path: str) -> None:
    """
    Render the bitstream as a black-and-white square image.

    ECE Validation: the bitmap should look like featureless salt-and-pepper
    noise. Stripes mean correlation between neighbouring pixels or
    samples; blotches mean light leaking past the cover.
    """
    bits = np.asarray(bits, dtype=np.uint8).ravel()
    width = max(int(np.sqrt(len(bits))), 1)
    height = len(bits) // width
    if height == 0:
        raise ValueError("Bitstream is empty")
    image_data = bits[:width * height].reshape((height, width))

    fig, ax = plt.subplots(figsize=(10, 10))
    ax.imshow(image_data, cmap='gray', interpolation='nearest', vmin=0, vmax=1)
    ax.set_xlabel('Column', fontsize=12)
    ax.set_ylabel('Row', fontsize=12)
    ax.set_title(
        f'Dark-Frame Bitstream Bitmap - {width * height:,} bits ({width}×{height})\n'
        'Visual Test: Should appear as uniform noise with no patterns',
        fontsize=14
    )

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    logger.debug("Bitmap saved to: %s", output_path)
