"""
Final conditioning of the corrected bit buffer.

ECE/Crypto Background:
- Von Neumann correction removes first-order bias but leaves any
  correlation between successive pairs in place
- SHA-256 acts as a cryptographic "whitening" function: the digest is
  uniform-looking and fixed size no matter how many samples fed it
- You can only extract at most as much entropy as you input, so the
  raw export mode hands the un-hashed bits to external test batteries
  (NIST SP 800-22, dieharder) for inspection
"""

import hashlib
from datetime import datetime
from typing import Optional, Union

import numpy as np

from .config import OutputMode

# SHA-256 renders as 64 hex characters
DIGEST_BITS = 256

EXPORT_PREFIX = "TRNG_TestData_"


def pack_bits(bits) -> bytes:
    """
    Pack 0/1 values into bytes, most significant bit first.

    If the length is not a multiple of 8, the last byte is padded with
    zero bits on its low-order end.
    """
    bits = np.asarray(bits, dtype=np.uint8).ravel()
    return np.packbits(bits, bitorder='big').tobytes()


def unpack_bits(data: bytes, bit_count: Optional[int] = None) -> np.ndarray:
    """
    Inverse of pack_bits.

    Args:
        data: Packed bytes.
        bit_count: Number of bits to keep; padding beyond it is dropped.
            Defaults to all 8 * len(data) bits.
    """
    raw = np.frombuffer(data, dtype=np.uint8)
    bits = np.unpackbits(raw, bitorder='big')
    if bit_count is not None:
        if bit_count < 0 or bit_count > len(bits):
            raise ValueError(f"bit_count {bit_count} out of range for {len(data)} bytes")
        bits = bits[:bit_count]
    return bits


def whiten(bits) -> str:
    """
    Apply SHA-256 whitening to a corrected bit buffer.

    Returns:
        Lowercase hexadecimal digest, 64 characters.
    """
    return hashlib.sha256(pack_bits(bits)).hexdigest()


def bits_to_text(bits) -> str:
    """Render bits as an ASCII string of '0' and '1' characters."""
    bits = np.asarray(bits, dtype=np.uint8).ravel()
    return (bits + ord('0')).tobytes().decode('ascii')


def bits_from_text(text: Union[str, bytes]) -> np.ndarray:
    """
    Parse a raw-export bitstream ('0'/'1' characters, no delimiters).

    Surrounding whitespace such as a trailing newline is ignored.

    Raises:
        ValueError: If any other character is present.
    """
    if isinstance(text, str):
        text = text.encode('ascii', errors='replace')
    raw = np.frombuffer(text.strip(), dtype=np.uint8)
    bits = raw - ord('0')
    if np.any(bits > 1):
        raise ValueError("Bitstream may only contain '0' and '1' characters")
    return bits.astype(np.uint8)


def condition(bits, mode: OutputMode) -> str:
    """
    Finalize a corrected bit buffer for the requested output mode.

    Returns:
        The hex digest in WHITENED mode, the '0'/'1' text in RAW mode.
    """
    if mode is OutputMode.WHITENED:
        return whiten(bits)
    if mode is OutputMode.RAW:
        return bits_to_text(bits)
    raise ValueError(f"Unknown output mode: {mode!r}")


def export_filename(now: Optional[datetime] = None) -> str:
    """Default file name for a raw bitstream export."""
    now = now or datetime.now()
    return f"{EXPORT_PREFIX}{now.strftime('%Y%m%d_%H%M%S')}.txt"
