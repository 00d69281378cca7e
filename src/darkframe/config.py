"""
Batch configuration and default tuning constants.

ECE Note: The thresholds are average luminance values on the 8-bit
(0-255) scale. A properly covered CMOS sensor sits in the low single
digits; anything approaching 20 means light is leaking past the cover
and the LSBs start tracking scene texture instead of dark current.
"""

import math
from dataclasses import dataclass
from enum import Enum

from .errors import ConfigurationError


# Average luminance below which a captured sample counts as dark
DEFAULT_DARK_THRESHOLD = 20.0

# Live cover monitor threshold (Y plane average)
DEFAULT_COVER_THRESHOLD = 25.0

# Device temperature above which noise quality is flagged (Celsius)
DEFAULT_TEMPERATURE_WARN_C = 45.0

DEFAULT_BATCH_SIZE = 10


class OutputMode(Enum):
    """How the corrected bit buffer is finalized."""

    WHITENED = "whitened"  # SHA-256 digest, 64 hex chars
    RAW = "raw"            # '0'/'1' text for external test suites


@dataclass(frozen=True)
class BatchConfiguration:
    """
    Immutable settings for one batch run.

    Attributes:
        sample_count: Number of samples N to capture (must be >= 1).
        dark_threshold: Mean luminance a sample must stay strictly below.
        mode: Whitened digest or raw bitstream export.
        temperature_warn_c: Advisory temperature threshold in Celsius.
    """

    sample_count: int = DEFAULT_BATCH_SIZE
    dark_threshold: float = DEFAULT_DARK_THRESHOLD
    mode: OutputMode = OutputMode.WHITENED
    temperature_warn_c: float = DEFAULT_TEMPERATURE_WARN_C

    def validate(self) -> None:
        """
        Check the configuration before any sample is acquired.

        Raises:
            ConfigurationError: If any field is out of range.
        """
        count = self.sample_count
        if isinstance(count, bool) or not isinstance(count, int):
            raise ConfigurationError(
                f"Batch size must be an integer, got {count!r}"
            )
        if count < 1:
            raise ConfigurationError(
                f"Batch size must be greater than 0, got {count}"
            )
        threshold = self.dark_threshold
        if not isinstance(threshold, (int, float)) or not math.isfinite(threshold) or threshold < 0:
            raise ConfigurationError(
                f"Darkness threshold must be a non-negative number, got {threshold!r}"
            )
        if not isinstance(self.mode, OutputMode):
            raise ConfigurationError(f"Unknown output mode: {self.mode!r}")
        warn = self.temperature_warn_c
        if not isinstance(warn, (int, float)) or not math.isfinite(warn):
            raise ConfigurationError(
                f"Temperature threshold must be finite, got {self.temperature_warn_c!r}"
            )
