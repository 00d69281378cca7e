"""
Exception hierarchy for the dark-frame entropy pipeline.

All exceptions inherit from DarkFrameError for unified handling. Errors
tied to a particular sample carry its 1-based index in the batch.
"""

from typing import Optional


class DarkFrameError(Exception):
    """Base exception for all dark-frame pipeline errors."""

    def __init__(self, message: str, sample_index: Optional[int] = None):
        super().__init__(message)
        self.sample_index = sample_index


class CaptureError(DarkFrameError):
    """Raised when the capture source fails to produce a sample."""
    pass


class DecodeError(DarkFrameError):
    """Raised when a captured sample cannot be read as a pixel grid."""
    pass


class ValidationError(DarkFrameError):
    """Raised when a sample is too bright to trust as a noise source."""

    def __init__(
        self,
        message: str,
        sample_index: Optional[int] = None,
        luminance: Optional[float] = None,
        threshold: Optional[float] = None,
    ):
        super().__init__(message, sample_index)
        self.luminance = luminance
        self.threshold = threshold


class ConfigurationError(DarkFrameError):
    """Raised when a batch configuration is invalid."""
    pass


class BatchInProgressError(DarkFrameError):
    """Raised when a batch is started while another one is running."""
    pass
