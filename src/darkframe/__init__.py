"""
Dark-Frame TRNG Package

Harvests entropy from the noise of a covered camera sensor:
- LSB XOR extraction of one raw bit per pixel
- Von Neumann debiasing of each sample
- Fail-fast batch accumulation over N validated dark samples
- SHA-256 whitening, or raw bitstream export for external test suites
"""

from .batch import BatchAccumulator, BatchResult, BatchState
from .capture import ImageFileSource, SampleSource, WebcamSource
from .conditioning import (
    bits_from_text,
    bits_to_text,
    condition,
    export_filename,
    pack_bits,
    unpack_bits,
    whiten,
)
from .config import BatchConfiguration, OutputMode
from .engine import DarkFrameEngine, create_engine
from .errors import (
    BatchInProgressError,
    CaptureError,
    ConfigurationError,
    DarkFrameError,
    DecodeError,
    ValidationError,
)
from .extraction import extract_bits, harvest, von_neumann_correct
from .sample import PixelSample, decode_sample
from .thermal import ThermalSensor
from .validation import (
    TemperatureStatus,
    below_threshold,
    frame_luminance,
    is_covered,
    is_dark,
    mean_luminance,
    temperature_status,
    watch_cover,
)

__version__ = "0.1.0"

__all__ = [
    # Pipeline
    'DarkFrameEngine', 'create_engine',
    'BatchAccumulator', 'BatchResult', 'BatchState',
    'BatchConfiguration', 'OutputMode',
    # Samples and capture
    'PixelSample', 'decode_sample',
    'SampleSource', 'WebcamSource', 'ImageFileSource',
    'ThermalSensor',
    # Bits
    'extract_bits', 'von_neumann_correct', 'harvest',
    'pack_bits', 'unpack_bits', 'whiten', 'condition',
    'bits_to_text', 'bits_from_text', 'export_filename',
    # Validation
    'mean_luminance', 'below_threshold', 'is_dark', 'frame_luminance', 'is_covered',
    'watch_cover', 'TemperatureStatus', 'temperature_status',
    # Errors
    'DarkFrameError', 'CaptureError', 'DecodeError', 'ValidationError',
    'ConfigurationError', 'BatchInProgressError',
]
