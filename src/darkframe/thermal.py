"""
Device temperature source for the advisory thermal check.

ECE Note: Dark current roughly doubles for every 6-8 C rise in sensor
temperature. More thermal electrons means more noise per pixel, but also
more hot pixels and slow drift, so a hot device is flagged, not blocked.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .config import DEFAULT_TEMPERATURE_WARN_C
from .validation import TemperatureStatus, temperature_status

logger = logging.getLogger(__name__)

# Linux thermal zones report millidegrees Celsius
DEFAULT_SYSFS_PATH = "/sys/class/thermal/thermal_zone0/temp"


class ThermalSensor:
    """
    Holds the latest pushed device temperature.

    Readings are pushed in via update() (for example from a battery or
    thermal-zone poller); the batch loop only ever reads the latest one.
    """

    def __init__(self, warn_threshold: float = DEFAULT_TEMPERATURE_WARN_C):
        self.warn_threshold = warn_threshold
        self._tenths: Optional[int] = None

    @property
    def tenths(self) -> Optional[int]:
        """Latest reading in tenths of a degree Celsius, or None."""
        return self._tenths

    @property
    def celsius(self) -> Optional[float]:
        if self._tenths is None:
            return None
        return self._tenths / 10.0

    def update(self, tenths_of_degree_c: int) -> None:
        """Record a new reading in tenths of a degree Celsius."""
        self._tenths = int(tenths_of_degree_c)

    def read_sysfs(self, path: Union[str, Path] = DEFAULT_SYSFS_PATH) -> int:
        """
        Poll a Linux thermal zone and record the value.

        Returns:
            The reading in tenths of a degree Celsius.

        Raises:
            OSError: If the file cannot be read.
            ValueError: If it does not hold an integer.
        """
        millidegrees = int(Path(path).read_text().strip())
        tenths = millidegrees // 100
        self.update(tenths)
        logger.debug("Thermal zone %s reads %.1f C", path, tenths / 10.0)
        return tenths

    def status(self, warn_threshold: Optional[float] = None) -> Optional[TemperatureStatus]:
        """Classify the latest reading; None until a reading arrives."""
        if self._tenths is None:
            return None
        threshold = self.warn_threshold if warn_threshold is None else warn_threshold
        return temperature_status(self._tenths, threshold)

    def describe(self) -> str:
        """Human-readable status line for display."""
        status = self.status()
        if status is None:
            return "Temperature unknown"
        if status is TemperatureStatus.HIGH:
            return f"Temperature is high ({self.celsius:.1f}°C) - May increase noise"
        return f"Temperature is normal ({self.celsius:.1f}°C)"
