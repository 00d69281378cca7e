"""Shared builders and fake capture sources for the test suite."""

import threading

import numpy as np

from darkframe.sample import PixelSample


def dark_pixels(seed: int, height: int = 16, width: int = 16) -> np.ndarray:
    """Noisy RGB grid with values 0-7, mean luminance around 3.5."""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 8, size=(height, width, 3), dtype=np.uint8)


def uniform_pixels(value: int, height: int = 8, width: int = 8) -> np.ndarray:
    return np.full((height, width, 3), value, dtype=np.uint8)


class FakeSource:
    """Hands over prepared samples (or raises prepared errors) in order."""

    def __init__(self, items):
        self.items = list(items)
        self.calls = 0
        self.acquired = []

    async def acquire(self) -> PixelSample:
        item = self.items[self.calls]
        self.calls += 1
        if isinstance(item, BaseException):
            raise item
        self.acquired.append(item)
        return item



class FakeVideoCapture:
    """
    Stands in for cv2.VideoCapture.

    Frames are BGR arrays returned in order (the last one repeats). When a
    gate event is given, read() blocks until it is set. Overlapping reads
    and a release() during a read are recorded.
    """

    def __init__(self, frames=None, opened=True, gate=None):
        self.frames = list(frames) if frames is not None else [uniform_pixels(3, 240, 320)]
        self.opened = opened
        self.gate = gate
        self.properties = {}
        self.reads = 0
        self.active = 0
        self.max_active = 0
        self.released = False
        self.released_during_read = False
        self.reading = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, device):
        self.device = device
        return self

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.properties[prop] = value
        return True

    def read(self):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.reading.set()
        try:
            if self.gate is not None:
                self.gate.wait(5)
            frame = self.frames[min(self.reads, len(self.frames) - 1)]
            self.reads += 1
            if frame is None:
                return False, None
            return True, frame.copy()
        finally:
            with self._lock:
                self.active -= 1

    def release(self):
        with self._lock:
            if self.active:
                self.released_during_read = True
        self.released = True
