"""
Tests for pixel samples, image decoding, the camera source and the file
replay source.
"""

import asyncio
import threading

import cv2
import numpy as np
import pytest

from darkframe.capture import ImageFileSource, WebcamSource
from darkframe.errors import CaptureError, DecodeError
from darkframe.sample import PixelSample, decode_sample

from .conftest import FakeVideoCapture, dark_pixels, uniform_pixels


class TestPixelSample:
    """Test construction and lifecycle."""

    def test_dimensions(self):
        sample = PixelSample(dark_pixels(0, 4, 6))
        assert (sample.width, sample.height) == (6, 4)

    @pytest.mark.parametrize("pixels", [
        np.zeros((4, 4), dtype=np.uint8),
        np.zeros((4, 4, 2), dtype=np.uint8),
        np.zeros((4, 4, 3), dtype=np.float32),
        np.zeros((0, 4, 3), dtype=np.uint8),
        [[1, 2, 3]],
    ])
    def test_invalid_grids(self, pixels):
        with pytest.raises(DecodeError):
            PixelSample(pixels)

    def test_close(self):
        sample = PixelSample(dark_pixels(0))
        sample.close()
        sample.close()
        assert sample.closed
        with pytest.raises(ValueError):
            sample.pixels

    def test_context_manager(self):
        with PixelSample(dark_pixels(0)) as sample:
            assert not sample.closed
        assert sample.closed

    def test_from_bgr_swaps_channels(self):
        bgr = np.zeros((1, 1, 3), dtype=np.uint8)
        bgr[0, 0] = (1, 2, 3)
        assert PixelSample.from_bgr(bgr).pixels[0, 0].tolist() == [3, 2, 1]


class TestDecodeSample:
    """Test decoding of encoded image bytes."""

    def test_png_round_trip_in_rgb(self):
        rgb = dark_pixels(1, 5, 7)
        ok, encoded = cv2.imencode(".png", cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
        assert ok
        sample = decode_sample(encoded.tobytes(), label="x.png")
        assert np.array_equal(sample.pixels, rgb)
        assert sample.label == "x.png"

    def test_garbage(self):
        with pytest.raises(DecodeError):
            decode_sample(b"definitely not an image")

    def test_empty(self):
        with pytest.raises(DecodeError):
            decode_sample(b"")


class TestImageFileSource:
    """Test ordered replay from disk."""

    @pytest.mark.asyncio
    async def test_replays_in_order(self, tmp_path):
        grids = [dark_pixels(i, 3, 3) for i in range(2)]
        paths = []
        for i, grid in enumerate(grids):
            path = tmp_path / f"{i}.png"
            cv2.imwrite(str(path), cv2.cvtColor(grid, cv2.COLOR_RGB2BGR))
            paths.append(path)

        source = ImageFileSource(paths)
        assert source.remaining == 2
        for grid in grids:
            sample = await source.acquire()
            assert np.array_equal(sample.pixels, grid)
        assert source.remaining == 0

        with pytest.raises(CaptureError):
            await source.acquire()

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        source = ImageFileSource([tmp_path / "missing.png"])
        with pytest.raises(CaptureError):
            await source.acquire()

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"\x89PNG broken")
        with pytest.raises(DecodeError):
            await ImageFileSource([path]).acquire()


class TestWebcamSource:
    """Test the OpenCV camera source against a fake device."""

    def open(self, monkeypatch, camera, device=0):
        monkeypatch.setattr("darkframe.capture.cv2.VideoCapture", camera)
        return WebcamSource(device)

    def test_unopened_device_raises(self, monkeypatch):
        camera = FakeVideoCapture(opened=False)
        with pytest.raises(CaptureError):
            self.open(monkeypatch, camera, device=3)
        assert camera.released

    def test_manual_exposure_requested(self, monkeypatch):
        camera = FakeVideoCapture()
        with self.open(monkeypatch, camera):
            assert camera.properties[cv2.CAP_PROP_AUTO_EXPOSURE] == 0.25
            assert camera.properties[cv2.CAP_PROP_FRAME_WIDTH] == 320

    @pytest.mark.asyncio
    async def test_acquire_converts_bgr_and_labels(self, monkeypatch):
        frame = np.zeros((4, 5, 3), dtype=np.uint8)
        frame[0, 0] = (1, 2, 3)
        camera = FakeVideoCapture(frames=[frame])
        source = self.open(monkeypatch, camera, device=2)
        try:
            first = await source.acquire()
            second = await source.acquire()
        finally:
            source.close()
        assert first.pixels[0, 0].tolist() == [3, 2, 1]
        assert (first.width, first.height) == (5, 4)
        assert first.label == "camera2#1"
        assert second.label == "camera2#2"

    @pytest.mark.asyncio
    async def test_failed_read_raises(self, monkeypatch):
        source = self.open(monkeypatch, FakeVideoCapture(frames=[None]))
        try:
            with pytest.raises(CaptureError):
                await source.acquire()
        finally:
            source.close()

    @pytest.mark.asyncio
    async def test_acquire_after_close_raises(self, monkeypatch):
        camera = FakeVideoCapture()
        source = self.open(monkeypatch, camera)
        source.close()
        source.close()
        assert source.closed and camera.released
        with pytest.raises(CaptureError):
            await source.acquire()

    @pytest.mark.asyncio
    async def test_luminance_feed_yields_small_grey_planes(self, monkeypatch):
        camera = FakeVideoCapture(frames=[uniform_pixels(40, 240, 320)])
        source = self.open(monkeypatch, camera)
        feed = source.luminance_feed(interval=0)
        try:
            planes = [await feed.__anext__() for _ in range(2)]
        finally:
            await feed.aclose()
            source.close()
        for plane in planes:
            assert plane.shape == (48, 64)
            assert plane.dtype == np.uint8
            assert np.all(plane == 40)

    @pytest.mark.asyncio
    async def test_cancelled_read_does_not_overlap_next_read(self, monkeypatch):
        gate = threading.Event()
        camera = FakeVideoCapture(gate=gate)
        source = self.open(monkeypatch, camera)

        first = asyncio.create_task(source.acquire())
        assert await asyncio.to_thread(camera.reading.wait, 5)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        # The device is still inside the abandoned read
        second = asyncio.create_task(source.acquire())
        await asyncio.sleep(0.05)
        assert not second.done()
        assert camera.max_active == 1

        gate.set()
        sample = await second
        assert sample.label == "camera0#1"
        assert camera.reads == 2
        assert camera.max_active == 1
        await asyncio.to_thread(source.close)

    @pytest.mark.asyncio
    async def test_close_waits_for_in_flight_read(self, monkeypatch):
        gate = threading.Event()
        camera = FakeVideoCapture(gate=gate)
        source = self.open(monkeypatch, camera)

        pending = asyncio.create_task(source.acquire())
        assert await asyncio.to_thread(camera.reading.wait, 5)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        closing = asyncio.create_task(asyncio.to_thread(source.close))
        await asyncio.sleep(0.05)
        assert not camera.released

        gate.set()
        await closing
        assert camera.released
        assert not camera.released_during_read
