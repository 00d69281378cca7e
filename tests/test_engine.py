"""
Tests for the engine that owns the capture source and serializes batches.
"""

import asyncio

import cv2
import pytest

from darkframe.capture import ImageFileSource
from darkframe.config import BatchConfiguration, OutputMode
from darkframe.engine import DarkFrameEngine, create_engine
from darkframe.errors import BatchInProgressError
from darkframe.sample import PixelSample

from .conftest import FakeSource, dark_pixels


def write_png(path, rgb):
    assert cv2.imwrite(str(path), cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR))
    return path


class ClosingSource(FakeSource):
    closed = False

    def close(self):
        self.closed = True


class TestDarkFrameEngine:
    """Test batch ownership and resource release."""

    @pytest.mark.asyncio
    async def test_generate_runs_batch(self):
        engine = DarkFrameEngine(FakeSource([PixelSample(dark_pixels(s)) for s in range(2)]))
        result = await engine.generate(BatchConfiguration(sample_count=2))
        assert result.ok
        assert not engine.busy
        assert engine.status == "Idle"

    @pytest.mark.asyncio
    async def test_second_batch_rejected_while_running(self):
        gate = asyncio.Event()

        class SlowSource:
            async def acquire(self):
                await gate.wait()
                return PixelSample(dark_pixels(0))

        engine = DarkFrameEngine(SlowSource())
        task = asyncio.create_task(engine.generate(BatchConfiguration(sample_count=1)))
        await asyncio.sleep(0)
        assert engine.busy
        assert engine.status.startswith("Capturing image 1 of 1")

        with pytest.raises(BatchInProgressError):
            await engine.generate(BatchConfiguration(sample_count=1))

        gate.set()
        assert (await task).ok
        assert not engine.busy

    @pytest.mark.asyncio
    async def test_new_batch_after_failure(self):
        """Retry is a fresh batch; nothing carries over."""
        source = FakeSource([
            PixelSample(dark_pixels(0)),
            PixelSample(dark_pixels(0) + 200),
            PixelSample(dark_pixels(0)),
        ])
        engine = DarkFrameEngine(source)
        failed = await engine.generate(BatchConfiguration(sample_count=2))
        retried = await engine.generate(BatchConfiguration(sample_count=1))
        first_only = await DarkFrameEngine(
            FakeSource([PixelSample(dark_pixels(0))])
        ).generate(BatchConfiguration(sample_count=1))

        assert failed.failed_sample == 2
        assert retried.digest == first_only.digest

    def test_context_manager_closes_source(self):
        source = ClosingSource([])
        with DarkFrameEngine(source):
            pass
        assert source.closed

    def test_close_without_close_method(self):
        DarkFrameEngine(FakeSource([])).close()


class TestCreateEngine:
    """Test the factory with replayed image files."""

    def test_images_use_file_source(self, tmp_path):
        path = write_png(tmp_path / "a.png", dark_pixels(0))
        with create_engine(images=[path]) as engine:
            assert isinstance(engine.source, ImageFileSource)

    @pytest.mark.asyncio
    async def test_replay_is_reproducible(self, tmp_path):
        paths = [write_png(tmp_path / f"{i}.png", dark_pixels(i)) for i in range(3)]
        config = BatchConfiguration(sample_count=3, mode=OutputMode.RAW)

        first = await create_engine(images=paths).generate(config)
        second = await create_engine(images=paths).generate(config)

        assert first.ok
        assert first.bitstream == second.bitstream
