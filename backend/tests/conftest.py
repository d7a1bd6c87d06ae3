import asyncio
import io

import numpy as np
import pytest
import soundfile as sf

from soundrecorder.config import RecorderConfig
from soundrecorder.engine import AudioEngine
from soundrecorder.pcm import PCMBuffer


class FakeSink:
    def __init__(self, sample_rate, channels, delay=0.0, fail_after=None):
        self.sample_rate = sample_rate
        self.channels = channels
        self.delay = delay
        self.fail_after = fail_after
        self.writes = []
        self.closed = False

    async def write(self, frames):
        if self.fail_after is not None and len(self.writes) >= self.fail_after:
            raise RuntimeError("output device lost")
        assert frames.dtype == np.float32
        assert frames.shape[1] == self.channels
        self.writes.append(np.array(frames, copy=True))
        await asyncio.sleep(self.delay)

    def close(self):
        self.closed = True

    @property
    def frames(self):
        if not self.writes:
            return np.zeros((0, self.channels), dtype=np.float32)
        return np.concatenate(self.writes, axis=0)


class FakeOutput:
    """Output backend that records what would have been played."""

    def __init__(self, delay=0.0, fail_activate=False, fail_after=None):
        self.delay = delay
        self.fail_activate = fail_activate
        self.fail_after = fail_after
        self.active = False
        self.activations = 0
        self.sinks = []

    async def activate(self):
        await asyncio.sleep(0)
        if self.fail_activate:
            raise RuntimeError("no output device")
        self.active = True
        self.activations += 1

    async def deactivate(self):
        self.active = False

    def open(self, sample_rate, channels):
        assert self.active, "output opened before the device was running"
        sink = FakeSink(sample_rate, channels, delay=self.delay, fail_after=self.fail_after)
        self.sinks.append(sink)
        return sink


class FakeCaptureDevice:
    """Capture device returning canned frames. Set ``gate`` to hold the grant."""

    def __init__(self, frames=None, sample_rate=44100, error=None):
        self.frames = frames
        self.sample_rate = sample_rate
        self.error = error
        self.gate = None
        self.acquired = False
        self.acquire_calls = 0
        self.release_calls = 0

    async def acquire(self, sample_rate, channels):
        self.acquire_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        self.acquired = True

    def collect(self):
        if self.frames is None:
            return np.zeros((0, 1), dtype=np.float32)
        return np.asarray(self.frames, dtype=np.float32)

    def release(self):
        self.acquired = False
        self.release_calls += 1


def sine_buffer(seconds=1.0, sample_rate=44100, freq=440.0, amplitude=0.5, channels=1):
    t = np.arange(int(round(seconds * sample_rate))) / sample_rate
    tone = amplitude * np.sin(2.0 * np.pi * freq * t)
    return PCMBuffer.from_planar([tone * (1.0 - 0.2 * c) for c in range(channels)], sample_rate)


def inflated_flac_bytes(frames=1000, sample_rate=8000):
    """A short FLAC whose STREAMINFO claims the largest possible sample count."""
    t = np.arange(frames) / sample_rate
    bio = io.BytesIO()
    sf.write(bio, (0.3 * np.sin(2 * np.pi * 200 * t)).astype(np.float32), sample_rate, format="FLAC", subtype="PCM_16")
    raw = bytearray(bio.getvalue())
    assert raw[:4] == b"fLaC"
    # STREAMINFO data starts at byte 8; its total-samples field is the low
    # 36 bits of bytes 21..25.
    raw[21] |= 0x0F
    raw[22:26] = b"\xff\xff\xff\xff"
    return bytes(raw)


@pytest.fixture
def inflated_flac():
    return inflated_flac_bytes()


@pytest.fixture
def sine():
    return sine_buffer


@pytest.fixture
def config():
    return RecorderConfig(visual_interval=1e-6)


@pytest.fixture
def output():
    return FakeOutput()


@pytest.fixture
def capture_device():
    t = np.arange(4410) / 44100.0
    frames = (0.25 * np.sin(2.0 * np.pi * 220.0 * t)).astype(np.float32)[:, np.newaxis]
    return FakeCaptureDevice(frames=frames)


@pytest.fixture
def engine(config, output, capture_device):
    return AudioEngine(config, output_backend=output, capture_device=capture_device)
