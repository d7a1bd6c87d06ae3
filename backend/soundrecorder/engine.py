"""
Audio Engine Handle
===================
Explicit replacement for a global audio context. One engine is created per
recorder session and passed to the capture source and the preview player;
closing it releases every device it opened.

Backends are duck-typed so tests can substitute fakes:

Output backend:
    async activate()                  -> bring the output device up
    async deactivate()
    open(sample_rate, channels)       -> sink with ``async write(frames)``
                                         ((frames, channels) float32) and
                                         ``close()``

Capture device:
    async acquire(sample_rate, channels) -> start capturing (may prompt)
    collect()                            -> (frames, channels) float32 array
    release()                            -> idempotent
    sample_rate                          -> actual capture rate
"""

import logging
from enum import Enum
from typing import Optional

from .config import RecorderConfig
from .errors import DeviceUnavailable

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    SUSPENDED = "suspended"
    RUNNING = "running"
    CLOSED = "closed"


class AudioEngine:
    """Owns the output backend and the capture device for one session."""

    def __init__(
        self,
        config: Optional[RecorderConfig] = None,
        output_backend=None,
        capture_device=None,
    ):
        self.config = config or RecorderConfig()
        self._output_backend = output_backend
        self._capture_device = capture_device
        self.state = EngineState.SUSPENDED

    @property
    def output_backend(self):
        if self._output_backend is None:
            from .devices import SoundDeviceOutput

            self._output_backend = SoundDeviceOutput(self.config.output_device)
        return self._output_backend

    @property
    def capture_device(self):
        if self._capture_device is None:
            from .devices import SoundDeviceCapture

            self._capture_device = SoundDeviceCapture(self.config.input_device)
        return self._capture_device

    @property
    def running(self) -> bool:
        return self.state is EngineState.RUNNING

    async def resume(self) -> None:
        """Activate the output device; returns once it is confirmed running."""
        if self.state is EngineState.CLOSED:
            raise DeviceUnavailable("Audio engine is closed")
        if self.state is EngineState.RUNNING:
            return
        logger.info("Resuming suspended audio engine")
        try:
            await self.output_backend.activate()
        except DeviceUnavailable:
            raise
        except Exception as exc:
            raise DeviceUnavailable(f"Output device could not be activated: {exc}") from exc
        self.state = EngineState.RUNNING
        logger.info("Audio engine running")

    async def suspend(self) -> None:
        if self.state is not EngineState.RUNNING:
            return
        await self.output_backend.deactivate()
        self.state = EngineState.SUSPENDED

    def open_output(self, sample_rate: int, channels: int):
        if self.state is not EngineState.RUNNING:
            raise DeviceUnavailable(f"Audio engine is {self.state.value}, not running")
        return self.output_backend.open(sample_rate, channels)

    async def close(self) -> None:
        if self.state is EngineState.CLOSED:
            return
        if self._capture_device is not None:
            self._capture_device.release()
        if self.state is EngineState.RUNNING:
            await self.output_backend.deactivate()
        self.state = EngineState.CLOSED
        logger.info("Audio engine closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
