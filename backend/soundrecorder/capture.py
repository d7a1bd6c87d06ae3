"""
Capture Source
==============
Microphone capture with scoped device acquisition, plus file import.

Hold-to-record: the UI calls ``begin_capture()`` on press and
``end_capture(handle)`` on release. A release can arrive while the device
grant is still pending; the handle's cancellation token is then set and
``begin_capture`` checks it as soon as the grant resolves, releasing the
device and discarding anything captured.
"""

import asyncio
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import numpy as np

from . import wav
from .engine import AudioEngine
from .errors import CaptureCancelled, DeviceUnavailable, EmptyCapture, SourceUnavailable
from .pcm import PCMBuffer

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class CaptureState(str, Enum):
    PENDING = "pending"
    CAPTURING = "capturing"
    FINISHED = "finished"
    CANCELLED = "cancelled"


class CaptureHandle:
    """Ticket for one capture, valid from ``begin_capture`` until ``end_capture``."""

    def __init__(self):
        self.token = CancellationToken()
        self.state = CaptureState.PENDING
        self.started_at: Optional[float] = None
        self._settled = asyncio.Event()

    @property
    def pending(self) -> bool:
        return self.state is CaptureState.PENDING

    async def wait_settled(self) -> None:
        await self._settled.wait()


class CaptureSource:
    def __init__(self, engine: AudioEngine):
        self.engine = engine
        self._current: Optional[CaptureHandle] = None

    @property
    def current(self) -> Optional[CaptureHandle]:
        return self._current

    @property
    def busy(self) -> bool:
        return self._current is not None

    async def begin_capture(self) -> CaptureHandle:
        """
        Acquire the capture device and start recording.

        Returns:
            CaptureHandle to pass to ``end_capture``

        Raises:
            DeviceUnavailable: no device, permission denied, or already capturing
            CaptureCancelled: ``end_capture`` ran before the grant resolved
        """
        if self._current is not None:
            raise DeviceUnavailable("A capture is already in progress")

        handle = CaptureHandle()
        self._current = handle
        device = self.engine.capture_device
        config = self.engine.config
        try:
            await device.acquire(config.sample_rate, config.capture_channels)
        except DeviceUnavailable:
            self._finish(handle, CaptureState.CANCELLED)
            device.release()
            raise
        except Exception as exc:
            self._finish(handle, CaptureState.CANCELLED)
            device.release()
            raise DeviceUnavailable(f"Capture device unavailable: {exc}") from exc

        if handle.token.cancelled:
            device.release()
            self._finish(handle, CaptureState.CANCELLED)
            logger.info("Capture ended before the device was granted; discarded")
            raise CaptureCancelled("Capture ended before the device was granted")

        handle.state = CaptureState.CAPTURING
        handle.started_at = time.monotonic()
        logger.info("Capture started")
        return handle

    async def end_capture(self, handle: CaptureHandle) -> bytes:
        """
        Stop capturing, release the device and return the take as WAV bytes.

        Raises:
            EmptyCapture: nothing was recorded, including a release that
                arrived before the device grant
        """
        if handle.pending:
            handle.token.cancel()
            await handle.wait_settled()
            raise EmptyCapture("Capture ended before recording started")
        if handle.state is not CaptureState.CAPTURING:
            raise EmptyCapture(f"Capture already {handle.state.value}")

        device = self.engine.capture_device
        try:
            frames = device.collect()
            sample_rate = device.sample_rate or self.engine.config.sample_rate
        finally:
            device.release()
            self._finish(handle, CaptureState.FINISHED)

        frames = np.asarray(frames, dtype=np.float32)
        if frames.size == 0:
            raise EmptyCapture("Capture produced no audio")
        buffer = PCMBuffer.from_interleaved(frames, sample_rate)
        logger.info(f"Capture stopped: {buffer.frame_count} frames ({buffer.duration_seconds:.2f}s)")
        return wav.encode(buffer)

    def abort(self) -> None:
        """Drop any capture in progress without collecting it."""
        handle = self._current
        if handle is None:
            return
        if handle.pending:
            handle.token.cancel()
            return
        self.engine.capture_device.release()
        self._finish(handle, CaptureState.CANCELLED)

    def import_file(self, source: Union[bytes, bytearray, str, Path]) -> bytes:
        """Bypass capture: return the bytes of an imported file."""
        if isinstance(source, (bytes, bytearray, memoryview)):
            return bytes(source)
        try:
            return Path(source).read_bytes()
        except OSError as exc:
            raise SourceUnavailable(f"Could not read {source}: {exc}") from exc

    def _finish(self, handle: CaptureHandle, state: CaptureState) -> None:
        handle.state = state
        handle._settled.set()
        if self._current is handle:
            self._current = None
