"""sounddevice (PortAudio) backends for the audio engine."""

import asyncio
import logging
import threading
from typing import List, Optional

import numpy as np
import sounddevice as sd

from .config import DeviceSpec
from .errors import DeviceUnavailable

logger = logging.getLogger(__name__)


class SoundDeviceSink:
    """Blocking PortAudio output stream; writes pace playback in real time."""

    def __init__(self, device: DeviceSpec, sample_rate: int, channels: int):
        try:
            self.stream = sd.OutputStream(
                device=device,
                samplerate=sample_rate,
                channels=channels,
                dtype="float32",
            )
            self.stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            raise DeviceUnavailable(f"Could not open output stream: {exc}") from exc
        self._closed = False

    async def write(self, frames: np.ndarray) -> None:
        if self._closed:
            return
        await asyncio.to_thread(self.stream.write, np.ascontiguousarray(frames, dtype=np.float32))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.stream.abort()
            self.stream.close()
        except sd.PortAudioError as exc:
            logger.debug(f"Output stream close error: {exc}")


class SoundDeviceOutput:
    def __init__(self, device: DeviceSpec = None):
        self.device = device

    async def activate(self) -> None:
        try:
            await asyncio.to_thread(sd.check_output_settings, device=self.device)
        except (sd.PortAudioError, ValueError) as exc:
            raise DeviceUnavailable(f"No usable output device: {exc}") from exc

    async def deactivate(self) -> None:
        return None

    def open(self, sample_rate: int, channels: int) -> SoundDeviceSink:
        return SoundDeviceSink(self.device, sample_rate, channels)


class SoundDeviceCapture:
    """Owns one PortAudio input stream and buffers its blocks until collected."""

    def __init__(self, device: DeviceSpec = None):
        self.device = device
        self.sample_rate: Optional[int] = None
        self._stream: Optional[sd.InputStream] = None
        self._chunks: List[np.ndarray] = []
        self._lock = threading.Lock()

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug(f"Input stream status: {status}")
        with self._lock:
            self._chunks.append(indata.copy())

    def _open(self, sample_rate: int, channels: int) -> None:
        stream = sd.InputStream(
            device=self.device,
            samplerate=sample_rate,
            channels=channels,
            dtype="float32",
            callback=self._callback,
        )
        stream.start()
        self._stream = stream
        self.sample_rate = int(stream.samplerate)

    async def acquire(self, sample_rate: int, channels: int) -> None:
        if self._stream is not None:
            raise DeviceUnavailable("Capture device is already in use")
        with self._lock:
            self._chunks = []
        try:
            await asyncio.to_thread(self._open, sample_rate, channels)
        except (sd.PortAudioError, ValueError) as exc:
            raise DeviceUnavailable(f"Could not open input device: {exc}") from exc
        logger.info(f"Input stream started ({self.sample_rate} Hz)")

    def collect(self) -> np.ndarray:
        stream = self._stream
        if stream is not None:
            stream.stop()
        with self._lock:
            chunks, self._chunks = self._chunks, []
        if not chunks:
            return np.zeros((0, 1), dtype=np.float32)
        return np.concatenate(chunks, axis=0)

    def release(self) -> None:
        stream, self._stream = self._stream, None
        with self._lock:
            self._chunks = []
        if stream is None:
            return
        try:
            stream.abort()
            stream.close()
        except sd.PortAudioError as exc:
            logger.debug(f"Input stream close error: {exc}")
        logger.info("Input stream released")
