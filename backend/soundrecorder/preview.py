"""
Live Preview Player
===================
Plays the effect chain through the audio engine in real time and publishes
coarse spectrum bars for the recorder's visualizer.

At most one PreviewSession is alive per player: starting a new one stops
the previous one first. ``stop`` is immediate and idempotent.
"""

import asyncio
import itertools
import logging
import math
from typing import AsyncIterator, Callable, List, Optional

import numpy as np

from .chain import EffectChain, EffectParameters
from .config import RecorderConfig
from .engine import AudioEngine
from .pcm import PCMBuffer

logger = logging.getLogger(__name__)

FFT_SIZE = 256
SMOOTHING = 0.8
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0
IDLE_BAR_LEVEL = 10.0

LevelsCallback = Callable[[List[float]], None]

_session_ids = itertools.count(1)


class SpectrumAnalyser:
    """Byte-scaled magnitude spectrum, modelled on a browser AnalyserNode."""

    def __init__(self, bars: int = 20, fft_size: int = FFT_SIZE, smoothing: float = SMOOTHING):
        self.bars = bars
        self.fft_size = fft_size
        self.smoothing = smoothing
        self._window = np.blackman(fft_size)
        self._history = np.zeros(fft_size)
        self._smoothed = np.zeros(fft_size // 2)

    def push(self, block: np.ndarray) -> None:
        mono = block.mean(axis=0) if block.ndim == 2 else block
        mono = mono[-self.fft_size:]
        self._history = np.concatenate([self._history[mono.size:], mono])

    def levels(self) -> List[float]:
        spectrum = np.abs(np.fft.rfft(self._history * self._window))[: self.fft_size // 2] / self.fft_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * spectrum
        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(self._smoothed)
        scaled = 255.0 * (db - MIN_DECIBELS) / (MAX_DECIBELS - MIN_DECIBELS)
        byte_data = np.clip(np.nan_to_num(scaled, neginf=0.0), 0.0, 255.0).astype(np.uint8)
        step = max(1, byte_data.size // self.bars)
        return [float(byte_data[i * step]) / 255.0 * 100.0 for i in range(self.bars)]


class PreviewSession:
    """Handle for one audible preview."""

    def __init__(self, buffer: PCMBuffer, params: EffectParameters, queue_size: int = 16):
        self.id = next(_session_ids)
        self.buffer = buffer
        self.params = params
        self.frames_played = 0
        self.error: Optional[BaseException] = None
        self._stopped = False
        self._task: Optional[asyncio.Task] = None
        self._sink = None
        self._levels: "asyncio.Queue[Optional[List[float]]]" = asyncio.Queue(maxsize=queue_size)

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def active(self) -> bool:
        return not self._stopped and self._task is not None and not self._task.done()

    @property
    def finished(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> None:
        """Wait until playback has ended and the output stream is closed."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def levels(self) -> AsyncIterator[List[float]]:
        """Iterate spectrum bars until the session ends."""
        while True:
            bars = await self._levels.get()
            if bars is None:
                return
            yield bars

    def _publish(self, bars: Optional[List[float]]) -> None:
        # Drop the oldest frame rather than block playback on a slow consumer.
        if self._levels.full():
            try:
                self._levels.get_nowait()
            except asyncio.QueueEmpty:
                pass
        self._levels.put_nowait(bars)


class LivePreviewPlayer:
    def __init__(self, engine: AudioEngine, config: Optional[RecorderConfig] = None):
        self.engine = engine
        self.config = config or engine.config
        self._session: Optional[PreviewSession] = None

    @property
    def session(self) -> Optional[PreviewSession]:
        return self._session

    async def start(
        self,
        buffer: PCMBuffer,
        params: EffectParameters,
        on_levels: Optional[LevelsCallback] = None,
    ) -> PreviewSession:
        """
        Start audible playback of ``buffer`` through a fresh effect chain.

        Resolves only once the output device is running and the stream is
        open. Any previous session is stopped first.
        """
        self.stop()
        await self.engine.resume()

        chain = EffectChain(buffer, params)
        session = PreviewSession(buffer, params)
        session._sink = self.engine.open_output(buffer.sample_rate, buffer.num_channels)
        session._task = asyncio.create_task(self._play(session, chain, on_levels))
        self._session = session
        logger.debug(f"Preview {session.id} started: {params.to_dict()}")
        return session

    def stop(self, session: Optional[PreviewSession] = None) -> None:
        """Stop a session (default: the current one). No-op if already stopped."""
        session = session if session is not None else self._session
        if session is None or session._stopped:
            return
        session._stopped = True
        if session._sink is not None:
            session._sink.close()
        if session._task is not None and not session._task.done():
            session._task.cancel()
        if self._session is session:
            self._session = None
        logger.debug(f"Preview {session.id} stopped")

    async def _play(self, session: PreviewSession, chain: EffectChain, on_levels: Optional[LevelsCallback]) -> None:
        loop = asyncio.get_running_loop()
        analyser = SpectrumAnalyser(bars=self.config.visual_bars)
        interval = self.config.visual_interval
        last_emit = -math.inf
        try:
            for block in chain.blocks(self.config.block_frames):
                if session._stopped:
                    break
                await session._sink.write(block.T.astype(np.float32))
                session.frames_played += block.shape[1]
                analyser.push(block)
                now = loop.time()
                if now - last_emit >= interval:
                    last_emit = now
                    bars = analyser.levels()
                    session._publish(bars)
                    if on_levels is not None:
                        on_levels(bars)
        except Exception as exc:
            if session._stopped:
                logger.debug(f"Preview {session.id} write interrupted by stop: {exc}")
            else:
                session.error = exc
                logger.error(f"Preview {session.id} failed: {exc}")
        finally:
            session._stopped = True
            session._sink.close()
            if self._session is session:
                self._session = None
            idle = [IDLE_BAR_LEVEL] * self.config.visual_bars
            if on_levels is not None:
                on_levels(idle)
            session._publish(None)
            logger.debug(f"Preview {session.id} ended after {session.frames_played} frames")
