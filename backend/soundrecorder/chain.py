"""
Effect Chain
============
Source -> speed-scale(pitch) -> waveshape(curve, 4x oversampled) -> gain(volume)

The same chain object drives both the live preview and the offline render.
It is evaluated block by block; filter state is carried between blocks, so
the result does not depend on how the caller paces the pulls.
"""

import dataclasses
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterator

import numpy as np
from scipy import signal

from . import curves
from .config import DEFAULT_BLOCK_FRAMES
from .errors import InvalidParameters
from .pcm import PCMBuffer

PITCH_MIN, PITCH_MAX = 0.5, 2.0
VOLUME_MIN, VOLUME_MAX = 0.0, 2.0

OVERSAMPLE = 4
FILTER_TAPS = 65
# Two linear-phase FIR stages of (FILTER_TAPS - 1) / 2 samples each at the
# oversampled rate.
LATENCY_FRAMES = (FILTER_TAPS - 1) // OVERSAMPLE


def _check_range(name: str, value: float, low: float, high: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidParameters(f"{name} must be a number, got {value!r}")
    if not math.isfinite(v) or v < low or v > high:
        raise InvalidParameters(f"{name} must be within [{low:g}, {high:g}], got {value!r}")
    return v


@dataclass(frozen=True)
class EffectParameters:
    """Immutable snapshot of the three user controls."""
    pitch: float = 1.0
    crunch: float = 0.0
    volume: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "pitch", _check_range("pitch", self.pitch, PITCH_MIN, PITCH_MAX))
        object.__setattr__(
            self, "crunch", _check_range("crunch", self.crunch, curves.CRUNCH_MIN, curves.CRUNCH_MAX)
        )
        object.__setattr__(self, "volume", _check_range("volume", self.volume, VOLUME_MIN, VOLUME_MAX))

    def replace(self, **changes) -> "EffectParameters":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, float]:
        return dataclasses.asdict(self)


PRESETS: Dict[str, EffectParameters] = {
    "chipmunk": EffectParameters(pitch=1.5, crunch=0.0, volume=1.0),
    "monster": EffectParameters(pitch=0.6, crunch=50.0, volume=1.2),
    "radio": EffectParameters(pitch=1.0, crunch=200.0, volume=0.8),
    "reset": EffectParameters(pitch=1.0, crunch=0.0, volume=1.0),
}


def preset(name: str) -> EffectParameters:
    try:
        return PRESETS[name.strip().lower()]
    except (KeyError, AttributeError):
        raise InvalidParameters(f"Unknown preset {name!r}; choose one of {', '.join(PRESETS)}")


def output_frame_count(frame_count: int, pitch: float) -> int:
    """Frames produced by the speed stage: ceil(frame_count / pitch)."""
    return int(math.ceil(frame_count / pitch))


@lru_cache(maxsize=1)
def _oversampling_kernel() -> np.ndarray:
    # Cutoff at the original Nyquist, expressed relative to the 4x Nyquist.
    kernel = signal.firwin(FILTER_TAPS, 1.0 / OVERSAMPLE)
    kernel.flags.writeable = False
    return kernel


def apply_curve(samples: np.ndarray, curve: np.ndarray) -> np.ndarray:
    """Waveshaper lookup: map [-1, 1] onto the table, interpolate, clamp to the ends."""
    n = curve.size
    position = (n - 1) * 0.5 * (samples + 1.0)
    return np.interp(position, np.arange(n, dtype=np.float64), curve.astype(np.float64))


class SpeedStage:
    """Variable-rate reader: output frame j samples source position j * pitch."""

    def __init__(self, buffer: PCMBuffer, pitch: float):
        self.pitch = pitch
        self.total_frames = output_frame_count(buffer.frame_count, pitch)
        n = buffer.frame_count
        self._xp = np.arange(n + 1, dtype=np.float64)
        # A trailing zero lets the last sample interpolate into silence.
        self._planes = [np.append(ch.astype(np.float64), 0.0) for ch in buffer.channels]

    def read(self, start: int, count: int) -> np.ndarray:
        positions = (start + np.arange(count, dtype=np.float64)) * self.pitch
        out = np.empty((len(self._planes), count), dtype=np.float64)
        for c, plane in enumerate(self._planes):
            out[c] = np.interp(positions, self._xp, plane, right=0.0)
        return out


class WaveShaperStage:
    """Curve lookup at 4x the source rate with FIR anti-image/anti-alias filters."""

    def __init__(self, curve: np.ndarray, num_channels: int):
        self.curve = curve
        self._kernel = _oversampling_kernel()
        self._up_kernel = self._kernel * OVERSAMPLE
        self._up_state = [np.zeros(FILTER_TAPS - 1) for _ in range(num_channels)]
        self._down_state = [np.zeros(FILTER_TAPS - 1) for _ in range(num_channels)]

    def process(self, block: np.ndarray) -> np.ndarray:
        channels, frames = block.shape
        out = np.empty((channels, frames), dtype=np.float64)
        for c in range(channels):
            stuffed = np.zeros(frames * OVERSAMPLE, dtype=np.float64)
            stuffed[::OVERSAMPLE] = block[c]
            up, self._up_state[c] = signal.lfilter(self._up_kernel, 1.0, stuffed, zi=self._up_state[c])
            shaped = apply_curve(up, self.curve)
            down, self._down_state[c] = signal.lfilter(self._kernel, 1.0, shaped, zi=self._down_state[c])
            out[c] = down[::OVERSAMPLE]
        return out


class EffectChain:
    """
    One evaluation of the chain over a PCM snapshot.

    A chain is single-use: create a new one (from a fresh EffectParameters
    snapshot) for every preview start and every render.
    """

    def __init__(self, buffer: PCMBuffer, params: EffectParameters):
        self.buffer = buffer
        self.params = params
        self.curve = curves.generate(params.crunch)
        self.frame_count = output_frame_count(buffer.frame_count, params.pitch)
        self._speed = SpeedStage(buffer, params.pitch)
        self._shaper = WaveShaperStage(self.curve, buffer.num_channels)

    @property
    def num_channels(self) -> int:
        return self.buffer.num_channels

    @property
    def sample_rate(self) -> int:
        return self.buffer.sample_rate

    def blocks(self, block_frames: int = DEFAULT_BLOCK_FRAMES) -> Iterator[np.ndarray]:
        """
        Yield (channels, frames) float64 blocks covering exactly frame_count frames.

        The shaper's fixed group delay is absorbed by reading LATENCY_FRAMES
        past the end and dropping as many frames from the start.
        """
        if block_frames <= 0:
            raise ValueError("block_frames must be positive")
        gain = self.params.volume
        skip = LATENCY_FRAMES
        emitted = 0
        position = 0
        while emitted < self.frame_count:
            raw = self._speed.read(position, block_frames)
            position += block_frames
            out = self._shaper.process(raw) * gain
            if skip:
                dropped = min(skip, out.shape[1])
                out = out[:, dropped:]
                skip -= dropped
            take = min(out.shape[1], self.frame_count - emitted)
            if take > 0:
                emitted += take
                yield out[:, :take]
