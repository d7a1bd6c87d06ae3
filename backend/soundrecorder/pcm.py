import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np


def _frozen(samples) -> np.ndarray:
    arr = np.array(samples, dtype=np.float32, copy=True).reshape(-1)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class PCMBuffer:
    """
    Canonical decoded audio: one float32 array per channel.

    Nominal range is [-1, 1]; values outside it are kept as-is and only
    clamped by the WAV encoder. Channel arrays are read-only, so a buffer
    can be shared by the preview player and the renderer at the same time.
    """
    sample_rate: int
    channels: Tuple[np.ndarray, ...]

    def __post_init__(self):
        if int(self.sample_rate) != self.sample_rate or self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be a positive integer, got {self.sample_rate}")
        if len(self.channels) < 1:
            raise ValueError("PCMBuffer needs at least one channel")
        channels = tuple(_frozen(ch) for ch in self.channels)
        lengths = {ch.size for ch in channels}
        if len(lengths) != 1:
            raise ValueError(f"channel lengths differ: {sorted(lengths)}")
        object.__setattr__(self, "sample_rate", int(self.sample_rate))
        object.__setattr__(self, "channels", channels)

    @property
    def num_channels(self) -> int:
        return len(self.channels)

    @property
    def frame_count(self) -> int:
        return int(self.channels[0].size)

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / float(self.sample_rate)

    @classmethod
    def from_interleaved(cls, frames: np.ndarray, sample_rate: int) -> "PCMBuffer":
        """Build from a (frames, channels) or 1-D mono array."""
        arr = np.asarray(frames, dtype=np.float32)
        if arr.ndim == 1:
            arr = arr[:, np.newaxis]
        if arr.ndim != 2:
            raise ValueError(f"expected (frames, channels) array, got shape {arr.shape}")
        return cls(sample_rate, tuple(arr[:, c] for c in range(arr.shape[1])))

    @classmethod
    def from_planar(cls, planes: Sequence[np.ndarray], sample_rate: int) -> "PCMBuffer":
        return cls(sample_rate, tuple(planes))

    def to_interleaved(self) -> np.ndarray:
        return np.stack(self.channels, axis=1)

    def to_planar(self) -> np.ndarray:
        return np.stack(self.channels, axis=0)


def waveform_peaks(buffer: PCMBuffer, width: int) -> List[Tuple[float, float]]:
    """
    Per-column (min, max) of the first channel for a waveform overview.

    Columns past the end of the audio come back as (0.0, 0.0).
    """
    if width <= 0:
        raise ValueError("width must be positive")
    data = buffer.channels[0]
    if data.size == 0:
        return [(0.0, 0.0)] * width
    step = max(1, math.ceil(data.size / width))
    peaks = []
    for col in range(width):
        chunk = data[col * step:(col + 1) * step]
        if chunk.size == 0:
            peaks.append((0.0, 0.0))
        else:
            peaks.append((float(chunk.min()), float(chunk.max())))
    return peaks
