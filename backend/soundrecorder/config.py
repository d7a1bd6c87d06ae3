import os
from dataclasses import dataclass
from typing import Mapping, Optional, Union

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_BLOCK_FRAMES = 1024
DEFAULT_VISUAL_BARS = 20
DEFAULT_VISUAL_INTERVAL = 1.0 / 30.0

DeviceSpec = Optional[Union[int, str]]


def _device(value: Optional[str]) -> DeviceSpec:
    # sounddevice accepts either an index or a (partial) device name.
    if value is None or not value.strip():
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    return value


def _int(env: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class RecorderConfig:
    """Runtime settings for capture, preview and rendering."""
    sample_rate: int = DEFAULT_SAMPLE_RATE
    capture_channels: int = 1
    block_frames: int = DEFAULT_BLOCK_FRAMES
    visual_bars: int = DEFAULT_VISUAL_BARS
    visual_interval: float = DEFAULT_VISUAL_INTERVAL
    input_device: DeviceSpec = None
    output_device: DeviceSpec = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RecorderConfig":
        env = os.environ if environ is None else environ
        return cls(
            sample_rate=_int(env, "RECORDER_SAMPLE_RATE", DEFAULT_SAMPLE_RATE),
            capture_channels=_int(env, "RECORDER_CAPTURE_CHANNELS", 1),
            block_frames=_int(env, "RECORDER_BLOCK_FRAMES", DEFAULT_BLOCK_FRAMES),
            visual_bars=_int(env, "RECORDER_VISUAL_BARS", DEFAULT_VISUAL_BARS),
            visual_interval=_float(env, "RECORDER_VISUAL_INTERVAL", DEFAULT_VISUAL_INTERVAL),
            input_device=_device(env.get("RECORDER_INPUT_DEVICE")),
            output_device=_device(env.get("RECORDER_OUTPUT_DEVICE")),
        )
