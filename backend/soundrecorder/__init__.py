"""
Sound Recorder
==============
Capture or import a short sound, preview it under pitch/crunch/volume
effects, and bake a deterministic 16-bit WAV for storage as a data-URI.

Modules:
- capture.py: Microphone capture with scoped device acquisition, file import
- decoder.py: Raw bytes -> PCMBuffer (soundfile / PyAV)
- curves.py: Distortion transfer table for the "crunch" waveshaper
- chain.py: Effect parameters, presets and the speed -> shape -> gain chain
- preview.py: Realtime preview player with spectrum bars
- renderer.py: Deterministic offline render and the final RenderedSound
- wav.py: Canonical 16-bit PCM WAV encoder
- storage.py: Data-URI codec for stored sounds
- engine.py / devices.py: Audio engine handle and sounddevice backends
- session.py: Recorder state machine
- cli.py: Command line entry point
"""

__version__ = "1.0.0"

from .chain import PRESETS, EffectChain, EffectParameters, preset
from .config import RecorderConfig
from .decoder import decode
from .engine import AudioEngine
from .errors import (
    CaptureCancelled,
    CorruptData,
    DecodeError,
    DeviceUnavailable,
    EmptyCapture,
    InvalidEncoding,
    InvalidParameters,
    RecorderError,
    RenderFailure,
    SessionStateError,
    SourceUnavailable,
    UnsupportedFormat,
)
from .pcm import PCMBuffer, waveform_peaks
from .renderer import OfflineRenderer, RenderedSound
from .session import RecorderSession, SessionState
from .storage import from_storable, to_storable
from .wav import encode
