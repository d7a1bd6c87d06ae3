"""
Distortion Curve Generator
==========================
Builds the waveshaper lookup table used for the "crunch" effect.

The table is a pure function of ``crunch``: equal inputs always yield the
same (cached, read-only) float32 array, so the live preview and the offline
render shape samples identically.
"""

import math
from functools import lru_cache

import numpy as np

from .errors import InvalidParameters

CURVE_SIZE = 44100
CRUNCH_MIN = 0.0
CRUNCH_MAX = 400.0

_DEG = math.pi / 180.0


def _check_crunch(crunch: float) -> float:
    try:
        k = float(crunch)
    except (TypeError, ValueError):
        raise InvalidParameters(f"crunch must be a number, got {crunch!r}")
    if not math.isfinite(k) or k < CRUNCH_MIN or k > CRUNCH_MAX:
        raise InvalidParameters(f"crunch must be within [{CRUNCH_MIN:g}, {CRUNCH_MAX:g}], got {crunch!r}")
    # -0.0 and 0.0 share a cache slot
    return k + 0.0


@lru_cache(maxsize=64)
def _build_curve(k: float) -> np.ndarray:
    i = np.arange(CURVE_SIZE, dtype=np.float64)
    x = (i * 2.0) / CURVE_SIZE - 1.0
    curve = (3.0 + k) * x * 20.0 * _DEG / (math.pi + k * np.abs(x))
    table = curve.astype(np.float32)
    table.flags.writeable = False
    return table


def generate(crunch: float) -> np.ndarray:
    """
    Return the 44100-entry transfer table for a crunch amount.

    For table index i, x = 2*i/N - 1 and
    curve[i] = (3 + crunch) * x * (20 * pi/180) / (pi + crunch * |x|).

    Args:
        crunch: Distortion intensity in [0, 400]

    Returns:
        Read-only float32 array of length CURVE_SIZE

    Raises:
        InvalidParameters: crunch is not a finite number in range
    """
    return _build_curve(_check_crunch(crunch))


def small_signal_gain(crunch: float) -> float:
    """
    Slope of the transfer curve at x = 0.

    At crunch = 0 the curve is the straight line x/3, so the shaper is not
    an identity: quiet material comes out at one third of its level.
    """
    k = _check_crunch(crunch)
    return (3.0 + k) * 20.0 * _DEG / math.pi
