"""
WAV Encoder
===========
Writes a PCMBuffer as a canonical 44-byte-header, 16-bit PCM RIFF/WAVE file.

Layout (little-endian):
    0  "RIFF"          4  u32 file length - 8   8  "WAVE"
    12 "fmt "          16 u32 16                20 u16 1 (PCM)
    22 u16 channels    24 u32 sample rate       28 u32 byte rate
    32 u16 block align 34 u16 16                36 "data"
    40 u32 data length 44 interleaved int16 frames
"""

import struct

import numpy as np

from .pcm import PCMBuffer

HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")
_U32_MAX = 0xFFFFFFFF


def quantize(samples: np.ndarray) -> np.ndarray:
    """
    Float samples -> little-endian int16.

    NaN becomes 0 and infinities +/-1; everything is then clamped to [-1, 1].
    Negative values scale by 32768 and positive by 32767, so both -1.0 and
    1.0 land exactly on the int16 limits. Rounding is half-up.
    """
    s = np.nan_to_num(np.asarray(samples, dtype=np.float64), nan=0.0, posinf=1.0, neginf=-1.0)
    s = np.clip(s, -1.0, 1.0)
    scaled = np.where(s < 0, s * 32768.0, s * 32767.0)
    return np.floor(scaled + 0.5).astype("<i2")


def header(num_channels: int, sample_rate: int, data_length: int) -> bytes:
    if HEADER_SIZE - 8 + data_length > _U32_MAX:
        raise ValueError(f"WAV data too large for a RIFF container: {data_length} bytes")
    block_align = num_channels * BYTES_PER_SAMPLE
    return _HEADER.pack(
        b"RIFF",
        HEADER_SIZE - 8 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        1,
        num_channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_length,
    )


def encode(buffer: PCMBuffer) -> bytes:
    """
    Encode a PCMBuffer as 16-bit PCM WAV bytes.

    Args:
        buffer: Audio to encode (any channel count, any positive rate)

    Returns:
        Exactly 44 + frame_count * num_channels * 2 bytes
    """
    frames = quantize(buffer.to_interleaved())
    data = frames.tobytes()
    return header(buffer.num_channels, buffer.sample_rate, len(data)) + data
