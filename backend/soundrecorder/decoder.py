"""
Decoder
=======
Turns captured or imported bytes into a PCMBuffer without resampling or
mixing channels.

- RIFF/WAVE, AIFF, FLAC and Ogg go through libsndfile (soundfile).
- Anything else (browser WebM/Opus captures, MP3, M4A, ...) goes through
  FFmpeg (PyAV), converted to planar float at the stream's own rate.
"""

import io
import logging
from typing import List, Optional

import av
import numpy as np
import soundfile as sf
from av.audio.resampler import AudioResampler
from av.error import FFmpegError

from .errors import CorruptData, UnsupportedFormat
from .pcm import PCMBuffer

logger = logging.getLogger(__name__)


def sniff_container(raw: bytes) -> Optional[str]:
    """Return the libsndfile container name for known signatures, else None."""
    head = raw[:12]
    if head[:4] in (b"RIFF", b"RIFX") and head[8:12] == b"WAVE":
        return "WAV"
    if head[:4] == b"FORM" and head[8:12] in (b"AIFF", b"AIFC"):
        return "AIFF"
    if head[:4] == b"fLaC":
        return "FLAC"
    if head[:4] == b"OggS":
        return "OGG"
    return None


def _pcm16_to_float(data: np.ndarray) -> np.ndarray:
    # Inverse of the encoder's asymmetric scaling.
    values = data.astype(np.float64)
    return np.where(values < 0, values / 32768.0, values / 32767.0).astype(np.float32)


# Frames pulled from libsndfile per read. Container headers are not trusted
# for the total, so reads stop at the first empty block instead.
READ_BLOCK_FRAMES = 65536


def _read_blocks(f: sf.SoundFile, dtype: str) -> np.ndarray:
    chunks = []
    while True:
        chunk = f.read(READ_BLOCK_FRAMES, dtype=dtype, always_2d=True)
        if chunk.shape[0] == 0:
            break
        chunks.append(chunk)
        if chunk.shape[0] < READ_BLOCK_FRAMES:
            break
    if not chunks:
        return np.zeros((0, f.channels), dtype=dtype)
    return np.concatenate(chunks, axis=0)


def _decode_soundfile(raw: bytes, container: str) -> PCMBuffer:
    try:
        with sf.SoundFile(io.BytesIO(raw)) as f:
            sample_rate = f.samplerate
            if f.subtype == "PCM_16":
                frames = _pcm16_to_float(_read_blocks(f, "int16"))
            else:
                frames = _read_blocks(f, "float32")
    except (RuntimeError, TypeError, ValueError) as exc:
        # soundfile.LibsndfileError is a RuntimeError subclass
        raise CorruptData(f"Could not read {container} data: {exc}") from exc
    except MemoryError as exc:
        raise CorruptData(f"{container} data does not fit in memory") from exc
    return PCMBuffer.from_interleaved(frames, sample_rate)


def _decode_ffmpeg(raw: bytes) -> PCMBuffer:
    try:
        container = av.open(io.BytesIO(raw))
    except (FFmpegError, ValueError, OSError) as exc:
        raise UnsupportedFormat(f"Unrecognized audio container: {exc}") from exc

    with container:
        stream = next((s for s in container.streams if s.type == "audio"), None)
        if stream is None:
            raise UnsupportedFormat("No audio stream found")

        resampler = None
        sample_rate = stream.rate
        planes: List[np.ndarray] = []
        try:
            for frame in container.decode(stream):
                if resampler is None:
                    sample_rate = frame.sample_rate
                    resampler = AudioResampler(
                        format="fltp",
                        layout=frame.layout,
                        rate=frame.sample_rate,
                    )
                for rframe in resampler.resample(frame):
                    arr = rframe.to_ndarray()
                    if arr.size:
                        planes.append(arr.astype(np.float32, copy=True))
            if resampler is not None:
                for rframe in resampler.resample(None):
                    arr = rframe.to_ndarray()
                    if arr.size:
                        planes.append(arr.astype(np.float32, copy=True))
        except (FFmpegError, ValueError) as exc:
            raise CorruptData(f"Audio stream could not be decoded: {exc}") from exc
        except MemoryError as exc:
            raise CorruptData("Decoded audio stream does not fit in memory") from exc

    if not sample_rate:
        raise CorruptData("Audio stream has no sample rate")
    if not planes:
        channels = max(1, len(stream.codec_context.layout.channels))
        return PCMBuffer(sample_rate, tuple(np.zeros(0, dtype=np.float32) for _ in range(channels)))
    audio = np.concatenate(planes, axis=1)
    return PCMBuffer.from_planar(list(audio), sample_rate)


def decode(raw: bytes) -> PCMBuffer:
    """
    Decode raw audio bytes into the canonical PCM shape.

    Args:
        raw: Encoded audio (WAV from a capture, or any user-imported file)

    Returns:
        PCMBuffer at the source's own sample rate and channel count

    Raises:
        CorruptData: empty input, damaged container, or failed decode
        UnsupportedFormat: unknown container or no audio stream
    """
    if not raw:
        raise CorruptData("No audio data")
    raw = bytes(raw)
    container = sniff_container(raw)
    if container is not None:
        buffer = _decode_soundfile(raw, container)
    else:
        buffer = _decode_ffmpeg(raw)
    logger.debug(
        f"Decoded {len(raw)} bytes ({container or 'ffmpeg'}): "
        f"{buffer.num_channels}ch {buffer.sample_rate}Hz {buffer.frame_count} frames"
    )
    return buffer
