"""
Offline Renderer
================
Evaluates the effect chain to completion, independent of wall-clock time
and device state. Identical (buffer, params) always give identical output.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from . import storage, wav
from .chain import EffectChain, EffectParameters
from .config import DEFAULT_BLOCK_FRAMES
from .errors import InvalidParameters, RenderFailure
from .pcm import PCMBuffer

logger = logging.getLogger(__name__)

# Fixed so that renders never depend on runtime configuration.
RENDER_BLOCK_FRAMES = DEFAULT_BLOCK_FRAMES


@dataclass(frozen=True)
class RenderedSound:
    wav_bytes: bytes
    duration_seconds: float
    sample_rate: int
    num_channels: int
    frame_count: int

    def to_storable(self) -> str:
        return storage.to_storable(self.wav_bytes)

    def to_record(self, name: str, sound_id: Optional[str] = None) -> Dict[str, str]:
        """Record in the shape the sound library stores: {id, name, data}."""
        return {
            "id": sound_id or str(uuid.uuid4()),
            "name": name,
            "data": self.to_storable(),
        }


class OfflineRenderer:
    def render(self, buffer: PCMBuffer, params: EffectParameters) -> PCMBuffer:
        """
        Render the chain over ``buffer``.

        Returns:
            PCMBuffer with exactly ceil(frame_count / pitch) frames at the
            source sample rate

        Raises:
            RenderFailure: chain evaluation failed; no partial output is returned
        """
        try:
            chain = EffectChain(buffer, params)
            out = np.zeros((chain.num_channels, chain.frame_count), dtype=np.float32)
            position = 0
            for block in chain.blocks(RENDER_BLOCK_FRAMES):
                frames = block.shape[1]
                out[:, position:position + frames] = block
                position += frames
            if position != chain.frame_count:
                raise RenderFailure(f"Chain produced {position} of {chain.frame_count} frames")
            rendered = PCMBuffer.from_planar(list(out), buffer.sample_rate)
        except RenderFailure:
            raise
        except InvalidParameters as exc:
            raise RenderFailure(f"Invalid render parameters: {exc}") from exc
        except Exception as exc:
            logger.error(f"Offline render failed: {exc}")
            raise RenderFailure(f"Offline render failed: {exc}") from exc

        logger.info(
            f"Rendered {buffer.frame_count} -> {rendered.frame_count} frames "
            f"(pitch={params.pitch:g}, crunch={params.crunch:g}, volume={params.volume:g})"
        )
        return rendered

    def bake(self, buffer: PCMBuffer, params: EffectParameters) -> RenderedSound:
        """Render and encode to the final WAV artifact."""
        rendered = self.render(buffer, params)
        try:
            data = wav.encode(rendered)
        except Exception as exc:
            logger.error(f"WAV encoding failed: {exc}")
            raise RenderFailure(f"Rendered audio could not be encoded: {exc}") from exc
        return RenderedSound(
            wav_bytes=data,
            duration_seconds=rendered.duration_seconds,
            sample_rate=rendered.sample_rate,
            num_channels=rendered.num_channels,
            frame_count=rendered.frame_count,
        )

    async def render_async(self, buffer: PCMBuffer, params: EffectParameters) -> PCMBuffer:
        # Runs to completion in a worker thread even if the awaiting task is cancelled.
        return await asyncio.to_thread(self.render, buffer, params)

    async def bake_async(self, buffer: PCMBuffer, params: EffectParameters) -> RenderedSound:
        return await asyncio.to_thread(self.bake, buffer, params)
