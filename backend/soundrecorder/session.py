"""
Recorder Session
================
State machine tying capture, decoding, preview and rendering together for
one recorder instance.

    IDLE -> CAPTURING -> DECODING -> READY <-> PREVIEWING
                                      |
                                      v
                                  RENDERING -> SAVED (-> RENDERING on re-save)

Capture/decode failures fall back to IDLE; render failures fall back to
READY with the buffer and parameters untouched.
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Tuple

from . import storage
from .capture import CaptureHandle, CaptureSource
from .chain import EffectParameters, preset
from .config import RecorderConfig
from .decoder import decode
from .engine import AudioEngine
from .errors import CorruptData, EmptyCapture, RecorderError, RenderFailure, SessionStateError
from .pcm import PCMBuffer, waveform_peaks
from .preview import LevelsCallback, LivePreviewPlayer, PreviewSession
from .renderer import OfflineRenderer, RenderedSound

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    DECODING = "decoding"
    READY = "ready"
    PREVIEWING = "previewing"
    RENDERING = "rendering"
    SAVED = "saved"


# States in which a decoded buffer exists and the user can edit.
_EDITABLE = (SessionState.READY, SessionState.PREVIEWING, SessionState.SAVED)
# States from which a new capture or import may replace the buffer.
_REPLACEABLE = (SessionState.IDLE,) + _EDITABLE


class RecorderSession:
    """One recorder instance: owns its engine, buffer and parameter snapshot."""

    def __init__(
        self,
        engine: Optional[AudioEngine] = None,
        config: Optional[RecorderConfig] = None,
        renderer: Optional[OfflineRenderer] = None,
    ):
        self.config = config or (engine.config if engine is not None else RecorderConfig.from_env())
        self.engine = engine or AudioEngine(self.config)
        self.capture = CaptureSource(self.engine)
        self.player = LivePreviewPlayer(self.engine, self.config)
        self.renderer = renderer or OfflineRenderer()

        self.state = SessionState.IDLE
        self.buffer: Optional[PCMBuffer] = None
        self.params = EffectParameters()
        self.rendered: Optional[RenderedSound] = None
        self.last_error: Optional[RecorderError] = None
        self._handle: Optional[CaptureHandle] = None
        self._resting_state = SessionState.READY

    def _require(self, allowed, action: str) -> None:
        if self.state not in allowed:
            raise SessionStateError(f"Cannot {action} while {self.state.value}")

    def _fail_to_idle(self, exc: RecorderError) -> None:
        self.last_error = exc
        self.buffer = None
        self.rendered = None
        self.state = SessionState.IDLE
        logger.error(f"Recorder session reset to idle: {exc}")

    # ------------------------------------------------------------------
    # Capture and import

    async def start_recording(self) -> None:
        self._require(_REPLACEABLE, "start recording")
        self.player.stop()
        self.state = SessionState.CAPTURING
        self.last_error = None
        try:
            self._handle = await self.capture.begin_capture()
        except RecorderError as exc:
            self._handle = None
            if self.state is SessionState.CAPTURING:
                self._fail_to_idle(exc)
            raise

    async def stop_recording(self) -> PCMBuffer:
        self._require((SessionState.CAPTURING,), "stop recording")
        handle = self._handle or self.capture.current
        if handle is None:
            raise SessionStateError("No capture in progress")
        try:
            raw = await self.capture.end_capture(handle)
        except RecorderError as exc:
            self._fail_to_idle(exc)
            raise
        finally:
            self._handle = None
        return await self._decode_into_session(raw)

    async def import_file(self, source) -> PCMBuffer:
        self._require(_REPLACEABLE, "import a file")
        self.player.stop()
        try:
            raw = self.capture.import_file(source)
        except RecorderError as exc:
            self._fail_to_idle(exc)
            raise
        return await self._decode_into_session(raw)

    async def load_storable(self, value: str) -> PCMBuffer:
        """Reopen a previously saved sound (data-URI or bare base64) for editing."""
        self._require(_REPLACEABLE, "load a stored sound")
        self.player.stop()
        try:
            raw = storage.from_storable(value)
        except RecorderError as exc:
            self._fail_to_idle(exc)
            raise
        return await self._decode_into_session(raw)

    async def _decode_into_session(self, raw: bytes) -> PCMBuffer:
        self.state = SessionState.DECODING
        try:
            buffer = await asyncio.to_thread(decode, raw)
            if buffer.frame_count == 0:
                raise EmptyCapture("Sound contains no audio frames")
        except RecorderError as exc:
            self._fail_to_idle(exc)
            raise
        except Exception as exc:
            failure = CorruptData(f"Audio could not be decoded: {exc}")
            self._fail_to_idle(failure)
            raise failure from exc
        self.buffer = buffer
        self.rendered = None
        self.state = SessionState.READY
        logger.info(
            f"Session ready: {buffer.num_channels}ch {buffer.sample_rate}Hz "
            f"{buffer.duration_seconds:.2f}s"
        )
        return buffer

    # ------------------------------------------------------------------
    # Parameters

    def set_parameters(self, **changes) -> EffectParameters:
        self.params = self.params.replace(**changes)
        return self.params

    def apply_preset(self, name: str) -> EffectParameters:
        self.params = preset(name)
        return self.params

    # ------------------------------------------------------------------
    # Preview

    async def preview(self, on_levels: Optional[LevelsCallback] = None) -> PreviewSession:
        self._require(_EDITABLE, "preview")
        if self.state is not SessionState.PREVIEWING:
            self._resting_state = self.state
        self.player.stop()
        session = await self.player.start(self.buffer, self.params, on_levels=on_levels)
        self.state = SessionState.PREVIEWING
        session._task.add_done_callback(lambda _task: self._preview_ended(session))
        return session

    def stop_preview(self) -> None:
        self.player.stop()
        if self.state is SessionState.PREVIEWING:
            self.state = self._resting_state

    def _preview_ended(self, session: PreviewSession) -> None:
        if self.state is SessionState.PREVIEWING and self.player.session is None:
            self.state = self._resting_state

    # ------------------------------------------------------------------
    # Save

    async def save(self) -> RenderedSound:
        """Render the current buffer with the current parameters and encode it."""
        self._require(_EDITABLE, "save")
        self.stop_preview()
        buffer, params = self.buffer, self.params
        self.state = SessionState.RENDERING
        try:
            rendered = await self.renderer.bake_async(buffer, params)
        except Exception as exc:
            failure = exc if isinstance(exc, RenderFailure) else RenderFailure(f"Save failed: {exc}")
            self.last_error = failure
            self.state = SessionState.READY
            logger.error(f"Save failed, keeping current sound: {failure}")
            if failure is exc:
                raise
            raise failure from exc
        self.rendered = rendered
        self.state = SessionState.SAVED
        return rendered

    # ------------------------------------------------------------------
    # Misc

    def discard(self) -> None:
        """Throw away the current sound and reset the controls."""
        self.player.stop()
        self.capture.abort()
        self._handle = None
        self.buffer = None
        self.rendered = None
        self.params = EffectParameters()
        self.state = SessionState.IDLE

    def waveform(self, width: int = 300) -> List[Tuple[float, float]]:
        if self.buffer is None:
            raise SessionStateError("No sound loaded")
        return waveform_peaks(self.buffer, width)

    async def close(self) -> None:
        self.player.stop()
        self.capture.abort()
        await self.engine.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
