from fastapi import APIRouter, HTTPException, UploadFile, File, Form
from fastapi.responses import Response
from typing import Optional
import asyncio
import logging

from models import (
    PresetResponse, PRESET_OPTIONS, RerenderRequest,
    SoundInfo, SoundRecord, StoredSound
)
from soundrecorder.chain import EffectParameters, preset
from soundrecorder.decoder import decode
from soundrecorder.errors import (
    CorruptData, EmptyCapture, InvalidEncoding, InvalidParameters,
    RecorderError, RenderFailure, UnsupportedFormat
)
from soundrecorder.pcm import PCMBuffer, waveform_peaks
from soundrecorder.renderer import OfflineRenderer
from soundrecorder.storage import from_storable

# Setup logging
logger = logging.getLogger(__name__)

recorder_router = APIRouter(prefix="/api/recorder")

renderer = OfflineRenderer()

WAVEFORM_WIDTH = 300


def _http_error(exc: RecorderError) -> HTTPException:
    """Map recorder errors onto HTTP status codes."""
    if isinstance(exc, (InvalidEncoding, EmptyCapture)):
        status = 400
    elif isinstance(exc, UnsupportedFormat):
        status = 415
    elif isinstance(exc, (CorruptData, InvalidParameters)):
        status = 422
    elif isinstance(exc, RenderFailure):
        status = 500
    else:
        status = 400
    return HTTPException(status_code=status, detail=str(exc))


async def _read_upload(audio: UploadFile) -> bytes:
    content = await audio.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    return content


async def _decode_upload(raw: bytes) -> PCMBuffer:
    buffer = await asyncio.to_thread(decode, raw)
    if buffer.frame_count == 0:
        raise EmptyCapture("Sound contains no audio frames")
    return buffer


async def _bake_record(raw: bytes, params: EffectParameters, name: str, sound_id: Optional[str] = None) -> SoundRecord:
    buffer = await _decode_upload(raw)
    sound = await renderer.bake_async(buffer, params)
    record = sound.to_record(name, sound_id)
    logger.info(f"Baked sound '{name}' ({sound.duration_seconds:.2f}s, {len(sound.wav_bytes)} bytes)")
    return SoundRecord(**record)


@recorder_router.get("/presets", response_model=PresetResponse)
async def get_presets():
    return PresetResponse(presets=PRESET_OPTIONS)


@recorder_router.post("/inspect", response_model=SoundInfo)
async def inspect_sound(audio: UploadFile = File(...)):
    """
    Decode an uploaded sound and describe it.
    """
    raw = await _read_upload(audio)
    try:
        buffer = await _decode_upload(raw)
    except RecorderError as e:
        raise _http_error(e)
    return SoundInfo(
        sample_rate=buffer.sample_rate,
        num_channels=buffer.num_channels,
        frame_count=buffer.frame_count,
        duration=buffer.duration_seconds,
        waveform=waveform_peaks(buffer, WAVEFORM_WIDTH),
    )


@recorder_router.post("/render", response_model=SoundRecord)
async def render_sound(
    audio: UploadFile = File(...),
    name: str = Form("Sound"),
    preset_name: Optional[str] = Form(None, alias="preset"),
    pitch: Optional[float] = Form(None),
    crunch: Optional[float] = Form(None),
    volume: Optional[float] = Form(None),
):
    """
    Bake effects into an uploaded recording and return a storable sound record.

    A preset (if given) is applied first; explicit pitch/crunch/volume
    values override it.
    """
    raw = await _read_upload(audio)
    try:
        params = preset(preset_name) if preset_name else EffectParameters()
        changes = {k: v for k, v in (("pitch", pitch), ("crunch", crunch), ("volume", volume)) if v is not None}
        if changes:
            params = params.replace(**changes)
        return await _bake_record(raw, params, name)
    except RecorderError as e:
        raise _http_error(e)


@recorder_router.post("/rerender", response_model=SoundRecord)
async def rerender_sound(request: RerenderRequest):
    """
    Re-edit a previously stored sound with new effect settings.
    """
    try:
        raw = from_storable(request.data)
        return await _bake_record(raw, request.settings.to_parameters(), request.name, request.id)
    except RecorderError as e:
        raise _http_error(e)


@recorder_router.post("/wav")
async def stored_sound_wav(stored: StoredSound):
    """
    Return the WAV bytes behind a stored data-URI.
    """
    try:
        data = from_storable(stored.data)
    except RecorderError as e:
        raise _http_error(e)
    return Response(content=data, media_type="audio/wav")
