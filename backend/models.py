from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Tuple
import uuid

from soundrecorder.chain import (
    PITCH_MIN, PITCH_MAX, VOLUME_MIN, VOLUME_MAX, PRESETS, EffectParameters
)
from soundrecorder.curves import CRUNCH_MIN, CRUNCH_MAX

# Effect Models
class EffectSettings(BaseModel):
    pitch: float = Field(1.0, ge=PITCH_MIN, le=PITCH_MAX)
    crunch: float = Field(0.0, ge=CRUNCH_MIN, le=CRUNCH_MAX)
    volume: float = Field(1.0, ge=VOLUME_MIN, le=VOLUME_MAX)

    def to_parameters(self) -> EffectParameters:
        return EffectParameters(pitch=self.pitch, crunch=self.crunch, volume=self.volume)

class Preset(BaseModel):
    id: str
    name: str
    settings: EffectSettings

class PresetResponse(BaseModel):
    presets: List[Preset]

# Sound Models
class SoundRecord(BaseModel):
    """Record shape shared with the sound library."""
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    data: str

class SoundInfo(BaseModel):
    sample_rate: int
    num_channels: int
    frame_count: int
    duration: float
    waveform: List[Tuple[float, float]]

class StoredSound(BaseModel):
    data: str

class RerenderRequest(BaseModel):
    data: str
    name: str = "Sound"
    id: Optional[str] = None
    settings: EffectSettings = Field(default_factory=EffectSettings)

PRESET_OPTIONS = [
    Preset(
        id=key,
        name=key.upper(),
        settings=EffectSettings(**params.to_dict()),
    )
    for key, params in PRESETS.items()
]
