import base64

import numpy as np
import pytest
from fastapi.testclient import TestClient

from server import app
from soundrecorder import storage, wav
from soundrecorder.decoder import decode
from soundrecorder.pcm import PCMBuffer

from conftest import sine_buffer


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def wav_bytes():
    return wav.encode(sine_buffer(seconds=0.5))


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy"}
    assert client.get("/api/").json()["message"] == "Sound Recorder API"


def test_presets(client):
    presets = {p["id"]: p for p in client.get("/api/recorder/presets").json()["presets"]}
    assert set(presets) == {"chipmunk", "monster", "radio", "reset"}
    assert presets["monster"]["settings"] == {"pitch": 0.6, "crunch": 50.0, "volume": 1.2}


def test_inspect(client, wav_bytes):
    response = client.post("/api/recorder/inspect", files={"audio": ("take.wav", wav_bytes, "audio/wav")})
    assert response.status_code == 200
    info = response.json()
    assert info["sample_rate"] == 44100
    assert info["num_channels"] == 1
    assert info["frame_count"] == 22050
    assert info["duration"] == pytest.approx(0.5)
    assert len(info["waveform"]) == 300


def test_render_with_explicit_settings(client, wav_bytes):
    response = client.post(
        "/api/recorder/render",
        files={"audio": ("take.wav", wav_bytes, "audio/wav")},
        data={"name": "Squeak", "pitch": "2.0", "crunch": "10"},
    )
    assert response.status_code == 200
    record = response.json()
    assert record["name"] == "Squeak"
    assert record["id"]
    assert record["data"].startswith("data:audio/wav;base64,")
    assert decode(storage.from_storable(record["data"])).frame_count == 11025


def test_render_with_preset_and_override(client, wav_bytes):
    response = client.post(
        "/api/recorder/render",
        files={"audio": ("take.wav", wav_bytes, "audio/wav")},
        data={"preset": "chipmunk", "pitch": "1.0"},
    )
    assert response.status_code == 200
    assert decode(storage.from_storable(response.json()["data"])).frame_count == 22050


@pytest.mark.parametrize("data", [{"pitch": "5"}, {"crunch": "-3"}, {"preset": "robot"}])
def test_render_rejects_bad_parameters(client, wav_bytes, data):
    response = client.post(
        "/api/recorder/render",
        files={"audio": ("take.wav", wav_bytes, "audio/wav")},
        data=data,
    )
    assert response.status_code == 422


def test_empty_upload_is_rejected(client):
    response = client.post("/api/recorder/inspect", files={"audio": ("take.wav", b"", "audio/wav")})
    assert response.status_code == 400


def test_corrupt_upload_is_422(client):
    response = client.post(
        "/api/recorder/inspect",
        files={"audio": ("take.wav", b"RIFF\x10\x00\x00\x00WAVEjunkjunkjunk", "audio/wav")},
    )
    assert response.status_code == 422


def test_rerender_keeps_record_id(client, wav_bytes):
    payload = {
        "data": base64.b64encode(wav_bytes).decode("ascii"),
        "name": "Again",
        "id": "sound-1",
        "settings": {"pitch": 0.5},
    }
    response = client.post("/api/recorder/rerender", json=payload)
    assert response.status_code == 200
    record = response.json()
    assert record["id"] == "sound-1"
    assert decode(storage.from_storable(record["data"])).frame_count == 44100


def test_rerender_rejects_bad_encoding(client):
    response = client.post("/api/recorder/rerender", json={"data": "data:audio/wav;base64,@@@"})
    assert response.status_code == 400


def test_rerender_validates_settings(client, wav_bytes):
    payload = {"data": storage.to_storable(wav_bytes), "settings": {"volume": 9}}
    assert client.post("/api/recorder/rerender", json=payload).status_code == 422


def test_stored_sound_as_wav(client, wav_bytes):
    response = client.post("/api/recorder/wav", json={"data": storage.to_storable(wav_bytes)})
    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/wav"
    assert response.content == wav_bytes


def test_zero_frame_upload_is_rejected(client):
    empty = wav.encode(PCMBuffer.from_planar([np.zeros(0)], 44100))
    files = {"audio": ("empty.wav", empty, "audio/wav")}
    assert client.post("/api/recorder/inspect", files=files).status_code == 400
    assert client.post("/api/recorder/render", files=files).status_code == 400
    response = client.post("/api/recorder/rerender", json={"data": storage.to_storable(empty)})
    assert response.status_code == 400


def test_inflated_length_header_is_not_a_server_error(client, inflated_flac):
    files = {"audio": ("lying.flac", inflated_flac, "audio/flac")}
    for path in ("/api/recorder/inspect", "/api/recorder/render"):
        assert client.post(path, files=files).status_code in (200, 422)
