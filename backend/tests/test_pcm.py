import numpy as np
import pytest

from soundrecorder.pcm import PCMBuffer, waveform_peaks


def test_channels_are_read_only_copies():
    source = np.array([0.1, 0.2, 0.3])
    buffer = PCMBuffer.from_planar([source], 8000)
    source[0] = 9.0
    assert buffer.channels[0][0] == pytest.approx(0.1)
    assert buffer.channels[0].dtype == np.float32
    with pytest.raises(ValueError):
        buffer.channels[0][0] = 1.0


def test_interleaved_and_planar_views():
    frames = np.array([[0.1, -0.1], [0.2, -0.2], [0.3, -0.3]], dtype=np.float32)
    buffer = PCMBuffer.from_interleaved(frames, 16000)
    assert buffer.num_channels == 2
    assert buffer.frame_count == 3
    assert buffer.duration_seconds == pytest.approx(3 / 16000)
    assert np.array_equal(buffer.to_interleaved(), frames)
    assert np.array_equal(buffer.to_planar(), frames.T)


@pytest.mark.parametrize(
    "planes,rate",
    [([np.zeros(3), np.zeros(4)], 8000), ([], 8000), ([np.zeros(3)], 0), ([np.zeros(3)], 44100.5)],
)
def test_invalid_buffers_rejected(planes, rate):
    with pytest.raises(ValueError):
        PCMBuffer.from_planar(planes, rate)


def test_waveform_peaks():
    data = np.concatenate([np.full(50, 0.5), np.full(50, -0.25)])
    peaks = waveform_peaks(PCMBuffer.from_planar([data], 8000), 4)
    assert peaks == [(0.5, 0.5), (0.5, 0.5), (-0.25, -0.25), (-0.25, -0.25)]

    padded = waveform_peaks(PCMBuffer.from_planar([np.ones(3)], 8000), 5)
    assert padded[:3] == [(1.0, 1.0)] * 3
    assert padded[3:] == [(0.0, 0.0)] * 2

    assert waveform_peaks(PCMBuffer.from_planar([np.zeros(0)], 8000), 2) == [(0.0, 0.0)] * 2
