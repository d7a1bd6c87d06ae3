import pytest

from soundrecorder.config import DEFAULT_VISUAL_INTERVAL, RecorderConfig


def test_defaults_when_unset():
    config = RecorderConfig.from_env({})
    assert config == RecorderConfig()
    assert config.sample_rate == 44100
    assert config.capture_channels == 1
    assert config.block_frames == 1024
    assert config.visual_bars == 20
    assert config.visual_interval == DEFAULT_VISUAL_INTERVAL
    assert config.input_device is None


def test_values_from_environment():
    config = RecorderConfig.from_env(
        {
            "RECORDER_SAMPLE_RATE": "48000",
            "RECORDER_CAPTURE_CHANNELS": "2",
            "RECORDER_BLOCK_FRAMES": "256",
            "RECORDER_VISUAL_BARS": "32",
            "RECORDER_VISUAL_INTERVAL": "0.05",
            "RECORDER_INPUT_DEVICE": "3",
            "RECORDER_OUTPUT_DEVICE": " USB Audio ",
        }
    )
    assert config.sample_rate == 48000
    assert config.capture_channels == 2
    assert config.block_frames == 256
    assert config.visual_bars == 32
    assert config.visual_interval == 0.05
    assert config.input_device == 3
    assert config.output_device == "USB Audio"


@pytest.mark.parametrize(
    "key,value",
    [
        ("RECORDER_SAMPLE_RATE", "fast"),
        ("RECORDER_BLOCK_FRAMES", "0"),
        ("RECORDER_VISUAL_INTERVAL", "-1"),
    ],
)
def test_invalid_values_name_the_variable(key, value):
    with pytest.raises(ValueError, match=key):
        RecorderConfig.from_env({key: value})
