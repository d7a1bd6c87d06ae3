import asyncio

import numpy as np
import pytest

from soundrecorder.chain import EffectChain, EffectParameters
from soundrecorder.engine import AudioEngine, EngineState
from soundrecorder.errors import DeviceUnavailable
from soundrecorder.preview import IDLE_BAR_LEVEL, LivePreviewPlayer, SpectrumAnalyser

from conftest import FakeOutput


def test_preview_plays_whole_chain_after_resume(engine, output, sine):
    buffer = sine(seconds=0.3, channels=2)
    params = EffectParameters(pitch=1.5, crunch=40)

    async def run():
        player = LivePreviewPlayer(engine)
        assert engine.state is EngineState.SUSPENDED
        session = await player.start(buffer, params)
        assert engine.state is EngineState.RUNNING
        await session.wait()
        return player, session

    player, session = asyncio.run(run())
    expected = np.concatenate(list(EffectChain(buffer, params).blocks(1024)), axis=1)

    assert output.activations == 1
    sink = output.sinks[0]
    assert sink.closed
    assert sink.frames.shape == (expected.shape[1], 2)
    assert np.allclose(sink.frames, expected.T.astype(np.float32))
    assert session.frames_played == expected.shape[1]
    assert session.finished and session.stopped
    assert session.error is None
    assert player.session is None


def test_levels_are_bars_in_range(engine, sine):
    seen = []

    async def run():
        player = LivePreviewPlayer(engine)
        session = await player.start(sine(seconds=0.5), EffectParameters(), on_levels=seen.append)
        streamed = [bars async for bars in session.levels()]
        await session.wait()
        return streamed

    streamed = asyncio.run(run())
    assert len(seen) > 2
    for bars in seen:
        assert len(bars) == 20
        assert all(0.0 <= b <= 100.0 for b in bars)
    assert seen[-1] == [IDLE_BAR_LEVEL] * 20
    assert any(b > IDLE_BAR_LEVEL for bars in seen[:-1] for b in bars)
    assert streamed


def test_stop_is_idempotent(config, sine):
    output = FakeOutput(delay=0.01)
    engine = AudioEngine(config, output_backend=output)

    async def run():
        player = LivePreviewPlayer(engine)
        session = await player.start(sine(seconds=1.0), EffectParameters())
        await asyncio.sleep(0.03)
        player.stop()
        player.stop()
        player.stop(session)
        await session.wait()
        return player, session

    player, session = asyncio.run(run())
    assert session.stopped
    assert session.error is None
    assert 0 < session.frames_played < 44100
    assert output.sinks[0].closed
    assert player.session is None


def test_stop_without_a_session_is_a_noop(engine):
    player = LivePreviewPlayer(engine)
    player.stop()
    player.stop()
    assert player.session is None


def test_starting_again_replaces_the_running_preview(config, sine):
    output = FakeOutput(delay=0.01)
    engine = AudioEngine(config, output_backend=output)

    async def run():
        player = LivePreviewPlayer(engine)
        first = await player.start(sine(seconds=1.0), EffectParameters())
        await asyncio.sleep(0.02)
        second = await player.start(sine(seconds=1.0), EffectParameters(pitch=2.0))
        assert first.stopped
        assert player.session is second
        assert second.active
        player.stop()
        await asyncio.gather(first.wait(), second.wait())
        return first, second

    first, second = asyncio.run(run())
    assert output.sinks[0].closed and output.sinks[1].closed
    assert first.id != second.id


def test_output_activation_failure_is_device_unavailable(config, sine):
    engine = AudioEngine(config, output_backend=FakeOutput(fail_activate=True))

    async def run():
        await LivePreviewPlayer(engine).start(sine(seconds=0.1), EffectParameters())

    with pytest.raises(DeviceUnavailable):
        asyncio.run(run())
    assert engine.state is EngineState.SUSPENDED


def test_write_failure_is_recorded_on_the_session(config, sine):
    output = FakeOutput(fail_after=2)
    engine = AudioEngine(config, output_backend=output)

    async def run():
        session = await LivePreviewPlayer(engine).start(sine(seconds=0.5), EffectParameters())
        await session.wait()
        return session

    session = asyncio.run(run())
    assert isinstance(session.error, RuntimeError)
    assert len(output.sinks[0].writes) == 2
    assert session.frames_played == output.sinks[0].frames.shape[0]
    assert output.sinks[0].closed


def test_closed_engine_cannot_preview(engine, sine):
    async def run():
        await engine.close()
        await LivePreviewPlayer(engine).start(sine(seconds=0.1), EffectParameters())

    with pytest.raises(DeviceUnavailable):
        asyncio.run(run())


def test_spectrum_analyser_silence_is_zero():
    analyser = SpectrumAnalyser(bars=20)
    analyser.push(np.zeros((1, 512)))
    assert analyser.levels() == [0.0] * 20
