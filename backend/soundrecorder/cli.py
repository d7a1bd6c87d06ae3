#!/usr/bin/env python3
"""
Sound Recorder - CLI Entry Point
================================
Render, inspect, preview and record sounds from the command line.

Usage:
    soundrecorder info ./voice.webm
    soundrecorder render ./voice.webm ./robot.wav --pitch 0.6 --crunch 50 --volume 1.2
    soundrecorder render ./voice.wav ./chipmunk.wav --preset chipmunk
    soundrecorder export ./robot.wav > robot.txt
    soundrecorder import ./robot.txt ./robot.wav
    soundrecorder curve --crunch 200
    soundrecorder play ./voice.wav --preset radio
    soundrecorder record ./take.wav --seconds 3
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from . import curves, storage, wav
from .chain import PRESETS, EffectParameters, preset
from .config import RecorderConfig
from .decoder import decode
from .errors import RecorderError
from .pcm import waveform_peaks
from .renderer import OfflineRenderer


def _params_from_args(args) -> EffectParameters:
    params = preset(args.preset) if args.preset else EffectParameters()
    changes = {}
    for name in ("pitch", "crunch", "volume"):
        value = getattr(args, name)
        if value is not None:
            changes[name] = value
    return params.replace(**changes) if changes else params


def cmd_info(args):
    """Handle info command."""
    buffer = decode(Path(args.input_file).read_bytes())

    print("\n" + "=" * 50)
    print("SOUND INFO")
    print("=" * 50)
    print(f"File: {args.input_file}")
    print(f"Sample Rate: {buffer.sample_rate} Hz")
    print(f"Channels: {buffer.num_channels}")
    print(f"Frames: {buffer.frame_count}")
    print(f"Duration: {buffer.duration_seconds:.3f} seconds")
    if buffer.frame_count:
        peaks = waveform_peaks(buffer, args.width)
        low = min(p[0] for p in peaks)
        high = max(p[1] for p in peaks)
        print(f"Peak Range: {low:.4f} .. {high:.4f}")
    return 0


def cmd_render(args):
    """Handle render command."""
    params = _params_from_args(args)
    buffer = decode(Path(args.input_file).read_bytes())
    sound = OfflineRenderer().bake(buffer, params)
    Path(args.output_file).write_bytes(sound.wav_bytes)
    print(
        f"Rendered {args.input_file} -> {args.output_file} "
        f"(pitch={params.pitch:g}, crunch={params.crunch:g}, volume={params.volume:g}, "
        f"{sound.frame_count} frames, {sound.duration_seconds:.3f}s)"
    )
    return 0


def cmd_export(args):
    """Handle export command: WAV file -> storable data-URI."""
    data = Path(args.input_file).read_bytes()
    if not args.raw:
        # Re-encode as canonical 16-bit WAV; no effects are applied.
        data = wav.encode(decode(data))
    print(storage.to_storable(data))
    return 0


def cmd_import(args):
    """Handle import command: storable data-URI -> WAV file."""
    text = Path(args.input_file).read_text()
    data = storage.from_storable(text)
    decode(data)
    Path(args.output_file).write_bytes(data)
    print(f"Saved: {args.output_file} ({len(data)} bytes)")
    return 0


def cmd_curve(args):
    """Handle curve command."""
    table = curves.generate(args.crunch)
    print(f"Crunch: {args.crunch:g}")
    print(f"Table size: {table.size}")
    print(f"Small-signal gain: {curves.small_signal_gain(args.crunch):.6f}")
    print(f"Output range: {float(table.min()):.6f} .. {float(table.max()):.6f}")
    for x in (-1.0, -0.5, -0.1, 0.0, 0.1, 0.5, 1.0):
        i = min(table.size - 1, int(round((x + 1.0) * table.size / 2.0)))
        print(f"  x={x:+.2f} -> {float(table[i]):+.6f}")
    return 0


async def _play(args, config: RecorderConfig) -> int:
    from .session import RecorderSession

    async with RecorderSession(config=config) as session:
        await session.import_file(args.input_file)
        session.params = _params_from_args(args)
        preview = await session.preview()
        try:
            async for bars in preview.levels():
                if args.meter:
                    print("".join(" .:-=+*#%@"[min(9, int(b / 10))] for b in bars), end="\r", flush=True)
        finally:
            session.stop_preview()
        if args.meter:
            print()
        if preview.error is not None:
            raise preview.error
    return 0


def cmd_play(args):
    """Handle play command."""
    return asyncio.run(_play(args, RecorderConfig.from_env()))


async def _record(args, config: RecorderConfig) -> int:
    from .session import RecorderSession

    async with RecorderSession(config=config) as session:
        await session.start_recording()
        print(f"Recording for {args.seconds:g} seconds...")
        await asyncio.sleep(args.seconds)
        buffer = await session.stop_recording()
        session.params = _params_from_args(args)
        sound = await session.save()
    Path(args.output_file).write_bytes(sound.wav_bytes)
    print(f"Saved: {args.output_file} ({buffer.duration_seconds:.2f}s captured)")
    return 0


def cmd_record(args):
    """Handle record command."""
    return asyncio.run(_record(args, RecorderConfig.from_env()))


def _add_effect_arguments(parser):
    parser.add_argument('-p', '--preset', choices=sorted(PRESETS), help='Start from a preset')
    parser.add_argument('--pitch', type=float, help='Speed/pitch multiplier (0.5-2.0)')
    parser.add_argument('--crunch', type=float, help='Distortion amount (0-400)')
    parser.add_argument('--volume', type=float, help='Linear gain (0-2.0)')


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='soundrecorder',
        description='Sound Recorder - capture, preview and bake short sound effects',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # INFO command
    info_parser = subparsers.add_parser('info', help='Decode a file and show its format')
    info_parser.add_argument('input_file', help='Audio file')
    info_parser.add_argument('--width', type=int, default=300, help='Waveform overview width')
    info_parser.set_defaults(func=cmd_info)

    # RENDER command
    render_parser = subparsers.add_parser('render', help='Bake effects into a 16-bit WAV')
    render_parser.add_argument('input_file', help='Input audio file')
    render_parser.add_argument('output_file', help='Output WAV file')
    _add_effect_arguments(render_parser)
    render_parser.set_defaults(func=cmd_render)

    # EXPORT command
    export_parser = subparsers.add_parser('export', help='Print a sound as a storable data-URI')
    export_parser.add_argument('input_file', help='Input audio file')
    export_parser.add_argument('--raw', action='store_true', help='Encode the file bytes as-is')
    export_parser.set_defaults(func=cmd_export)

    # IMPORT command
    import_parser = subparsers.add_parser('import', help='Write a stored data-URI back to a file')
    import_parser.add_argument('input_file', help='Text file holding the data-URI or base64 payload')
    import_parser.add_argument('output_file', help='Output audio file')
    import_parser.set_defaults(func=cmd_import)

    # CURVE command
    curve_parser = subparsers.add_parser('curve', help='Inspect the crunch transfer curve')
    curve_parser.add_argument('-k', '--crunch', type=float, default=0.0, help='Distortion amount (0-400)')
    curve_parser.set_defaults(func=cmd_curve)

    # PLAY command
    play_parser = subparsers.add_parser('play', help='Preview a file with effects on the output device')
    play_parser.add_argument('input_file', help='Input audio file')
    play_parser.add_argument('--meter', action='store_true', help='Draw the level bars')
    _add_effect_arguments(play_parser)
    play_parser.set_defaults(func=cmd_play)

    # RECORD command
    record_parser = subparsers.add_parser('record', help='Record from the microphone and bake a WAV')
    record_parser.add_argument('output_file', help='Output WAV file')
    record_parser.add_argument('-s', '--seconds', type=float, default=3.0, help='Capture length')
    _add_effect_arguments(record_parser)
    record_parser.set_defaults(func=cmd_record)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else os.environ.get('LOG_LEVEL', 'WARNING').upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if not args.command:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except (RecorderError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
