#!/usr/bin/env python3
"""
Offline "I am sitting in a room" run from the command line.

Reads a WAV, conditions it as iteration 0, renders iterations until --iterations is
reached (fixed or randomized parameters) and writes iteration_XX.wav files plus
metrics.json (per-iteration metrics, phase history, parameter log).

Usage:
    python tools/render_iterations.py input.wav [options]

Options:
    --iterations <int>    Total iterations including the capture (default: 12)
    --random              Randomize parameters before every step
    --seed <int>          Seed for the randomizer and impulse responses (default: random)
    --room <name>         Room preset (small, large, bathroom, stairwell, cathedral)
    --q / --wet / --feedback / --convolver   Fixed parameter overrides
    --sequence            Also write full_sequence.wav
    --output-dir <path>   Output directory (default: unique timestamped dir)
"""
import sys
import os
import json
import argparse
import asyncio
import random
from datetime import datetime
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sittingroom.core.io import AudioIO
from sittingroom.core.types import ImpulseResponseKind
from sittingroom.dsp.impulse import ImpulseResponseGenerator
from sittingroom.export.exporter import Exporter, iteration_filename
from sittingroom.params.canonical_defaults import ROOM_PRESETS, SESSION_DEFAULTS
from sittingroom.params.randomizer import ParameterRandomizer
from sittingroom.render.offline import OfflineRenderer
from sittingroom.session.engine import RoomSession


async def _no_wait(_seconds: float) -> None:
    return None


def get_unique_output_dir(base_name: str) -> Path:
    """renders/{base_name}/YYYYMMDD_HHMMSS/"""
    return Path("renders") / base_name / datetime.now().strftime("%Y%m%d_%H%M%S")


def build_session(args) -> RoomSession:
    rng = random.Random(args.seed) if args.seed is not None else None
    session = RoomSession(
        renderer=OfflineRenderer(ImpulseResponseGenerator(seed=args.seed)),
        randomizer=ParameterRandomizer(rng=rng),
        sleep=_no_wait,
        max_iterations=args.iterations,
        batch_gap_s=0.0,
        render_in_thread=False,
    )
    if args.room:
        session.select_room_preset(args.room)
    changes = {}
    if args.q is not None:
        changes["filter_q"] = args.q
    if args.wet is not None:
        changes["dry_wet_mix"] = args.wet
    if args.feedback is not None:
        changes["feedback_gain"] = args.feedback
    if args.convolver:
        changes["use_convolver"] = args.convolver != ImpulseResponseKind.NONE.value
        changes["impulse_response_kind"] = args.convolver
    if changes:
        session.update_params(**changes)
    return session


def run(args) -> Path:
    samples, sample_rate = AudioIO.read(args.input)
    session = build_session(args)
    session.capture(samples, sample_rate, condition=not args.no_condition)

    if args.random:
        asyncio.run(session.random_batch())
    else:
        asyncio.run(session.auto_process())

    output_dir = Path(args.output_dir) if args.output_dir else get_unique_output_dir(Path(args.input).stem)
    output_dir.mkdir(parents=True, exist_ok=True)

    for it in session.iterations():
        AudioIO.save_wav(it.samples, it.sample_rate, str(output_dir / iteration_filename(it.index)))

    if args.sequence:
        (output_dir / "full_sequence.wav").write_bytes(Exporter.sequence_wav(session))

    report = {
        "input": str(args.input),
        "seed": args.seed,
        "params": session.params.to_dict(),
        "iterations": [it.summary() for it in session.iterations()],
        "phase_history": [entry.to_dict() for entry in session.phase_history],
        "parameter_log": [entry.to_dict() for entry in session.parameter_log],
    }
    with open(output_dir / "metrics.json", "w") as f:
        json.dump(report, f, indent=2)

    print(f"\n=== Render Complete ===")
    print(f"Iterations: {len(session.iterations())}")
    print(f"Output: {output_dir}")
    for it in session.iterations():
        m = it.metrics
        print(
            f"  {it.index:2d}  phase={m.phase.value:<7}  centroid={m.centroid_hz:7.1f} Hz  "
            f"flatness={m.flatness:.3f}  peak_ratio={m.peak_ratio:.3f}"
        )
    return output_dir


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Render 'I am sitting in a room' iterations from a WAV file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("input", help="Input WAV file")
    parser.add_argument("--iterations", type=int, default=SESSION_DEFAULTS["max_iterations"],
                        help="Total iterations including the capture")
    parser.add_argument("--random", action="store_true", help="Randomize parameters before every step")
    parser.add_argument("--seed", type=int, default=None, help="Fixed seed (default: random)")
    parser.add_argument("--room", choices=list(ROOM_PRESETS), help="Room preset")
    parser.add_argument("--q", type=float, help="Filter Q (5-100)")
    parser.add_argument("--wet", type=float, help="Dry/wet mix (0-1)")
    parser.add_argument("--feedback", type=float, help="Feedback gain (0.5-1.0)")
    parser.add_argument("--convolver", choices=[k.value for k in ImpulseResponseKind],
                        help="Impulse response kind ('none' disables the convolver)")
    parser.add_argument("--no-condition", action="store_true", help="Store the input as-is (no normalize/fades)")
    parser.add_argument("--sequence", action="store_true", help="Also write full_sequence.wav")
    parser.add_argument("--output-dir", type=str, help="Output directory (default: unique timestamped)")

    args = parser.parse_args(argv)
    return run(args)


if __name__ == "__main__":
    main()
