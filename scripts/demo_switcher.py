"""Quick demo script for the switcher core.

Builds one mixer, previews it on the default audio/video sinks and adds every
``--uri`` as an input, stacking them left to right.

Examples
--------
Play a local MP4 file on top of the background::

    python scripts/demo_switcher.py --uri file:///path/to/video.mp4

Mix two files and record the first one::

    python scripts/demo_switcher.py \
        --uri file:///path/to/a.mp4 \
        --uri file:///path/to/b.mp4 \
        --record

Press Ctrl+C to terminate playback.
"""

from __future__ import annotations

import argparse
import signal
import sys
import time
from typing import Iterable

from switcher import InputConfig, Mixer, MixerConfig, OutputConfig, OutputKind, State
from switcher.config import VideoConfig
from switcher.utils.logging import configure_logging


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Switcher demo")
    parser.add_argument("--uri", action="append", default=[], help="Media URI to add as an input.")
    parser.add_argument("--background", default="smpte", help="videotestsrc pattern behind the inputs.")
    parser.add_argument("--record", action="store_true", help="Record the first input to disk.")
    parser.add_argument(
        "--fake",
        action="store_true",
        help="Discard the mix instead of opening preview windows.",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="Optional duration in seconds; 0 means run until interrupted.",
    )
    return parser.parse_args(argv)


def add_inputs(mixer: Mixer, uris: list[str], record: bool) -> None:
    width = mixer.config.video.width // max(1, len(uris))
    height = mixer.config.video.height // max(1, len(uris))
    for index, uri in enumerate(uris):
        config = InputConfig(
            name=f"input{index}",
            video=VideoConfig(width=width, height=height, xpos=index * width),
            record=record and index == 0,
        )
        mixer.add_input(config, uri)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()

    mixer = Mixer(MixerConfig(name="demo", background=args.background))
    kind = OutputKind.FAKE if args.fake else OutputKind.AUTO
    mixer.add_output(kind, OutputConfig(name="preview"))
    mixer.set_state(State.PLAYING)
    add_inputs(mixer, args.uri, args.record)

    stop_requested = False

    def _handle_signal(signum, frame):  # type: ignore[override]
        nonlocal stop_requested
        stop_requested = True

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        start_time = time.monotonic()
        while not stop_requested:
            time.sleep(0.1)
            if args.duration > 0 and time.monotonic() - start_time >= args.duration:
                break
    finally:
        mixer.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
