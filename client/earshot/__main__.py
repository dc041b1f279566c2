"""Command line entrypoint: segment live or recorded audio and transcribe it."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import soundfile as sf

from .audio.capture import FileCapture, SoundDeviceCapture
from .audio.clock import ManualClock, MonotonicClock
from .audio.errors import CaptureStartError
from .audio.segment_controller import SegmentController
from .audio.types import Segment
from .config import CONFIG, RecorderConfig
from .services.logger import LogBuffer
from .services.network import PROVIDERS, ApiClient
from .services.uploader import UploadWorker
from .session import SegmentWriter, TranscriptionSession, normalize_level
from .store.settings_store import SettingsStore
from .store.transcript_store import TranscriptStore

DEFAULT_HOME = Path.home() / ".earshot"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="earshot",
        description="Cut speech into segments on silence and send them for transcription.",
    )
    parser.add_argument("--input", type=Path, help="Replay an audio file instead of recording the microphone.")
    parser.add_argument("--realtime", action="store_true", help="Replay --input at its natural speed.")
    parser.add_argument("--device", help="Input device index or name (default: system default).")
    parser.add_argument("--provider", choices=PROVIDERS, help="Transcription provider on the server.")
    parser.add_argument("--server", help="Transcription server URL.")
    parser.add_argument("--api-key", help="API key sent as X-API-Key.")
    parser.add_argument("--threshold", type=float, help="Silence threshold in dB (default: -50).")
    parser.add_argument("--silence-timeout", type=int, help="Silence before a cut, in ms (default: 800).")
    parser.add_argument("--max-length", type=int, help="Maximum segment length in ms (default: 15000).")
    parser.add_argument(
        "--settings",
        type=Path,
        default=DEFAULT_HOME / "settings.json",
        help="Settings file (default: ~/.earshot/settings.json).",
    )
    parser.add_argument("--save", action="store_true", help="Persist the connection and VAD options given.")
    parser.add_argument(
        "--transcripts",
        type=Path,
        default=DEFAULT_HOME / "transcripts.srt",
        help="Transcript archive (default: ~/.earshot/transcripts.srt).",
    )
    parser.add_argument("--dry-run", action="store_true", help="Write segments to --output instead of uploading.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("segments"),
        help="Directory for --dry-run WAV files (default: ./segments).",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    return parser


def _settings_overrides(args: argparse.Namespace) -> dict:
    candidates = {
        "server_url": args.server,
        "api_key": args.api_key,
        "provider": args.provider,
        "silence_threshold_db": args.threshold,
        "silence_timeout_ms": args.silence_timeout,
        "max_segment_length_ms": args.max_length,
    }
    return {key: value for key, value in candidates.items() if value is not None}


class LevelMeter:
    def __init__(self, stream=None, width: int = 30) -> None:
        self.stream = stream or sys.stderr
        self.width = width
        self.enabled = self.stream.isatty()

    def __call__(self, db: float) -> None:
        if not self.enabled:
            return
        filled = int(normalize_level(db) * self.width)
        bar = "#" * filled + " " * (self.width - filled)
        self.stream.write(f"\r[{bar}] {max(db, -99.0):6.1f} dB")
        self.stream.flush()


def _print_result(segment: Segment, text: str) -> None:
    if text:
        print(f"\n[{segment.index}] {text}", flush=True)


def _print_error(exc: BaseException) -> None:
    print(f"\nerror: {exc}", file=sys.stderr, flush=True)


async def run(args: argparse.Namespace) -> int:
    store = SettingsStore(args.settings)
    overrides = _settings_overrides(args)
    if args.save and overrides:
        store.update(**overrides)
    app_settings = store.get()
    for key, value in overrides.items():
        setattr(app_settings, key, value)

    config = RecorderConfig.from_settings(app_settings, CONFIG)
    if args.input:
        try:
            config = config.with_overrides(sample_rate_hz=int(sf.info(str(args.input)).samplerate))
        except RuntimeError as exc:
            _print_error(exc)
            return 1
        clock = ManualClock()
        capture = FileCapture(args.input, config, clock=clock, realtime=args.realtime)
    else:
        clock = MonotonicClock()
        device = int(args.device) if args.device and args.device.isdigit() else args.device
        capture = SoundDeviceCapture(config, device=device)

    logger = LogBuffer(config.log_history)
    if args.dry_run:
        sink = SegmentWriter(args.output, logger)
    else:
        sink = UploadWorker(
            ApiClient(store),
            logger,
            TranscriptStore(args.transcripts),
            provider=app_settings.provider,
            on_result=_print_result,
            on_error=_print_error,
        )
    controller = SegmentController(capture, config, clock=clock)
    session = TranscriptionSession(
        controller,
        sink,
        provider=app_settings.provider,
        logger=logger,
        on_error=_print_error,
        on_audio_level=LevelMeter(),
    )
    try:
        await session.start()
    except CaptureStartError:
        # already reported through the session's error handler
        await session.stop()
        return 1
    try:
        await session.wait()
    except asyncio.CancelledError:
        pass
    finally:
        await session.stop()
    if isinstance(sink, SegmentWriter):
        print(f"\n{len(sink.written)} segment(s) written to {args.output}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
