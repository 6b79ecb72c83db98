"""
videoinsight command line interface

Commands:
  analyze  -- Annotate keyframes and transcribe the audio of a video
  status   -- Load the configured models and report which are available

Usage examples:
  videoinsight analyze clip.mp4
  videoinsight analyze clip.mp4 --output report.json --export-audio clip.wav
  videoinsight analyze clip.mp4 --frames 10 --budget 60 --no-ocr --format text
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Sequence

from videoinsight.ai.capabilities import Capabilities
from videoinsight.ai.video_analysis import AnalysisReport, VideoAnalyzer
from videoinsight.base.exceptions import AudioError, VideoInsightError
from videoinsight.base.media import MediaSource
from videoinsight.config import OBJECT_DETECTION, SPEECH_RECOGNITION, TEXT_RECOGNITION, AnalysisConfig
from videoinsight.utils.logger import setup_logger

logger = logging.getLogger(__name__)


def _print_progress(percent: int, message: str) -> None:
    print(f"[{percent:3d}%] {message}", file=sys.stderr, flush=True)


def build_config(args: argparse.Namespace) -> AnalysisConfig:
    """Apply command line overrides on top of the file configuration."""
    config = AnalysisConfig.load()
    overrides: dict = {}
    if args.frames is not None:
        overrides["keyframe_count"] = args.frames
    if args.budget is not None:
        overrides["audio_budget_seconds"] = args.budget
    if getattr(args, "device", None) is not None:
        overrides["device"] = args.device

    disabled = set()
    if getattr(args, "no_detection", False):
        disabled.add(OBJECT_DETECTION)
    if getattr(args, "no_ocr", False):
        disabled.add(TEXT_RECOGNITION)
    if getattr(args, "no_asr", False):
        disabled.add(SPEECH_RECOGNITION)
    if disabled:
        overrides["enabled_capabilities"] = set(config.enabled_capabilities) - disabled

    return replace(config, **overrides)


def format_report(report: AnalysisReport) -> str:
    """Human readable rendering of a report."""
    lines = [
        f"File: {report.filename} ({report.filesize / 1024 / 1024:.2f} MB)",
        f"Analyzed at: {report.timestamp}",
        "",
        "Transcription:",
        report.transcription.text,
        "",
        f"Keyframes ({len(report.keyframes)}):",
    ]
    for index, frame in enumerate(report.keyframes, start=1):
        lines.append(f"  Frame {index} ({frame.timestamp:.2f}s)")
        if frame.objects:
            labels = ", ".join(f"{obj.label} ({obj.confidence * 100:.1f}%)" for obj in frame.objects)
            lines.append(f"    Objects: {labels}")
        else:
            lines.append("    Objects: none detected")
        if frame.text:
            lines.append(f"    Text: {frame.text}")
    return "\n".join(lines)


# ===================================================================
# Command handlers
# ===================================================================


def cmd_analyze(args: argparse.Namespace) -> int:
    config = build_config(args)
    source = MediaSource.from_path(args.video)

    with VideoAnalyzer(config=config) as analyzer:
        report = analyzer.analyze(source, on_progress=None if args.quiet else _print_progress)

        if args.export_audio:
            try:
                written = analyzer.export_audio(source, args.export_audio)
            except AudioError as exc:
                logger.warning("Audio export of %s failed: %s", source.name, exc)
                print(f"Audio not exported: {exc}", file=sys.stderr)
            else:
                print(f"Audio written to {written}", file=sys.stderr)

    if args.output:
        report.save(args.output)
        print(f"Report written to {args.output}", file=sys.stderr)
    elif args.format == "text":
        print(format_report(report))
    else:
        print(report.to_json())
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    config = build_config(args)
    capabilities = Capabilities.from_config(config)
    capabilities.initialize()
    unavailable = 0
    for capability, state in capabilities.status().items():
        print(f"{capability:<20} {state}")
        if state != "available":
            unavailable += 1
    return 0 if unavailable == 0 else 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="videoinsight",
        description="Keyframe annotation and speech transcription for video files.",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    common.add_argument("--frames", type=int, default=None, help="Number of keyframes to sample (default: 6)")
    common.add_argument(
        "--budget",
        type=float,
        default=None,
        help="Seconds of audio to transcribe (default: 30)",
    )
    common.add_argument("--device", choices=["auto", "cpu", "cuda", "mps"], default=None, help="Inference device")
    common.add_argument("--no-detection", action="store_true", dest="no_detection", help="Skip object detection")
    common.add_argument("--no-ocr", action="store_true", dest="no_ocr", help="Skip on-screen text recognition")
    common.add_argument("--no-asr", action="store_true", dest="no_asr", help="Skip speech recognition")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -- analyze --
    p_analyze = subparsers.add_parser("analyze", parents=[common], help="Analyze a video file")
    p_analyze.add_argument("video", type=str, help="Path to the video file")
    p_analyze.add_argument("-o", "--output", type=str, default=None, help="Write the JSON report to this path")
    p_analyze.add_argument(
        "--export-audio",
        type=str,
        default=None,
        dest="export_audio",
        help="Also write the full audio track as a .wav file",
    )
    p_analyze.add_argument(
        "--format",
        choices=["json", "text"],
        default="json",
        help="Output format when no --output is given (default: json)",
    )
    p_analyze.add_argument("-q", "--quiet", action="store_true", help="Do not print progress lines")
    p_analyze.set_defaults(func=cmd_analyze)

    # -- status --
    p_status = subparsers.add_parser("status", parents=[common], help="Report which models can be loaded")
    p_status.set_defaults(func=cmd_status)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logger("debug" if getattr(args, "verbose", False) else None)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user.", file=sys.stderr)
        return 130
    except (VideoInsightError, ValueError) as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
