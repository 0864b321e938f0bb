"""Golf Swing Segmenter - CLI entry point."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from .analysis.activity import ActivityAnalyzer
from .analysis.pipeline import SwingAnalyzer
from .analysis.types import VideoAnalysisResult
from .config.detector_config import DEFAULT_CONFIG, DetectorConfig, load_config
from .config.models import BACKENDS, TIERS
from .core.pose_estimator import create_estimator
from .core.video_processor import VideoFrameSource
from .errors import AnalysisCancelled, ConfigurationError

logger = logging.getLogger(__name__)


def format_ms(ms: int) -> str:
    """Format milliseconds as mm:ss.mmm."""
    minutes, rem = divmod(int(ms), 60_000)
    seconds, millis = divmod(rem, 1000)
    return f"{minutes:02d}:{seconds:02d}.{millis:03d}"


def analyze_video(
    input_path: str,
    *,
    mode: str = "swing",  # "swing" | "activity"
    backend: str = "yolo",
    model: Optional[str] = None,
    tier: str = "mid",
    device: str = "auto",
    confidence: float = 0.4,
    config: DetectorConfig = DEFAULT_CONFIG,
    prefetch: bool = False,
    progress: Optional[Callable[[int, int], None]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> VideoAnalysisResult:
    """Open the video and pose model, run the analysis, release both.

    Raises:
        ConfigurationError: the video or the pose backend could not be opened.
        AnalysisCancelled: ``cancel_event`` was set during the run.
    """
    config = config.validate()
    source = VideoFrameSource(
        input_path,
        config=config.source,
        grid_size=(config.motion.grid_width, config.motion.grid_height),
    )
    logger.info("Video: %s", source.info)
    analyzer: Optional[SwingAnalyzer] = None
    try:
        estimator = create_estimator(
            backend=backend, model=model, tier=tier, device=device, confidence=confidence
        )
        try:
            if mode == "activity":
                return ActivityAnalyzer(estimator, config.activity).analyze(
                    source, progress=progress, cancel_event=cancel_event
                )
            analyzer = SwingAnalyzer(estimator, config, prefetch=prefetch)
            segments = analyzer.analyze(source, progress=progress, cancel_event=cancel_event)
            return VideoAnalysisResult(
                duration_ms=source.duration_ms,
                frame_count=analyzer.last_frame_count,
                segments=segments,
            )
        finally:
            try:
                estimator.close()
            except Exception as e:
                logger.warning("Pose estimator close failed: %s", e)
    finally:
        if analyzer is not None and not analyzer.join_workers():
            # Releasing the capture under a running decoder is unsafe.
            logger.warning("Prefetch worker still running, leaving %s open", input_path)
        else:
            source.close()


def build_config(args: argparse.Namespace) -> DetectorConfig:
    """Defaults, then the JSON config file, then explicit CLI flags."""
    config = load_config(args.config) if args.config else DEFAULT_CONFIG
    if args.left_handed:
        config = replace(config, tracker=replace(config.tracker, right_handed=False))
    if args.rotate is not None:
        config = replace(config, source=replace(config.source, rotation=args.rotate))
    if args.infer_fps is not None:
        config = replace(config, tracker=replace(config.tracker, target_infer_fps=args.infer_fps))
    return config.validate()


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Golf Swing Segmenter - find swing clips in a video with pose estimation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  swing-segment range_session.mp4
  swing-segment range_session.mp4 --json swings.json
  swing-segment range_session.mp4 --backend mediapipe --tier heavy
  swing-segment range_session.mp4 --mode activity
        """
    )

    parser.add_argument("input", help="Input video file path")
    parser.add_argument("--json", dest="json_path", default=None, help="Write the result as JSON to this path")
    parser.add_argument(
        "--mode",
        choices=["swing", "activity"],
        default="swing",
        help="swing: motion scan + impact tracker (default); activity: single full-pass segment",
    )
    parser.add_argument("-b", "--backend", choices=list(BACKENDS), default="yolo", help="Pose backend")
    parser.add_argument("-t", "--tier", choices=list(TIERS), default="mid", help="Model size tier")
    parser.add_argument("-m", "--model", default=None, help="Model weights (overrides --tier)")
    parser.add_argument("-d", "--device", default="auto", choices=["auto", "cpu", "cuda", "mps"])
    parser.add_argument("-c", "--confidence", type=float, default=0.4)
    parser.add_argument("--left-handed", action="store_true", help="Golfer is left-handed (track left wrist)")
    parser.add_argument("-r", "--rotate", type=int, choices=[0, 90, -90, 180], default=None)
    parser.add_argument("--infer-fps", type=int, default=None, help="Pose inference rate inside windows")
    parser.add_argument("--config", default=None, help="JSON file with detector config overrides")
    parser.add_argument("--prefetch", action="store_true", help="Decode frames ahead on a worker thread")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug logs")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose >= 2 else logging.INFO if args.verbose == 1 else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {args.input}", file=sys.stderr)
        sys.exit(1)

    if not 0.0 < args.confidence <= 1.0:
        print("Error: Confidence must be between 0 and 1", file=sys.stderr)
        sys.exit(1)

    def on_progress(processed_ms: int, total_ms: int) -> None:
        pct = 100.0 * processed_ms / total_ms if total_ms > 0 else 100.0
        print(f"  Progress: {pct:5.1f}%", end="\r", flush=True)

    try:
        config = build_config(args)
        print(f"Analyzing: {input_path} (mode={args.mode}, backend={args.backend})")
        result = analyze_video(
            str(input_path),
            mode=args.mode,
            backend=args.backend,
            model=args.model,
            tier=args.tier,
            device=args.device,
            confidence=args.confidence,
            config=config,
            prefetch=args.prefetch,
            progress=on_progress,
        )
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except AnalysisCancelled:
        print("\n\nAnalysis cancelled")
        sys.exit(130)
    except ConfigurationError as e:
        print(f"\nConfiguration error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)

    print()
    print(f"Duration: {format_ms(result.duration_ms)}  Frames analysed: {result.frame_count}")
    if not result.segments:
        print("No swings found.")
    else:
        print(f"Found {len(result.segments)} swing segment(s):")
        for i, seg in enumerate(result.segments, 1):
            print(f"  {i:2d}. {format_ms(seg.start_ms)} - {format_ms(seg.end_ms)}")

    if args.json_path:
        out = Path(args.json_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        payload = {"input": str(input_path), "mode": args.mode, **result.to_dict()}
        out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        print(f"Result saved to: {out}")


if __name__ == "__main__":
    main()
