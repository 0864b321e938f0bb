"""Single-segment swing localisation from whole-body keypoint activity.

A simpler, slower alternative to the two-stage pipeline: every frame (at
~30 fps) goes through the pose estimator, and the span between the first and
the last frame whose total keypoint displacement exceeds a fraction of the
peak becomes the one returned segment.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional, Sequence

import numpy as np

from ..config.detector_config import ActivityConfig
from ..core.base import FrameSource, PoseEstimator
from ..errors import AnalysisCancelled
from .types import FrameSample, Segment, TimeWindow, VideoAnalysisResult

logger = logging.getLogger(__name__)


def keypoint_activity(prev: np.ndarray, curr: np.ndarray) -> float:
    """Sum of |dx| + |dy| over keypoints present in both poses."""
    n = min(len(prev), len(curr))
    delta = np.abs(np.asarray(curr[:n], dtype=np.float64) - np.asarray(prev[:n], dtype=np.float64))
    valid = np.all(np.isfinite(delta), axis=1)
    return float(delta[valid].sum())


def segment_by_activity(
    samples: Sequence[FrameSample], config: Optional[ActivityConfig] = None
) -> List[Segment]:
    """Return at most one segment spanning the active part of ``samples``."""
    cfg = config or ActivityConfig()
    valid = [s for s in samples if s.keypoints is not None]
    if len(valid) < 2:
        return []

    activity = np.zeros(len(valid), dtype=np.float64)
    for i in range(1, len(valid)):
        activity[i] = keypoint_activity(valid[i - 1].keypoints, valid[i].keypoints)

    peak = float(activity.max())
    if peak < cfg.min_activity:
        return []
    threshold = max(cfg.min_activity, peak * cfg.peak_ratio)

    active = np.flatnonzero(activity[1:] >= threshold) + 1
    if active.size == 0:
        return []
    start = valid[int(active[0])]
    end = valid[int(active[-1])]
    if start.timestamp_ms >= end.timestamp_ms:
        return []
    return [Segment(start.timestamp_ms, end.timestamp_ms)]


class ActivityAnalyzer:
    """Full-pass analyzer: pose on every frame, one activity segment."""

    def __init__(self, estimator: PoseEstimator, config: Optional[ActivityConfig] = None):
        self.estimator = estimator
        self.config = config or ActivityConfig()

    def analyze(
        self,
        source: FrameSource,
        progress=None,
        cancel_event: Optional[threading.Event] = None,
    ) -> VideoAnalysisResult:
        duration_ms = int(source.duration_ms)
        if duration_ms <= 0:
            return VideoAnalysisResult(duration_ms=0, frame_count=0)

        samples: List[FrameSample] = []
        failures = 0
        last_report = float("-inf")
        frames = source.decode(TimeWindow(0, duration_ms), self.config.min_step_ms)
        try:
            for timestamp_ms, image in frames:
                if cancel_event is not None and cancel_event.is_set():
                    raise AnalysisCancelled("Activity analysis cancelled")
                try:
                    keypoints = self.estimator.detect(image, timestamp_ms)
                except Exception as e:
                    logger.debug("Pose estimation failed at %dms: %s", timestamp_ms, e)
                    failures += 1
                    keypoints = None
                samples.append(FrameSample(len(samples), timestamp_ms, keypoints))

                now = time.monotonic()
                if progress is not None and now - last_report >= 0.05:
                    last_report = now
                    progress(min(timestamp_ms, duration_ms), duration_ms)
        finally:
            close = getattr(frames, "close", None)
            if close is not None:
                close()

        segments = segment_by_activity(samples, self.config)
        if progress is not None:
            progress(duration_ms, duration_ms)
        logger.info(
            "Activity pass: %d frame(s), %d estimator failure(s), %d segment(s)",
            len(samples), failures, len(segments),
        )
        return VideoAnalysisResult(
            duration_ms=duration_ms,
            frame_count=len(samples),
            segments=segments,
        )
