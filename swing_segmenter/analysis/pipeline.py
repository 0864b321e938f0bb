"""Two-stage swing segmentation driver.

Stage 1 scans the whole video with cheap frame differencing to find motion
windows. Stage 2 decodes each window at the pose inference rate, runs the
pose estimator and feeds a fresh ``SwingStateTracker`` per window. Raw impact
segments from all windows are merged into the final list.

Progress is reported as ``(processed_ms, total_ms)`` where ``total_ms`` is
twice the video duration: the first half covers the motion scan, the second
half the pose pass (proportional to the window time processed).
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, Iterator, List, Optional, Tuple

import numpy as np

from ..config.detector_config import DEFAULT_CONFIG, DetectorConfig
from ..core.base import FrameSource, PoseEstimator
from ..core.latency import LatencyMeter, LatencyStats
from ..errors import AnalysisCancelled
from .motion import MotionWindowScanner
from .segments import SegmentMerger
from .swing_tracker import SwingImpact, SwingStateTracker
from .types import Keypoints, PoseSample, Segment, TimeWindow

logger = logging.getLogger(__name__)

ProgressFn = Callable[[int, int], None]


class ProgressReporter:
    """Forward monotonic, rate-limited progress to a user callback."""

    def __init__(self, callback: Optional[ProgressFn], total_ms: int, min_interval_s: float = 0.05):
        self.callback = callback
        self.total_ms = max(0, int(total_ms))
        self.min_interval_s = float(min_interval_s)
        self._last_ms = -1
        self._last_call = float("-inf")

    @property
    def processed_ms(self) -> int:
        return max(0, self._last_ms)

    def report(self, processed_ms: float, force: bool = False) -> None:
        if self.callback is None:
            return
        value = int(min(self.total_ms, max(0, processed_ms)))
        if value <= self._last_ms:
            return
        now = time.monotonic()
        if not force and value < self.total_ms and (now - self._last_call) < self.min_interval_s:
            return
        self._last_ms = value
        self._last_call = now
        self.callback(value, self.total_ms)

    def finish(self) -> None:
        self.report(self.total_ms, force=True)


class _ProducerFailure:
    def __init__(self, error: BaseException):
        self.error = error


_END = object()


def prefetch(
    frames: Iterator,
    depth: int = 1,
    join_timeout_s: float = 5.0,
    stalled: Optional[List[threading.Thread]] = None,
) -> Iterator:
    """Decode ahead on a worker thread through a bounded queue.

    Items are yielded in order, exactly once. A producer exception is
    re-raised in the consumer. Closing the returned generator stops the
    worker before the next item is handed over.

    A worker still running after ``join_timeout_s`` (stuck inside the
    decoder) is appended to ``stalled``; ``frames`` is then left open and
    the caller must not release the underlying source until it exits.
    """
    q: "queue.Queue" = queue.Queue(maxsize=max(1, int(depth)))
    stop = threading.Event()

    def put(item) -> bool:
        while not stop.is_set():
            try:
                q.put(item, timeout=0.05)
                return True
            except queue.Full:
                continue
        return False

    def producer() -> None:
        try:
            for item in frames:
                if not put(item):
                    return
            put(_END)
        except BaseException as e:  # handed to the consumer
            put(_ProducerFailure(e))

    worker = threading.Thread(target=producer, name="frame-prefetch", daemon=True)
    worker.start()
    try:
        while True:
            item = q.get()
            if item is _END:
                return
            if isinstance(item, _ProducerFailure):
                raise item.error
            yield item
    finally:
        stop.set()
        worker.join(timeout=join_timeout_s)
        if worker.is_alive():
            logger.warning("Frame prefetch worker did not stop within %.1fs", join_timeout_s)
            if stalled is not None:
                stalled.append(worker)
        elif hasattr(frames, "close"):
            frames.close()


class SwingAnalyzer:
    """Find golf swing segments in a video.

    The analyzer does not own its collaborators: the caller opens and closes
    the frame source and pose estimator (see ``analyze_video``).
    """

    def __init__(
        self,
        estimator: PoseEstimator,
        config: DetectorConfig = DEFAULT_CONFIG,
        *,
        prefetch: bool = False,
        progress_interval_s: float = 0.05,
    ):
        self.estimator = estimator
        self.config = config.validate()
        self.prefetch = bool(prefetch)
        self.progress_interval_s = float(progress_interval_s)
        self.scanner = MotionWindowScanner(self.config.motion)
        self.latency = LatencyMeter()
        self._stalled_workers: List[threading.Thread] = []

        # Diagnostics from the last run.
        self.last_windows: List[TimeWindow] = []
        self.last_impacts: List[SwingImpact] = []
        self.last_frame_count = 0
        self.last_latency = LatencyStats()

    def join_workers(self, timeout_s: float = 5.0) -> bool:
        """Wait for stalled prefetch workers; True once none is running.

        Call before closing the frame source: a live worker may still be
        inside the decoder.
        """
        for worker in list(self._stalled_workers):
            worker.join(timeout=timeout_s)
            if not worker.is_alive():
                self._stalled_workers.remove(worker)
        return not self._stalled_workers

    @staticmethod
    def _check_cancel(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise AnalysisCancelled("Swing analysis cancelled")

    def _estimate(self, image: np.ndarray, timestamp_ms: int) -> Optional[Keypoints]:
        """Run the estimator; any failure counts as "no pose" for this frame."""
        t0 = time.perf_counter()
        try:
            return self.estimator.detect(image, timestamp_ms)
        except Exception as e:
            logger.debug("Pose estimation failed at %dms: %s", timestamp_ms, e)
            return None
        finally:
            self.latency.push((time.perf_counter() - t0) * 1000.0)

    def _frames(self, source: FrameSource, window: TimeWindow) -> Iterator[Tuple[int, np.ndarray]]:
        frames = source.decode(window, self.config.tracker.min_step_ms)
        if self.prefetch:
            return prefetch(frames, depth=1, stalled=self._stalled_workers)
        return frames

    def _analyze_window(
        self,
        source: FrameSource,
        window: TimeWindow,
        merger: SegmentMerger,
        on_frame: Callable[[int], None],
        cancel_event: Optional[threading.Event],
    ) -> SwingStateTracker:
        tracker = SwingStateTracker(window, source.frame_size, self.config.tracker)
        frames = self._frames(source, window)
        try:
            for timestamp_ms, image in frames:
                self._check_cancel(cancel_event)
                if tracker.should_process(timestamp_ms):
                    self.last_frame_count += 1
                    keypoints = self._estimate(image, timestamp_ms)
                    if keypoints is not None:
                        segment = tracker.step(PoseSample(timestamp_ms, keypoints))
                        if segment is not None:
                            merger.append(segment)
                on_frame(timestamp_ms)
        finally:
            close = getattr(frames, "close", None)
            if close is not None:
                close()
        return tracker

    def analyze(
        self,
        source: FrameSource,
        progress: Optional[ProgressFn] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Segment]:
        """Return the sorted, disjoint swing segments of ``source``.

        Raises:
            AnalysisCancelled: ``cancel_event`` was set; no partial result.
        """
        self.last_windows = []
        self.last_impacts = []
        self.last_frame_count = 0
        self.latency.reset()
        self.last_latency = LatencyStats()

        duration_ms = int(source.duration_ms)
        if duration_ms <= 0:
            logger.info("Empty or unreadable video, nothing to analyze")
            return []

        reporter = ProgressReporter(progress, 2 * duration_ms, self.progress_interval_s)
        reporter.report(0, force=True)

        windows = self.scanner.scan(
            duration_ms,
            self.config.motion.sampling_interval_ms,
            source.motion_grid,
            progress=lambda done, _total: reporter.report(done),
            cancel_event=cancel_event,
        )
        self.last_windows = list(windows)
        if not windows:
            reporter.finish()
            return []

        merger = SegmentMerger(self.config.merge)
        total_window_ms = sum(w.duration_ms for w in windows)
        done_ms = 0
        for window in windows:
            self._check_cancel(cancel_event)

            def on_frame(ts: int, _base: int = done_ms, _w: TimeWindow = window) -> None:
                covered = _base + min(max(0, ts - _w.start_ms), _w.duration_ms)
                reporter.report(duration_ms + duration_ms * covered / total_window_ms)

            tracker = self._analyze_window(source, window, merger, on_frame, cancel_event)
            self.last_impacts.extend(tracker.impacts)
            done_ms += window.duration_ms
            logger.debug(
                "Window [%d, %d]: %d impact(s)", window.start_ms, window.end_ms, len(tracker.impacts)
            )

        segments = merger.finalize()
        self.last_latency = self.latency.snapshot()
        logger.info(
            "Pose pass: %d window(s), %d frame(s), %d impact(s), %d segment(s); "
            "inference avg %.1fms p95 %.1fms",
            len(windows), self.last_frame_count, len(self.last_impacts), len(segments),
            self.last_latency.avg_ms, self.last_latency.p95_ms,
        )
        reporter.finish()
        return segments
