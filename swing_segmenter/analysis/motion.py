"""Coarse motion windows from low-rate frame differencing.

The first pass over a video is cheap: sample a tiny grid every
``sampling_interval_ms``, count how many cells changed against the previous
grid, and turn the resulting motion signal into padded, merged time windows.
Only these windows are handed to the (expensive) pose stage.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Tuple

import numpy as np

from ..config.detector_config import MotionScanConfig
from ..errors import AnalysisCancelled
from .types import MotionGrid, TimeWindow

logger = logging.getLogger(__name__)

FrameProvider = Callable[[int], Optional[MotionGrid]]
ProgressFn = Callable[[int, int], None]


def motion_ratio(prev: MotionGrid, curr: MotionGrid, pixel_diff_threshold: int = 15) -> float:
    """Fraction of cells where any channel moved by more than the threshold.

    Grids of different shape are not comparable and yield 0.0.
    """
    if prev.shape != curr.shape or curr.size == 0:
        return 0.0
    delta = np.abs(prev.astype(np.int16) - curr.astype(np.int16))
    if delta.ndim == 3:
        changed = np.any(delta > pixel_diff_threshold, axis=-1)
    else:
        changed = delta > pixel_diff_threshold
    return float(np.count_nonzero(changed)) / float(changed.size)


def merge_windows(windows: List[Tuple[int, int]], merge_gap_ms: int) -> List[TimeWindow]:
    """Sort by start and merge windows whose gap is <= merge_gap_ms."""
    if not windows:
        return []
    ordered = sorted(windows, key=lambda w: w[0])
    merged: List[Tuple[int, int]] = []
    cur_start, cur_end = ordered[0]
    for start, end in ordered[1:]:
        if start - cur_end <= merge_gap_ms:
            cur_end = max(cur_end, end)
        else:
            merged.append((cur_start, cur_end))
            cur_start, cur_end = start, end
    merged.append((cur_start, cur_end))
    return [TimeWindow(s, e) for s, e in merged if e > s]


class MotionWindowScanner:
    """Hysteresis over a sampled motion signal.

    A window opens one sample before the first motion tick and closes once no
    motion has been seen for two sampling intervals. Short windows are
    dropped; kept windows are padded and merged.
    """

    def __init__(self, config: Optional[MotionScanConfig] = None):
        self.config = config or MotionScanConfig()

    def _close(self, start: int, end: int, duration_ms: int) -> Optional[Tuple[int, int]]:
        cfg = self.config
        if end - start < cfg.min_window_ms:
            return None
        padded_start = max(0, start - cfg.pad_window_ms)
        padded_end = min(duration_ms, end + cfg.pad_window_ms)
        if padded_end <= padded_start:
            return None
        return padded_start, padded_end

    def scan(
        self,
        duration_ms: int,
        sampling_interval_ms: int,
        frame_provider: FrameProvider,
        *,
        progress: Optional[ProgressFn] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[TimeWindow]:
        """Scan ``[0, duration_ms]`` and return ordered candidate windows.

        ``frame_provider(t)`` returns the grid at ``t`` or None when the frame
        cannot be decoded. A None tick is skipped entirely: it neither signals
        motion nor closes an open window.
        """
        cfg = self.config
        duration_ms = int(duration_ms)
        step = int(sampling_interval_ms)
        if duration_ms <= 0:
            return []
        if step <= 0:
            raise ValueError("sampling_interval_ms must be > 0")

        raw: List[Tuple[int, int]] = []
        prev: Optional[MotionGrid] = None
        in_motion = False
        window_start = 0
        last_motion_t: Optional[int] = None
        ticks = 0
        skipped = 0

        t = 0
        while t <= duration_ms:
            if cancel_event is not None and cancel_event.is_set():
                raise AnalysisCancelled("Motion scan cancelled")

            grid = frame_provider(t)
            ticks += 1
            if grid is None:
                skipped += 1
            else:
                ratio = 0.0
                if prev is not None:
                    ratio = motion_ratio(prev, grid, cfg.pixel_diff_threshold)

                if ratio > cfg.diff_threshold:
                    if not in_motion:
                        in_motion = True
                        window_start = max(0, t - step)
                    last_motion_t = t
                elif in_motion and last_motion_t is not None and (t - last_motion_t) >= 2 * step:
                    closed = self._close(window_start, last_motion_t, duration_ms)
                    if closed is not None:
                        raw.append(closed)
                    in_motion = False
                    last_motion_t = None

                prev = grid

            t += step
            if progress is not None:
                progress(min(t, duration_ms), duration_ms)

        if in_motion:
            end = last_motion_t if last_motion_t is not None else duration_ms
            closed = self._close(window_start, end, duration_ms)
            if closed is not None:
                raw.append(closed)

        windows = merge_windows(raw, cfg.merge_gap_ms)
        logger.info(
            "Motion scan: %d ticks (%d undecodable), %d raw window(s), %d after merge",
            ticks, skipped, len(raw), len(windows),
        )
        return windows
