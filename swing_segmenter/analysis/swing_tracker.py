"""Golf swing impact recognition over a pose-sample stream.

One tracker runs per motion window. It looks for the top of the backswing (a
local minimum of the wrist height) and then for the downswing: the wrist
dropping fast from above the hip band into it shortly after that top. Each
recognized impact becomes a clip segment around the impact time.

Design goals:
- Single pass, one sample at a time, no look-ahead beyond the top ring
- Invalid samples never touch state (a dropped sample is as if never seen)
- Speed threshold scales with the analysed frame size
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from ..config.detector_config import SwingTrackerConfig
from ..config.keypoints import KEYPOINT_NAMES, NUM_KEYPOINTS, SWING_LANDMARKS, wrist_name
from .top_detector import RingTopDetector
from .types import PoseSample, Segment, TimeWindow

logger = logging.getLogger(__name__)


class TrackerPhase(str, Enum):
    AWAITING_TOP = "awaiting_top"
    TOP_SEEN = "top_seen"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class SwingImpact:
    """A recognized impact and the evidence that triggered it."""

    impact_ms: int
    top_ms: int
    # Downward wrist speed (px/s, positive = down the screen).
    down_speed_px_s: float
    # Shoulder-relative horizontal wrist speed (px/s), diagnostic only.
    lateral_speed_px_s: float
    mirrored: bool
    segment: Segment


@dataclass(frozen=True)
class _Observation:
    """Landmark geometry extracted from one valid sample."""

    wrist_y: float
    wrist_y_px: float
    wrist_offset_px: float
    mid_hip_y: float
    mirrored: bool


@dataclass
class TrackerState:
    """Mutable per-window state, owned by exactly one tracker."""

    top_detector: RingTopDetector
    last_top_ms: Optional[int] = None
    prev_timestamp_ms: Optional[int] = None
    prev_wrist_offset_px: float = float("nan")
    prev_wrist_y_px: float = float("nan")
    prev_wrist_y: float = float("nan")
    cooldown_until_ms: int = 0
    impacts: List[SwingImpact] = field(default_factory=list)

    def has_previous(self) -> bool:
        return (
            self.prev_timestamp_ms is not None
            and math.isfinite(self.prev_wrist_offset_px)
            and math.isfinite(self.prev_wrist_y_px)
            and math.isfinite(self.prev_wrist_y)
        )


class SwingStateTracker:
    """Top -> impact state machine for one motion window.

    Call ``step`` with samples in strictly increasing time order. Samples that
    go back in time, arrive closer than one inference step to the last
    accepted sample, or lack a required landmark are ignored.
    """

    def __init__(
        self,
        window: TimeWindow,
        frame_size: Tuple[int, int],
        config: Optional[SwingTrackerConfig] = None,
    ):
        self.window = window
        self.config = config or SwingTrackerConfig()

        width, height = int(frame_size[0]), int(frame_size[1])
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid frame size: {frame_size}")
        self.frame_width = width
        self.frame_height = height
        self.long_edge = max(width, height)
        self.down_speed_threshold_px_s = max(
            self.config.min_down_speed_px_s,
            self.config.down_speed_long_edge_ratio * self.long_edge,
        )

        self.wrist_idx = KEYPOINT_NAMES[wrist_name(self.config.right_handed)]
        self.l_shoulder_idx = KEYPOINT_NAMES["left_shoulder"]
        self.r_shoulder_idx = KEYPOINT_NAMES["right_shoulder"]
        self.l_hip_idx = KEYPOINT_NAMES["left_hip"]
        self.r_hip_idx = KEYPOINT_NAMES["right_hip"]
        # Rows that must be finite (x and y) for a sample to count.
        self.required_idx = [KEYPOINT_NAMES[name] for name in SWING_LANDMARKS] + [self.wrist_idx]

        self.state = TrackerState(top_detector=RingTopDetector(self.config.top_window_size))

    @property
    def impacts(self) -> List[SwingImpact]:
        return list(self.state.impacts)

    def phase_at(self, timestamp_ms: int) -> TrackerPhase:
        st = self.state
        if timestamp_ms < st.cooldown_until_ms:
            return TrackerPhase.COOLDOWN
        if st.last_top_ms is not None and self._top_is_recent(timestamp_ms):
            return TrackerPhase.TOP_SEEN
        return TrackerPhase.AWAITING_TOP

    def should_process(self, timestamp_ms: int) -> bool:
        """Whether a sample at ``timestamp_ms`` would be accepted (pacing only)."""
        prev = self.state.prev_timestamp_ms
        if prev is None:
            return True
        if timestamp_ms <= prev:
            return False
        return timestamp_ms - prev >= self.config.min_step_ms

    def _top_is_recent(self, timestamp_ms: int) -> bool:
        delta = timestamp_ms - self.state.last_top_ms
        return self.config.recent_top_min_ms <= delta <= self.config.recent_top_max_ms

    def _observe(self, sample: PoseSample) -> Optional[_Observation]:
        kps = np.asarray(sample.keypoints, dtype=np.float64)
        if kps.ndim != 2 or kps.shape[0] < NUM_KEYPOINTS or kps.shape[1] < 2:
            return None

        if not np.all(np.isfinite(kps[self.required_idx, :2])):
            return None

        ls_x = float(kps[self.l_shoulder_idx, 0])
        rs_x = float(kps[self.r_shoulder_idx, 0])
        wrist_x = float(kps[self.wrist_idx, 0])
        wrist_y = float(kps[self.wrist_idx, 1])
        lh_y = float(kps[self.l_hip_idx, 1])
        rh_y = float(kps[self.r_hip_idx, 1])

        mirrored = sample.mirrored if sample.mirrored is not None else rs_x < ls_x
        if mirrored:
            ls_x, rs_x, wrist_x = 1.0 - ls_x, 1.0 - rs_x, 1.0 - wrist_x

        mid_shoulder_x = 0.5 * (ls_x + rs_x)
        return _Observation(
            wrist_y=wrist_y,
            wrist_y_px=wrist_y * self.frame_height,
            wrist_offset_px=(wrist_x - mid_shoulder_x) * self.frame_width,
            mid_hip_y=0.5 * (lh_y + rh_y),
            mirrored=bool(mirrored),
        )

    def step(self, sample: PoseSample) -> Optional[Segment]:
        """Consume one sample; return a segment if it completes an impact."""
        ts = int(sample.timestamp_ms)
        if not self.should_process(ts):
            return None

        obs = self._observe(sample)
        if obs is None:
            logger.debug("t=%dms: missing or non-finite landmarks, sample dropped", ts)
            return None

        st = self.state

        # Velocity first: a non-finite result must drop the sample before
        # anything (including the top ring) is mutated.
        velocity: Optional[Tuple[float, float]] = None
        if st.has_previous():
            dt_s = (ts - st.prev_timestamp_ms) / 1000.0
            if dt_s > 0:
                vx = (obs.wrist_offset_px - st.prev_wrist_offset_px) / dt_s
                vy = (obs.wrist_y_px - st.prev_wrist_y_px) / dt_s
                if not (math.isfinite(vx) and math.isfinite(vy)):
                    return None
                velocity = (vx, vy)

        top_ms = st.top_detector.add_sample(ts, obs.wrist_y)
        if top_ms is not None:
            st.last_top_ms = top_ms

        segment: Optional[Segment] = None
        if velocity is not None:
            segment = self._maybe_trigger(ts, obs, velocity)

        st.prev_timestamp_ms = ts
        st.prev_wrist_offset_px = obs.wrist_offset_px
        st.prev_wrist_y_px = obs.wrist_y_px
        st.prev_wrist_y = obs.wrist_y
        return segment

    def _maybe_trigger(
        self, ts: int, obs: _Observation, velocity: Tuple[float, float]
    ) -> Optional[Segment]:
        st = self.state
        cfg = self.config
        vx, vy = velocity

        if ts < st.cooldown_until_ms:
            return None
        if st.last_top_ms is None or not self._top_is_recent(ts):
            return None

        band_min = obs.mid_hip_y - cfg.hip_band_tol
        band_max = obs.mid_hip_y + cfg.hip_band_tol
        was_above_hip = st.prev_wrist_y < band_min
        now_inside_hip = band_min <= obs.wrist_y <= band_max
        if not (was_above_hip and now_inside_hip):
            return None

        if vy <= self.down_speed_threshold_px_s:
            return None

        seg_start = max(self.window.start_ms, ts - cfg.pre_impact_ms)
        seg_end = min(self.window.end_ms, ts + cfg.post_impact_ms)
        if seg_end <= seg_start:
            return None

        # Fire!
        st.cooldown_until_ms = ts + cfg.cooldown_ms
        segment = Segment(seg_start, seg_end)
        st.impacts.append(
            SwingImpact(
                impact_ms=ts,
                top_ms=int(st.last_top_ms),
                down_speed_px_s=float(vy),
                lateral_speed_px_s=float(vx),
                mirrored=obs.mirrored,
                segment=segment,
            )
        )
        logger.debug(
            "Impact at %dms (top %dms, vy=%.0f px/s) -> [%d, %d]",
            ts, st.last_top_ms, vy, seg_start, seg_end,
        )
        return segment
