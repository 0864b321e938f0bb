"""Swing segmentation configuration.

All thresholds, paddings and timing windows live here so that tuning the
detector never requires touching analysis code. Components receive the
sub-config they need at construction; nothing reads module globals.

Units: times are integer milliseconds, keypoint coordinates are normalized to
[0, 1], speeds are pixels per second in the analysed frame.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Union

from ..errors import ConfigurationError


# =====================================================================
# Stage 1: Coarse motion scan
# =====================================================================

@dataclass(frozen=True)
class MotionScanConfig:
    """Parameters for the low-rate frame-difference scan."""

    # 5 Hz sampling
    sampling_interval_ms: int = 200
    # Downsampled grid size used for diffing
    grid_width: int = 160
    grid_height: int = 90
    # Per-channel intensity delta (0-255) for a cell to count as changed
    pixel_diff_threshold: int = 15
    # Fraction of changed cells that counts as motion
    diff_threshold: float = 0.08
    # Raw windows shorter than this are dropped
    min_window_ms: int = 500
    # Padding added to both ends of a kept window
    pad_window_ms: int = 400
    # Windows closer than this are merged
    merge_gap_ms: int = 600


# =====================================================================
# Stage 2: Swing state machine
# =====================================================================

@dataclass(frozen=True)
class SwingTrackerConfig:
    """Parameters for top -> impact recognition inside one window."""

    # Pose inference rate; samples closer than one step are ignored
    target_infer_fps: int = 15
    # Size of the wrist-height ring used to find the backswing top
    top_window_size: int = 5
    # Half-height of the hip band (normalized y)
    hip_band_tol: float = 0.10
    # Accepted delay between a recognized top and the impact crossing
    recent_top_min_ms: int = 120
    recent_top_max_ms: int = 1400
    # Downward wrist speed: max(floor, ratio * long edge) px/s
    min_down_speed_px_s: float = 220.0
    down_speed_long_edge_ratio: float = 0.22
    # Emitted segment extent around the impact
    pre_impact_ms: int = 1000
    post_impact_ms: int = 2200
    cooldown_ms: int = 900
    # Track the right wrist (right-handed golfer) or the left one
    right_handed: bool = True

    @property
    def min_step_ms(self) -> int:
        return max(1, int(round(1000.0 / self.target_infer_fps)))


# =====================================================================
# Segment merging
# =====================================================================

@dataclass(frozen=True)
class SegmentMergeConfig:
    """Merge rule for raw impact segments."""

    merge_gap_ms: int = 150


# =====================================================================
# Frame source
# =====================================================================

@dataclass(frozen=True)
class FrameSourceConfig:
    """Decoding parameters for the video frame source."""

    # Frames handed to the pose estimator are downscaled to this long edge
    max_long_edge: int = 960
    # Manual rotation (0, 90, -90, 180)
    rotation: int = 0


# =====================================================================
# Full-pass activity segmentation
# =====================================================================

@dataclass(frozen=True)
class ActivityConfig:
    """Parameters for the single-segment keypoint-activity analyzer."""

    # Minimum decode step (~30 fps)
    min_step_ms: int = 33
    # Absolute floor for summed keypoint displacement between samples
    min_activity: float = 0.015
    # Active samples are those above this fraction of the peak activity
    peak_ratio: float = 0.35


# =====================================================================
# Master Configuration
# =====================================================================

@dataclass(frozen=True)
class DetectorConfig:
    """Top-level configuration aggregating all sub-configs."""

    motion: MotionScanConfig = field(default_factory=MotionScanConfig)
    tracker: SwingTrackerConfig = field(default_factory=SwingTrackerConfig)
    merge: SegmentMergeConfig = field(default_factory=SegmentMergeConfig)
    source: FrameSourceConfig = field(default_factory=FrameSourceConfig)
    activity: ActivityConfig = field(default_factory=ActivityConfig)

    def validate(self) -> "DetectorConfig":
        """Raise ConfigurationError on values the pipeline cannot run with."""
        m, t = self.motion, self.tracker
        if m.sampling_interval_ms <= 0:
            raise ConfigurationError("motion.sampling_interval_ms must be > 0")
        if m.grid_width <= 0 or m.grid_height <= 0:
            raise ConfigurationError("motion grid size must be positive")
        if not 0.0 <= m.diff_threshold < 1.0:
            raise ConfigurationError("motion.diff_threshold must be in [0, 1)")
        if min(m.min_window_ms, m.pad_window_ms, m.merge_gap_ms) < 0:
            raise ConfigurationError("motion window timings must be >= 0")
        if t.target_infer_fps <= 0:
            raise ConfigurationError("tracker.target_infer_fps must be > 0")
        if t.top_window_size < 3 or t.top_window_size % 2 == 0:
            raise ConfigurationError("tracker.top_window_size must be odd and >= 3")
        if t.recent_top_min_ms > t.recent_top_max_ms:
            raise ConfigurationError("tracker.recent_top_min_ms exceeds recent_top_max_ms")
        if t.hip_band_tol <= 0:
            raise ConfigurationError("tracker.hip_band_tol must be > 0")
        if min(t.pre_impact_ms, t.post_impact_ms, t.cooldown_ms) < 0:
            raise ConfigurationError("tracker timings must be >= 0")
        if self.merge.merge_gap_ms < 0:
            raise ConfigurationError("merge.merge_gap_ms must be >= 0")
        if self.source.max_long_edge <= 0:
            raise ConfigurationError("source.max_long_edge must be > 0")
        if self.source.rotation not in (0, 90, -90, 180, 270, -180, -270):
            raise ConfigurationError(f"Unsupported rotation: {self.source.rotation}")
        if self.activity.min_step_ms <= 0:
            raise ConfigurationError("activity.min_step_ms must be > 0")
        return self


# Default configuration instance
DEFAULT_CONFIG = DetectorConfig()


def config_from_dict(data: Dict[str, Any], base: DetectorConfig = DEFAULT_CONFIG) -> DetectorConfig:
    """Apply ``{"section": {"key": value}}`` overrides on top of ``base``."""
    if not isinstance(data, dict):
        raise ConfigurationError("Config root must be a JSON object")

    sections = {f.name for f in fields(DetectorConfig)}
    updates = {}
    for section, values in data.items():
        if section not in sections:
            raise ConfigurationError(f"Unknown config section: {section!r}")
        if not isinstance(values, dict):
            raise ConfigurationError(f"Config section {section!r} must be an object")
        current = getattr(base, section)
        known = {f.name for f in fields(current)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown keys in {section!r}: {', '.join(unknown)}")
        updates[section] = replace(current, **values)

    try:
        return replace(base, **updates).validate()
    except TypeError as e:
        # e.g. a string where a number is expected
        raise ConfigurationError(f"Invalid config value type: {e}") from e


def load_config(path: Union[str, Path]) -> DetectorConfig:
    """Load JSON overrides from ``path`` on top of the defaults."""
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {p}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {p}: {e}") from e
    return config_from_dict(data)
