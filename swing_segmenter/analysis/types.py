"""Data types shared by the swing segmentation stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

# (h, w, 3) uint8 low-resolution frame used only for diffing.
MotionGrid = np.ndarray

# (17, 2) float32 normalized (x, y) in COCO order; NaN marks a missing landmark.
Keypoints = np.ndarray


@dataclass(frozen=True, order=True)
class TimeWindow:
    """A candidate interval flagged by the coarse motion scan."""

    start_ms: int
    end_ms: int

    def __post_init__(self):
        if self.end_ms <= self.start_ms:
            raise ValueError(f"Empty window: [{self.start_ms}, {self.end_ms}]")

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


@dataclass(frozen=True, order=True)
class Segment:
    """A detected swing clip, in milliseconds from the start of the video."""

    start_ms: int
    end_ms: int

    def __post_init__(self):
        if self.end_ms <= self.start_ms:
            raise ValueError(f"Empty segment: [{self.start_ms}, {self.end_ms}]")

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    def to_dict(self) -> dict:
        return {"start_ms": int(self.start_ms), "end_ms": int(self.end_ms)}


@dataclass(frozen=True)
class PoseSample:
    """One pose estimate fed to the swing tracker.

    ``mirrored`` is None when the orientation should be inferred from the
    shoulder order; producers that already know the frame is mirrored (e.g. a
    selfie camera) can set it explicitly.
    """

    timestamp_ms: int
    keypoints: Keypoints
    mirrored: Optional[bool] = None


@dataclass(frozen=True)
class FrameSample:
    """A decoded frame's pose in the full-pass activity analyzer."""

    frame_index: int
    timestamp_ms: int
    keypoints: Optional[Keypoints]


@dataclass
class VideoAnalysisResult:
    """Summary of one analysis run."""

    duration_ms: int
    frame_count: int
    segments: List[Segment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "duration_ms": int(self.duration_ms),
            "frame_count": int(self.frame_count),
            "segments": [s.to_dict() for s in self.segments],
        }
