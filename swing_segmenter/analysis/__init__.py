"""Swing segmentation: motion scan, impact tracking and segment merging."""

from .types import FrameSample, PoseSample, Segment, TimeWindow, VideoAnalysisResult
from .top_detector import RingTopDetector
from .motion import MotionWindowScanner, merge_windows, motion_ratio
from .swing_tracker import SwingImpact, SwingStateTracker, TrackerPhase
from .segments import SegmentMerger
from .pipeline import ProgressReporter, SwingAnalyzer, prefetch
from .activity import ActivityAnalyzer, segment_by_activity
