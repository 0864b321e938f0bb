"""Core module: frame sources and pose estimators."""

from .base import FrameSource, PoseEstimator
from .video_processor import FpsGovernor, VideoFrameSource, choose_target_size, rotate_frame
from .latency import LatencyMeter, LatencyStats
from .pose_estimator import MediaPipePoseEstimator, YoloPoseEstimator, create_estimator
