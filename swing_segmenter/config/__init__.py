"""Configuration module for swing_segmenter."""

from .detector_config import (
    ActivityConfig,
    DetectorConfig,
    DEFAULT_CONFIG,
    FrameSourceConfig,
    MotionScanConfig,
    SegmentMergeConfig,
    SwingTrackerConfig,
    config_from_dict,
    load_config,
)
from .keypoints import (
    COCO_KEYPOINTS,
    KEYPOINT_NAMES,
    NUM_KEYPOINTS,
    MEDIAPIPE_TO_COCO,
)
from .models import default_model
