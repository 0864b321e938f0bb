"""Keypoint layouts for pose estimation.

The pipeline works on a canonical COCO-17 layout. Backends with a different
native order (MediaPipe BlazePose, 33 landmarks) are mapped onto it by the
estimator adapter, so downstream code only ever indexes by COCO name.
"""

# COCO 17 keypoints (YOLO pose, MoveNet)
COCO_KEYPOINTS = {
    0: "nose",
    1: "left_eye",
    2: "right_eye",
    3: "left_ear",
    4: "right_ear",
    5: "left_shoulder",
    6: "right_shoulder",
    7: "left_elbow",
    8: "right_elbow",
    9: "left_wrist",
    10: "right_wrist",
    11: "left_hip",
    12: "right_hip",
    13: "left_knee",
    14: "right_knee",
    15: "left_ankle",
    16: "right_ankle",
}

# Reverse mapping
KEYPOINT_NAMES = {v: k for k, v in COCO_KEYPOINTS.items()}

NUM_KEYPOINTS = len(COCO_KEYPOINTS)

# MediaPipe BlazePose landmark indices for the body points we keep.
MEDIAPIPE_LANDMARKS = {
    "nose": 0,
    "left_eye": 2,
    "right_eye": 5,
    "left_ear": 7,
    "right_ear": 8,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
}

MEDIAPIPE_NUM_LANDMARKS = 33

# COCO index -> MediaPipe index
MEDIAPIPE_TO_COCO = {
    KEYPOINT_NAMES[name]: mp_idx for name, mp_idx in MEDIAPIPE_LANDMARKS.items()
}

# Landmarks the swing tracker needs on every sample.
SWING_LANDMARKS = ("left_shoulder", "right_shoulder", "left_hip", "right_hip")


def wrist_name(right_handed: bool = True) -> str:
    """Name of the tracked (lead-hand-side) wrist keypoint."""
    return "right_wrist" if right_handed else "left_wrist"
