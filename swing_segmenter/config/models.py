"""Default model weights per pose backend and size tier."""

BACKENDS = ("yolo", "mediapipe")
TIERS = ("light", "mid", "heavy")

MODEL_WEIGHTS = {
    "yolo": {
        "light": "yolo11n-pose.pt",
        "mid": "yolo11s-pose.pt",
        "heavy": "yolo11m-pose.pt",
    },
    "mediapipe": {
        "light": "pose_landmarker_lite.task",
        "mid": "pose_landmarker_full.task",
        "heavy": "pose_landmarker_heavy.task",
    },
}


def default_model(backend: str, tier: str = "mid") -> str:
    """Return the weight file name for ``backend`` at ``tier``."""
    try:
        return MODEL_WEIGHTS[backend][tier]
    except KeyError:
        raise ValueError(f"Unknown backend/tier: {backend}/{tier}") from None
