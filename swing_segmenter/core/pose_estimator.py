"""Pose estimator adapters producing canonical COCO-17 keypoints."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from ..analysis.types import Keypoints
from ..config.keypoints import MEDIAPIPE_NUM_LANDMARKS, MEDIAPIPE_TO_COCO, NUM_KEYPOINTS
from ..config.models import BACKENDS, default_model
from ..errors import ConfigurationError
from .base import PoseEstimator

logger = logging.getLogger(__name__)


def _resolve_model_path(model_name: str) -> str:
    p = Path(str(model_name))
    if p.exists():
        return str(p)

    # Repo layout: <root>/swing_segmenter/core/pose_estimator.py
    # -> <root>/models/<weights>
    root = Path(__file__).resolve().parents[2]
    candidates = [
        root / p.name,
        root / "models" / p.name,
    ]
    for cand in candidates:
        if cand.exists():
            return str(cand)

    # Fall back to whatever the backend understands (may download if online).
    return str(model_name)


class YoloPoseEstimator(PoseEstimator):
    """Wrapper for the YOLO pose model (ultralytics)."""

    def __init__(
        self,
        model_name: str = "yolo11s-pose.pt",
        device: str = "auto",
        conf: float = 0.4,
        min_keypoint_conf: float = 0.3,
    ):
        """
        Initialize pose estimator.

        Args:
            model_name: YOLO pose model name (yolo11n-pose, yolo11s-pose, yolo11m-pose, etc.)
            device: Device to run on ('auto', 'cpu', 'cuda', 'mps')
            conf: Person detection confidence threshold
            min_keypoint_conf: Keypoints below this confidence are reported as NaN
        """
        try:
            from ultralytics import YOLO
        except ImportError as e:
            raise ConfigurationError("ultralytics is not installed: pip install ultralytics") from e

        self.model_name = model_name
        self.conf = float(conf)
        self.min_keypoint_conf = float(min_keypoint_conf)
        self.device = self._resolve_device(device)
        try:
            self.model = YOLO(_resolve_model_path(model_name))
        except Exception as e:
            raise ConfigurationError(f"Cannot load YOLO model {model_name!r}: {e}") from e
        logger.info("Loaded pose model %s on %s", model_name, self.device)

    @property
    def name(self) -> str:
        return f"yolo:{Path(self.model_name).stem}"

    def _resolve_device(self, device: str) -> str:
        """Resolve device string to actual device."""
        if device == "auto":
            import torch
            if torch.cuda.is_available():
                return "cuda"
            elif torch.backends.mps.is_available():
                return "mps"
            return "cpu"
        return device

    def detect(self, image: np.ndarray, timestamp_ms: int) -> Optional[Keypoints]:
        results = self.model.predict(
            image,
            conf=self.conf,
            device=self.device,
            verbose=False
        )
        return self._parse_result(results[0], image.shape[1], image.shape[0])

    def _parse_result(self, result, width: int, height: int) -> Optional[Keypoints]:
        """Take the most confident person and normalize to [0, 1]."""
        if result.keypoints is None or len(result.keypoints) == 0:
            return None

        data = result.keypoints.data.cpu().numpy()  # (N, 17, 3)
        kpts = np.asarray(data[0], dtype=np.float32)
        out = np.full((NUM_KEYPOINTS, 2), np.nan, dtype=np.float32)
        out[:, 0] = kpts[:NUM_KEYPOINTS, 0] / float(width)
        out[:, 1] = kpts[:NUM_KEYPOINTS, 1] / float(height)
        if kpts.shape[1] > 2:
            out[kpts[:NUM_KEYPOINTS, 2] < self.min_keypoint_conf] = np.nan
        return out


class MediaPipePoseEstimator(PoseEstimator):
    """
    MediaPipe PoseLandmarker (Tasks API, VIDEO mode) mapped to COCO-17.

    Notes:
    - MediaPipe already outputs normalized coordinates.
    - `visibility` is used as keypoint confidence (best-effort).
    - VIDEO mode requires strictly increasing timestamps across calls.
    """

    def __init__(
        self,
        model_path: str = "pose_landmarker_full.task",
        min_confidence: float = 0.4,
        min_visibility: float = 0.3,
    ):
        try:
            import mediapipe as mp
            from mediapipe.tasks import python as mp_python
            from mediapipe.tasks.python import vision
        except ImportError as e:
            raise ConfigurationError(
                "MediaPipe is not installed. Install pose deps with: pip install mediapipe"
            ) from e

        self.model_path = model_path
        self.min_visibility = float(min_visibility)
        self._mp = mp
        self._last_ts: Optional[int] = None

        options = vision.PoseLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=_resolve_model_path(model_path)),
            running_mode=vision.RunningMode.VIDEO,
            num_poses=1,
            min_pose_detection_confidence=float(min_confidence),
            min_pose_presence_confidence=float(min_confidence),
            min_tracking_confidence=float(min_confidence),
        )
        try:
            self._landmarker = vision.PoseLandmarker.create_from_options(options)
        except Exception as e:
            raise ConfigurationError(f"Cannot create PoseLandmarker from {model_path!r}: {e}") from e

    @property
    def name(self) -> str:
        return f"mediapipe:{Path(self.model_path).stem}"

    def detect(self, image: np.ndarray, timestamp_ms: int) -> Optional[Keypoints]:
        ts = int(timestamp_ms)
        if self._last_ts is not None and ts <= self._last_ts:
            ts = self._last_ts + 1
        self._last_ts = ts

        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)
        result = self._landmarker.detect_for_video(mp_image, ts)

        if not result.pose_landmarks:
            return None
        landmarks = result.pose_landmarks[0]
        if len(landmarks) < MEDIAPIPE_NUM_LANDMARKS:
            return None

        out = np.full((NUM_KEYPOINTS, 2), np.nan, dtype=np.float32)
        for coco_idx, mp_idx in MEDIAPIPE_TO_COCO.items():
            lm = landmarks[mp_idx]
            visibility = getattr(lm, "visibility", None)
            if visibility is not None and visibility < self.min_visibility:
                continue
            out[coco_idx] = (lm.x, lm.y)
        return out

    def close(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None


def create_estimator(
    backend: str = "yolo",
    model: Optional[str] = None,
    tier: str = "mid",
    device: str = "auto",
    confidence: float = 0.4,
) -> PoseEstimator:
    """Build the pose estimator for ``backend``; raise ConfigurationError on failure."""
    if backend not in BACKENDS:
        raise ConfigurationError(f"Unknown pose backend: {backend!r}")
    if model is None:
        try:
            model = default_model(backend, tier)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
    if backend == "yolo":
        return YoloPoseEstimator(model_name=model, device=device, conf=confidence)
    return MediaPipePoseEstimator(model_path=model, min_confidence=confidence)
