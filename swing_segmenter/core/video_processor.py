"""Video decoding for the swing pipeline (OpenCV)."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Iterator, Optional, Tuple

import cv2
import numpy as np

from ..analysis.types import MotionGrid, TimeWindow
from ..config.detector_config import FrameSourceConfig
from ..errors import ConfigurationError
from .base import FrameSource

logger = logging.getLogger(__name__)


def rotate_frame(frame: np.ndarray, rotation: int) -> np.ndarray:
    """
    Rotate frame based on rotation angle.

    Args:
        frame: Input frame
        rotation: Rotation angle (0, 90, 180, 270, -90, -180, -270)

    Returns:
        Rotated frame
    """
    # Normalize rotation to positive
    rotation = rotation % 360

    if rotation == 0:
        return frame
    elif rotation == 90:
        return cv2.rotate(frame, cv2.ROTATE_90_COUNTERCLOCKWISE)
    elif rotation == 180:
        return cv2.rotate(frame, cv2.ROTATE_180)
    elif rotation == 270:
        return cv2.rotate(frame, cv2.ROTATE_90_CLOCKWISE)
    raise ValueError(f"Unsupported rotation: {rotation}")


def choose_target_size(width: int, height: int, max_long_edge: int = 960) -> Tuple[int, int]:
    """Downscale (never upscale) so the long edge fits; round up to even sizes."""
    width = max(1, int(width))
    height = max(1, int(height))
    scale = min(1.0, float(max_long_edge) / float(max(width, height)))
    target_w = max(1, int(round(width * scale)))
    target_h = max(1, int(round(height * scale)))
    if target_w % 2 != 0:
        target_w += 1
    if target_h % 2 != 0:
        target_h += 1
    return target_w, target_h


class FpsGovernor:
    """Accept at most one frame per ``interval_ms`` of media time."""

    def __init__(self, interval_ms: int):
        self.interval_ms = max(1, int(interval_ms))
        self._last_accepted_ms: Optional[int] = None

    def should_accept(self, timestamp_ms: int) -> bool:
        last = self._last_accepted_ms
        if last is not None:
            if timestamp_ms <= last or timestamp_ms - last < self.interval_ms:
                return False
        self._last_accepted_ms = int(timestamp_ms)
        return True

    def reset(self) -> None:
        self._last_accepted_ms = None


class VideoFrameSource(FrameSource):
    """Frame source backed by ``cv2.VideoCapture``.

    Timestamps are derived from frame indices and the container FPS, which is
    stable across seeks (unlike ``CAP_PROP_POS_MSEC`` on some backends).
    """

    def __init__(
        self,
        video_path: str,
        config: Optional[FrameSourceConfig] = None,
        grid_size: Tuple[int, int] = (160, 90),
    ):
        """
        Initialize frame source.

        Args:
            video_path: Path to input video file
            config: Target size and rotation settings
            grid_size: (width, height) of motion-scan grids
        """
        self.config = config or FrameSourceConfig()
        self.grid_size = (int(grid_size[0]), int(grid_size[1]))
        self.video_path = Path(video_path)
        if not self.video_path.exists():
            raise ConfigurationError(f"Video not found: {video_path}")

        self.cap = cv2.VideoCapture(str(self.video_path))
        if not self.cap.isOpened():
            raise ConfigurationError(f"Cannot open video: {video_path}")

        # Get raw video properties
        self._raw_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._raw_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self.fps = fps if math.isfinite(fps) and fps > 0 else 0.0
        self.total_frames = max(0, int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT)))

        self.rotation = int(self.config.rotation) % 360
        if self.rotation in (90, 270):
            self.width, self.height = self._raw_height, self._raw_width
        else:
            self.width, self.height = self._raw_width, self._raw_height

        self._target_size = choose_target_size(self.width, self.height, self.config.max_long_edge)

    def __del__(self):
        if getattr(self, "cap", None) is not None:
            self.cap.release()

    @property
    def duration_ms(self) -> int:
        if self.fps <= 0 or self.total_frames <= 0:
            return 0
        return int(round(self.total_frames * 1000.0 / self.fps))

    @property
    def frame_size(self) -> Tuple[int, int]:
        return self._target_size

    def _frame_index(self, timestamp_ms: int) -> int:
        return int(math.floor(timestamp_ms * self.fps / 1000.0 + 1e-6))

    def _timestamp_ms(self, frame_idx: int) -> int:
        return int(round(frame_idx * 1000.0 / self.fps))

    def _process_frame(self, frame: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
        """Apply rotation and resize."""
        if self.rotation != 0:
            frame = rotate_frame(frame, self.rotation)
        if (frame.shape[1], frame.shape[0]) != size:
            frame = cv2.resize(frame, size, interpolation=cv2.INTER_AREA)
        return frame

    def motion_grid(self, timestamp_ms: int) -> Optional[MotionGrid]:
        """Downsampled frame closest to ``timestamp_ms``, or None if undecodable."""
        if self.fps <= 0 or self.total_frames <= 0:
            return None
        idx = min(self._frame_index(timestamp_ms), self.total_frames - 1)
        self.cap.set(cv2.CAP_PROP_POS_FRAMES, idx)
        ret, frame = self.cap.read()
        if not ret or frame is None:
            logger.debug("No frame at %dms (index %d)", timestamp_ms, idx)
            return None
        return self._process_frame(frame, self.grid_size)

    def decode(self, window: TimeWindow, step_ms: int) -> Iterator[Tuple[int, np.ndarray]]:
        """
        Generator over frames inside ``window``.

        Yields:
            Tuple of (timestamp_ms, frame) - BGR, rotated and resized to ``frame_size``
        """
        if self.fps <= 0:
            return
        governor = FpsGovernor(step_ms)
        frame_idx = self._frame_index(window.start_ms)
        self.cap.set(cv2.CAP_PROP_POS_FRAMES, frame_idx)

        while True:
            if not self.cap.grab():
                break
            timestamp_ms = self._timestamp_ms(frame_idx)
            frame_idx += 1
            if timestamp_ms > window.end_ms:
                break
            if timestamp_ms < window.start_ms or not governor.should_accept(timestamp_ms):
                continue

            ret, frame = self.cap.retrieve()
            if not ret or frame is None:
                logger.debug("Undecodable frame at %dms", timestamp_ms)
                continue
            yield timestamp_ms, self._process_frame(frame, self._target_size)

    def close(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    @property
    def info(self) -> dict:
        """Get video information."""
        return {
            "path": str(self.video_path),
            "width": self.width,
            "height": self.height,
            "raw_width": self._raw_width,
            "raw_height": self._raw_height,
            "rotation": self.rotation,
            "fps": self.fps,
            "total_frames": self.total_frames,
            "duration_ms": self.duration_ms,
            "analysis_size": self._target_size,
        }
