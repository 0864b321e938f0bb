"""Collaborator interfaces consumed by the analysis pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator, Optional, Tuple

import numpy as np

from ..analysis.types import Keypoints, MotionGrid, TimeWindow


class FrameSource(ABC):
    """Timestamped frames of one video.

    ``decode`` yields ``(timestamp_ms, image)`` pairs in non-decreasing time
    order, at least ``step_ms`` apart, restricted to the window. The sequence
    is finite and not restartable mid-stream.
    """

    @property
    @abstractmethod
    def duration_ms(self) -> int: ...

    @property
    @abstractmethod
    def frame_size(self) -> Tuple[int, int]:
        """(width, height) of the images yielded by ``decode``."""

    @abstractmethod
    def motion_grid(self, timestamp_ms: int) -> Optional[MotionGrid]: ...

    @abstractmethod
    def decode(self, window: TimeWindow, step_ms: int) -> Iterator[Tuple[int, np.ndarray]]: ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class PoseEstimator(ABC):
    """Model adapter interface.

    Implementations take a BGR image (H, W, 3 uint8) and return canonical
    COCO-17 keypoints normalized to [0, 1], or None when no person is found.
    Landmarks the model is not confident about are NaN.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def detect(self, image: np.ndarray, timestamp_ms: int) -> Optional[Keypoints]: ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
