"""Backswing-top detection over a short sliding window of wrist heights."""

from __future__ import annotations

import math
from collections import deque
from typing import Deque, Optional, Tuple


class RingTopDetector:
    """Recognize a strict local minimum of a 1-D signal.

    The signal is the normalized wrist y coordinate (smaller = higher on
    screen), so a local minimum marks the top of the backswing. With the
    default size of 5 the detection lags the top by two samples but ignores
    single-frame jitter.

    Tie policy: the middle value must be strictly below every other value in
    the window. Any tie with another sample suppresses the detection.
    """

    def __init__(self, size: int = 5):
        if size < 3 or size % 2 == 0:
            raise ValueError("size must be odd and >= 3")
        self.size = int(size)
        self._samples: Deque[Tuple[int, float]] = deque(maxlen=self.size)

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def is_full(self) -> bool:
        return len(self._samples) == self.size

    def reset(self) -> None:
        self._samples.clear()

    def add_sample(self, timestamp_ms: int, value: float) -> Optional[int]:
        """Push a sample; return the middle timestamp if it is a strict minimum.

        Non-finite values are ignored (not stored) and return None.
        """
        if not math.isfinite(value):
            return None

        self._samples.append((int(timestamp_ms), float(value)))
        if len(self._samples) < self.size:
            return None

        mid = self.size // 2
        mid_t, mid_v = self._samples[mid]
        for i, (_, v) in enumerate(self._samples):
            if i == mid:
                continue
            if mid_v >= v:
                return None
        return mid_t
