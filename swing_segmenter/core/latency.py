"""Rolling inference latency statistics."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque

import numpy as np


@dataclass(frozen=True)
class LatencyStats:
    avg_ms: float = float("nan")
    p95_ms: float = float("nan")
    count: int = 0


class LatencyMeter:
    """Keep the last ``capacity`` latency samples (ms) and summarize them."""

    def __init__(self, capacity: int = 240):
        self._buf: Deque[float] = deque(maxlen=int(capacity))
        self._lock = threading.Lock()

    def push(self, latency_ms: float) -> None:
        if latency_ms < 0:
            return
        with self._lock:
            self._buf.append(float(latency_ms))

    def reset(self) -> None:
        with self._lock:
            self._buf.clear()

    def snapshot(self) -> LatencyStats:
        with self._lock:
            values = np.asarray(self._buf, dtype=np.float64)
        if values.size == 0:
            return LatencyStats()
        # Linear interpolation between closest ranks.
        return LatencyStats(
            avg_ms=float(values.mean()),
            p95_ms=float(np.percentile(values, 95)),
            count=int(values.size),
        )
