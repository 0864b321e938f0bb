"""Merging of raw impact segments into the final clip list."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..config.detector_config import SegmentMergeConfig
from .types import Segment


class SegmentMerger:
    """Accumulate segments across windows and merge near-adjacent ones.

    ``append`` applies the merge rule against the last stored segment only,
    which is enough within one window; an out-of-order segment is stored as
    is. ``finalize`` sorts everything and runs
    the same rule once more to catch overlaps across window boundaries.
    """

    def __init__(self, config: Optional[SegmentMergeConfig] = None):
        self.config = config or SegmentMergeConfig()
        self._segments: List[Segment] = []

    def __len__(self) -> int:
        return len(self._segments)

    @property
    def segments(self) -> List[Segment]:
        return list(self._segments)

    def clear(self) -> None:
        self._segments.clear()

    def append(self, segment: Segment) -> None:
        if self._segments:
            last = self._segments[-1]
            if (
                segment.start_ms >= last.start_ms
                and segment.start_ms - last.end_ms <= self.config.merge_gap_ms
            ):
                self._segments[-1] = Segment(last.start_ms, max(last.end_ms, segment.end_ms))
                return
        self._segments.append(segment)

    def finalize(self) -> List[Segment]:
        """Return the sorted, merged list (gap between entries > merge_gap_ms)."""
        merged: List[Segment] = []
        for seg in sorted(self._segments, key=lambda s: s.start_ms):
            if merged and seg.start_ms - merged[-1].end_ms <= self.config.merge_gap_ms:
                last = merged[-1]
                merged[-1] = Segment(last.start_ms, max(last.end_ms, seg.end_ms))
            else:
                merged.append(seg)
        self._segments = merged
        return list(merged)

    def merge(self, raw_segments: Iterable[Segment]) -> List[Segment]:
        """Append every segment in order, then finalize."""
        for seg in raw_segments:
            self.append(seg)
        return self.finalize()
