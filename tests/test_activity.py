from __future__ import annotations

import threading

import numpy as np
import pytest

from fakes import FakeEstimator, FakeSource
from swing_segmenter.analysis.activity import ActivityAnalyzer, keypoint_activity, segment_by_activity
from swing_segmenter.analysis.types import FrameSample, Segment
from swing_segmenter.config.detector_config import ActivityConfig
from swing_segmenter.errors import AnalysisCancelled


def _body(shift: float = 0.0) -> np.ndarray:
    kps = np.full((17, 2), 0.5, dtype=np.float32)
    kps[10, 0] += shift  # right wrist
    return kps


def _samples(shifts, step_ms: int = 33):
    return [FrameSample(i, i * step_ms, None if s is None else _body(s)) for i, s in enumerate(shifts)]


def test_keypoint_activity_ignores_missing_points():
    a = _body()
    b = _body(0.1)
    b[0] = np.nan
    assert keypoint_activity(a, b) == pytest.approx(0.1)


def test_active_span_becomes_one_segment():
    # Static, then the wrist moves for five frames, then static again.
    shifts = [0.0] * 5 + [0.05, 0.10, 0.15, 0.20, 0.25] + [0.25] * 5
    assert segment_by_activity(_samples(shifts)) == [Segment(5 * 33, 9 * 33)]


def test_frames_without_pose_are_skipped():
    shifts = [0.0, None, 0.0, 0.05, None, 0.10, 0.10, None]
    # Valid samples: idx 0, 2, 3, 5, 6; active at idx 3 and 5.
    assert segment_by_activity(_samples(shifts)) == [Segment(3 * 33, 5 * 33)]


def test_small_jitter_is_not_a_swing():
    shifts = [0.0, 0.001, 0.0, 0.002, 0.0]
    assert segment_by_activity(_samples(shifts)) == []


def test_single_active_frame_gives_no_segment():
    shifts = [0.0, 0.0, 0.3, 0.3, 0.3]
    assert segment_by_activity(_samples(shifts)) == []


def test_too_few_samples():
    assert segment_by_activity([]) == []
    assert segment_by_activity(_samples([0.0])) == []


def test_peak_ratio_controls_threshold():
    shifts = [0.0, 0.02, 0.04, 0.24, 0.44, 0.46, 0.48]
    # Activities: 0.02, 0.02, 0.20, 0.20, 0.02, 0.02 (peak 0.20).
    assert segment_by_activity(_samples(shifts)) == [Segment(3 * 33, 4 * 33)]
    loose = ActivityConfig(peak_ratio=0.05)
    assert segment_by_activity(_samples(shifts), loose) == [Segment(33, 6 * 33)]


def _wave(t: int):
    # Wrist sweeps between 1000 and 2000ms.
    if 1000 <= t <= 2000:
        return _body(0.6 * (t - 1000) / 1000.0)
    return _body(0.6 if t > 2000 else 0.0)


def test_analyzer_runs_every_frame_and_reports_result():
    source = FakeSource(3000)
    estimator = FakeEstimator(_wave, fail_at={33 * 10})
    seen = []

    result = ActivityAnalyzer(estimator).analyze(source, progress=lambda d, t: seen.append((d, t)))

    assert result.duration_ms == 3000
    assert result.frame_count == len(estimator.calls) == 3000 // 33 + 1
    assert len(result.segments) == 1
    seg = result.segments[0]
    assert 990 <= seg.start_ms <= 1056
    assert 1980 <= seg.end_ms <= 2013
    assert seen[-1] == (3000, 3000)
    assert source.open_decoders == 0


def test_analyzer_empty_video():
    result = ActivityAnalyzer(FakeEstimator(_wave)).analyze(FakeSource(0))
    assert result.segments == [] and result.frame_count == 0


def test_analyzer_cancel():
    event = threading.Event()
    event.set()
    source = FakeSource(3000)
    with pytest.raises(AnalysisCancelled):
        ActivityAnalyzer(FakeEstimator(_wave)).analyze(source, cancel_event=event)
    assert source.open_decoders == 0
