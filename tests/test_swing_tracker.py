from __future__ import annotations

import math

import numpy as np
import pytest

from swing_segmenter.analysis.swing_tracker import SwingStateTracker, TrackerPhase
from swing_segmenter.analysis.types import PoseSample, Segment, TimeWindow
from swing_segmenter.config.detector_config import SwingTrackerConfig
from swing_segmenter.config.keypoints import KEYPOINT_NAMES

FRAME = (960, 540)
HIP_Y = 0.55

# Canonical downswing: top at t=1000 (wrist y 0.20), impact crossing at t=1300.
SWING = [
    (800, 0.40),
    (900, 0.35),
    (1000, 0.20),
    (1100, 0.25),
    (1200, 0.30),
    (1300, 0.55),
]


def _pose(wrist_y: float, *, wrist_x: float = 0.50, mirrored_layout: bool = False,
          right_wrist: bool = True, hip_y: float = HIP_Y) -> np.ndarray:
    kps = np.full((17, 2), np.nan, dtype=np.float32)
    ls_x, rs_x = (0.55, 0.45) if mirrored_layout else (0.45, 0.55)
    kps[KEYPOINT_NAMES["left_shoulder"]] = (ls_x, 0.25)
    kps[KEYPOINT_NAMES["right_shoulder"]] = (rs_x, 0.25)
    kps[KEYPOINT_NAMES["left_hip"]] = (0.47, hip_y)
    kps[KEYPOINT_NAMES["right_hip"]] = (0.53, hip_y)
    wrist = "right_wrist" if right_wrist else "left_wrist"
    kps[KEYPOINT_NAMES[wrist]] = (wrist_x, wrist_y)
    return kps


def _run(tracker: SwingStateTracker, track, **pose_kwargs):
    out = []
    for ts, y in track:
        seg = tracker.step(PoseSample(ts, _pose(y, **pose_kwargs)))
        if seg is not None:
            out.append(seg)
    return out


def test_canonical_swing_emits_clamped_segment():
    tracker = SwingStateTracker(TimeWindow(300, 3500), FRAME)
    segments = _run(tracker, SWING)

    # [1300 - 1000, 1300 + 2200] clamped to the window.
    assert segments == [Segment(300, 3500)]
    impact = tracker.impacts[0]
    assert impact.impact_ms == 1300
    assert impact.top_ms == 1000
    assert impact.down_speed_px_s == pytest.approx((0.55 - 0.30) * 540 / 0.1, rel=1e-4)
    assert impact.mirrored is False


def test_segment_not_clamped_inside_large_window():
    tracker = SwingStateTracker(TimeWindow(0, 5000), FRAME)
    assert _run(tracker, SWING) == [Segment(300, 3500)]

    tracker = SwingStateTracker(TimeWindow(600, 2000), FRAME)
    assert _run(tracker, SWING) == [Segment(600, 2000)]


def test_speed_threshold_scales_with_long_edge():
    assert SwingStateTracker(TimeWindow(0, 1000), (640, 360)).down_speed_threshold_px_s == 220.0
    big = SwingStateTracker(TimeWindow(0, 1000), (1920, 1080))
    assert big.down_speed_threshold_px_s == pytest.approx(0.22 * 1920)


def test_no_trigger_without_recent_top():
    # Monotonic rise then drop: no strict local minimum is ever found.
    track = [(800, 0.40), (900, 0.38), (1000, 0.36), (1100, 0.34), (1200, 0.32), (1300, 0.55)]
    tracker = SwingStateTracker(TimeWindow(0, 5000), FRAME)
    assert _run(tracker, track) == []
    assert tracker.state.last_top_ms is None


def test_no_trigger_when_top_is_too_old():
    # Same top at 1000, but the crossing comes 1500ms later.
    track = SWING[:5] + [(t, 0.30) for t in range(1300, 2500, 100)] + [(2500, 0.55)]
    tracker = SwingStateTracker(TimeWindow(0, 6000), FRAME)
    assert _run(tracker, track) == []


def test_no_trigger_when_wrist_was_not_above_hip_band():
    # Slow entry into the band at 1700 (below the speed threshold), then a
    # fast move that starts inside the band.
    track = SWING[:5] + [(1700, 0.47), (1800, 0.62)]
    tracker = SwingStateTracker(TimeWindow(0, 5000), FRAME)
    assert _run(tracker, track) == []


def test_no_trigger_when_wrist_overshoots_band():
    track = SWING[:5] + [(1300, 0.70)]
    tracker = SwingStateTracker(TimeWindow(0, 5000), FRAME)
    assert _run(tracker, track) == []


def test_no_trigger_when_descent_is_too_slow():
    # Band entry at the same y change but spread over a long step on a tiny frame.
    tracker = SwingStateTracker(TimeWindow(0, 5000), (200, 100))
    # vy = 0.25 * 100 / 0.1 = 250 px/s would pass; over 0.2 s it is 125 px/s.
    track = [(800, 0.40), (900, 0.35), (1000, 0.20), (1100, 0.25), (1200, 0.30), (1400, 0.55)]
    assert _run(tracker, track) == []


def test_cooldown_blocks_second_trigger():
    tracker = SwingStateTracker(TimeWindow(0, 10_000), FRAME)
    first = _run(tracker, SWING)
    assert len(first) == 1
    assert tracker.state.cooldown_until_ms == 1300 + 900
    assert tracker.phase_at(1500) is TrackerPhase.COOLDOWN

    # A second complete downswing starting right away lands inside cooldown.
    second_swing = [(1400, 0.40), (1500, 0.35), (1600, 0.20), (1700, 0.25), (1800, 0.30), (1900, 0.55)]
    assert _run(tracker, second_swing) == []

    # After cooldown the same pattern fires again.
    third_swing = [(t + 1500, y) for t, y in second_swing]
    assert len(_run(tracker, third_swing)) == 1
    assert len(tracker.impacts) == 2


def test_impacts_are_at_least_cooldown_apart():
    tracker = SwingStateTracker(TimeWindow(0, 60_000), FRAME)
    t = 0
    for _ in range(10):
        _run(tracker, [(t + dt - 800, y) for dt, y in SWING])
        t += 1000
    times = [i.impact_ms for i in tracker.impacts]
    assert times
    assert all(b - a >= 900 for a, b in zip(times, times[1:]))


def test_mirrored_layout_gives_same_result():
    plain = SwingStateTracker(TimeWindow(300, 3500), FRAME)
    mirrored = SwingStateTracker(TimeWindow(300, 3500), FRAME)

    a = _run(plain, SWING, wrist_x=0.52)
    b = _run(mirrored, SWING, wrist_x=0.48, mirrored_layout=True)

    assert a == b == [Segment(300, 3500)]
    assert mirrored.impacts[0].mirrored is True
    assert mirrored.impacts[0].lateral_speed_px_s == pytest.approx(plain.impacts[0].lateral_speed_px_s)


def test_explicit_mirrored_flag_overrides_shoulder_order():
    tracker = SwingStateTracker(TimeWindow(300, 3500), FRAME)
    for ts, y in SWING:
        tracker.step(PoseSample(ts, _pose(y), mirrored=True))
    assert tracker.impacts[0].mirrored is True


def test_left_handed_tracks_left_wrist():
    cfg = SwingTrackerConfig(right_handed=False)
    tracker = SwingStateTracker(TimeWindow(300, 3500), FRAME, cfg)
    assert _run(tracker, SWING, right_wrist=False) == [Segment(300, 3500)]

    # The right wrist alone is missing the tracked landmark.
    tracker = SwingStateTracker(TimeWindow(300, 3500), FRAME, cfg)
    assert _run(tracker, SWING) == []


def test_sample_with_missing_landmark_leaves_state_untouched():
    tracker = SwingStateTracker(TimeWindow(300, 3500), FRAME)
    _run(tracker, SWING[:3])
    before = (tracker.state.prev_timestamp_ms, len(tracker.state.top_detector))

    kps = _pose(0.5)
    kps[KEYPOINT_NAMES["left_hip"]] = (math.nan, math.nan)
    assert tracker.step(PoseSample(1070, kps)) is None
    assert (tracker.state.prev_timestamp_ms, len(tracker.state.top_detector)) == before

    # The dropped sample does not affect the rest of the swing.
    assert _run(tracker, SWING[3:]) == [Segment(300, 3500)]


def test_wrong_shape_is_dropped():
    tracker = SwingStateTracker(TimeWindow(0, 5000), FRAME)
    assert tracker.step(PoseSample(0, np.zeros((5, 2), dtype=np.float32))) is None
    assert tracker.state.prev_timestamp_ms is None


def test_samples_closer_than_inference_step_are_ignored():
    tracker = SwingStateTracker(TimeWindow(0, 5000), FRAME)
    assert tracker.config.min_step_ms == 67
    tracker.step(PoseSample(800, _pose(0.40)))

    assert not tracker.should_process(800)
    assert not tracker.should_process(700)
    assert not tracker.should_process(866)
    assert tracker.should_process(867)

    tracker.step(PoseSample(850, _pose(0.10)))
    assert tracker.state.prev_timestamp_ms == 800
    assert len(tracker.state.top_detector) == 1


def test_phase_progression():
    tracker = SwingStateTracker(TimeWindow(300, 3500), FRAME)
    assert tracker.phase_at(800) is TrackerPhase.AWAITING_TOP
    _run(tracker, SWING[:5])
    assert tracker.phase_at(1200) is TrackerPhase.TOP_SEEN
    assert tracker.phase_at(3000) is TrackerPhase.AWAITING_TOP


def test_invalid_frame_size_rejected():
    with pytest.raises(ValueError):
        SwingStateTracker(TimeWindow(0, 1000), (0, 540))


@pytest.mark.parametrize("name,col", [("right_shoulder", 1), ("right_hip", 0), ("right_wrist", 0)])
def test_any_missing_required_coordinate_drops_the_sample(name, col):
    tracker = SwingStateTracker(TimeWindow(300, 3500), FRAME)
    kps = _pose(0.40)
    kps[KEYPOINT_NAMES[name], col] = np.nan
    assert tracker.step(PoseSample(800, kps)) is None
    assert tracker.state.prev_timestamp_ms is None
    assert len(tracker.state.top_detector) == 0
