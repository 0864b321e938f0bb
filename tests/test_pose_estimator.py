from __future__ import annotations

import pytest

from swing_segmenter.core.pose_estimator import create_estimator
from swing_segmenter.errors import ConfigurationError


def test_unknown_backend_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="openpose"):
        create_estimator(backend="openpose")


def test_unknown_tier_is_a_configuration_error():
    # Fails on the weight lookup, before any model library is imported.
    with pytest.raises(ConfigurationError, match="huge"):
        create_estimator(backend="yolo", tier="huge")
    with pytest.raises(ConfigurationError):
        create_estimator(backend="mediapipe", tier="")
