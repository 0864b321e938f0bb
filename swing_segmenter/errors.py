"""Exceptions raised by the swing segmentation pipeline.

Per-sample problems (undecodable frame, failed pose call, NaN landmark) are
never raised; they are skipped where they happen. Only outcomes the caller must
distinguish from "no swings found" surface as exceptions.
"""


class SwingSegmenterError(Exception):
    """Base class for all swing_segmenter errors."""


class ConfigurationError(SwingSegmenterError):
    """A collaborator (frame source, pose estimator) or config could not be set up."""


class AnalysisCancelled(SwingSegmenterError):
    """Analysis was cancelled by the caller; no partial result is available."""
