"""Golf swing segmentation from video using pose estimation."""

__version__ = "0.1.0"

from .errors import AnalysisCancelled, ConfigurationError, SwingSegmenterError
from .config import DEFAULT_CONFIG, DetectorConfig, load_config
from .analysis import Segment, SwingAnalyzer, TimeWindow, VideoAnalysisResult
from .main import analyze_video
