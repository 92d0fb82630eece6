"""Spectral Screener - periodic grid artifact analysis in the frequency domain"""

__version__ = "0.1.0"

from .analyzer import AnalysisResult, SpectralAnalyzer
from .config import AnalysisConfig, parse_config
from .coordinator import AnalysisCoordinator
from .engine import BackendDispatcher, EngineCapability, EngineContext
from .errors import (
    AccelerationUnavailable,
    BackgroundExecutionFailure,
    ConfigurationError,
    TransformPreconditionError,
)
from .scoring import score_grid_anomaly

__all__ = [
    "SpectralAnalyzer",
    "AnalysisResult",
    "AnalysisConfig",
    "parse_config",
    "AnalysisCoordinator",
    "BackendDispatcher",
    "EngineCapability",
    "EngineContext",
    "score_grid_anomaly",
    "ConfigurationError",
    "AccelerationUnavailable",
    "TransformPreconditionError",
    "BackgroundExecutionFailure",
]
