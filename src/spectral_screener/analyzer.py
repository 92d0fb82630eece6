"""Spectral Analyzer - end-to-end grid artifact analysis."""

import logging
import time
from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, NamedTuple, Optional, Union

import numpy as np

from spectral_screener.config import AnalysisConfig, parse_config
from spectral_screener.coordinator import AnalysisCoordinator
from spectral_screener.engine import BackendDispatcher, EngineContext
from spectral_screener.errors import ConfigurationError
from spectral_screener.extraction import SignalExtractor
from spectral_screener.magnitude import MagnitudeField, build_magnitude_field
from spectral_screener.polar import PolarImage, PolarRemapper
from spectral_screener.scoring import cardinal_ratios

logger = logging.getLogger(__name__)

__all__ = ['SpectralAnalyzer', 'AnalysisResult', 'StageTimings']


@dataclass
class StageTimings:
    """Per-stage wall-clock timings (milliseconds) and the backend used."""

    backend: str = ""
    extraction_ms: float = 0.0
    transform_ms: float = 0.0
    scan_ms: float = 0.0
    remap_ms: float = 0.0

    @property
    def total_ms(self) -> float:
        return self.extraction_ms + self.transform_ms + self.scan_ms + self.remap_ms


class AnalysisResult(NamedTuple):
    """Result of a spectral grid analysis."""

    image_path: Optional[str]
    fft_width: int
    fft_height: int
    magnitude: MagnitudeField
    azimuthal: np.ndarray  # Raw 360-bin profile of the linear field
    smoothed_azimuthal: np.ndarray  # 5-tap smoothed profile for charts
    radial: np.ndarray  # Mean power per integer radius, 1 .. maxR-1
    polar: PolarImage
    anomaly_score: float  # Max cardinal peak/background ratio
    cardinal_ratios: Dict[int, float]
    timings: StageTimings


class SpectralAnalyzer:
    """
    Detects periodic grid artifacts through the image's power spectrum.

    The native FFT backend is initialized in the background as soon as the
    analyzer is created; analyses issued before it is ready run on the
    interpreted backend.

    Args:
        config: AnalysisConfig or a mapping of analysis options
        context: EngineContext to share between analyzers
        executor: Executor for scan/remap jobs (default: owned thread pool)
        synchronous: Run scan/remap inline instead of in the background
        seed: Seed for the polar normalization sample
        timeout: Seconds to wait for background results
    """

    def __init__(
        self,
        config: Union[AnalysisConfig, Mapping[str, Any], None] = None,
        context: Optional[EngineContext] = None,
        executor: Optional[Executor] = None,
        synchronous: bool = False,
        seed: Optional[int] = None,
        timeout: Optional[float] = 300.0,
    ):
        if isinstance(config, AnalysisConfig):
            self.config = config
        else:
            self.config = parse_config(config or {})
        self.timeout = timeout

        self.context = context if context is not None else EngineContext()
        self.context.init()
        self.dispatcher = BackendDispatcher(self.context)
        self.extractor = SignalExtractor(
            channel=self.config.channel,
            signal=self.config.signal,
            window=self.config.window,
        )
        self.coordinator = AnalysisCoordinator(
            remapper=PolarRemapper(seed=seed),
            executor=executor,
            synchronous=synchronous,
        )

    def analyze(self, image_path: Union[str, Path]) -> AnalysisResult:
        """
        Analyze an image file for spectral grid artifacts.

        Args:
            image_path: Path to the image file (.jpg, .png, .webp, .bmp)

        Returns:
            AnalysisResult
        """
        logger.info(f"Analyzing image: {image_path}")
        start = time.perf_counter()
        image = self.extractor.load_rgb(image_path)
        load_ms = (time.perf_counter() - start) * 1000.0
        result = self.analyze_array(image, image_path=str(image_path))
        result.timings.extraction_ms += load_ms
        return result

    def analyze_array(self, image: np.ndarray, image_path: Optional[str] = None) -> AnalysisResult:
        """
        Analyze a decoded image.

        Args:
            image: (H, W, 3|4) RGB(A) image or (H, W) grayscale. Integer images
                hold 0..255 values; float images hold intensities in [0, 1]
            image_path: Optional source path, echoed in the result

        Returns:
            AnalysisResult
        """
        cfg = self.config
        image = np.asarray(image)
        if image.ndim not in (2, 3) or image.size == 0:
            raise ConfigurationError(f"Expected a non-empty 2D or 3D image array, got shape {image.shape}")
        image_height, image_width = image.shape[:2]
        width, height = self.dispatcher.resolve_fft_size(
            image_width, image_height, cfg.fft_size, cfg.engine
        )
        logger.info(
            f"Input: {image_width}x{image_height} -> FFT: {width}x{height} "
            f"(signal={cfg.signal}, channel={cfg.channel}, window={cfg.window})"
        )

        timings = StageTimings()
        start = time.perf_counter()
        samples = self.extractor.extract(image, width, height)
        timings.extraction_ms = (time.perf_counter() - start) * 1000.0

        transform = self.dispatcher.transform(samples, width, height, cfg.engine)
        timings.backend = transform.backend
        timings.transform_ms = transform.duration_ms

        field = build_magnitude_field(
            transform.magnitude,
            width,
            height,
            log_scale=cfg.log_scale,
            suppress_dc=cfg.suppress_dc,
        )

        self.coordinator.submit(field, cfg.polar_width, cfg.polar_height)
        if not self.coordinator.wait(self.timeout):
            raise TimeoutError(f"Spectral post-processing did not finish within {self.timeout}s")

        cache = self.coordinator.cache
        timings.scan_ms = cache.scan.scan_ms
        timings.remap_ms = cache.polar.remap_ms

        ratios = cardinal_ratios(cache.azimuthal)
        score = max(ratios.values())

        logger.info(
            f"Analysis complete: grid_score={score:.2f}x, backend={timings.backend}, "
            f"total={timings.total_ms:.1f}ms"
        )

        return AnalysisResult(
            image_path=image_path,
            fft_width=width,
            fft_height=height,
            magnitude=field,
            azimuthal=cache.azimuthal,
            smoothed_azimuthal=cache.smoothed_azimuthal,
            radial=cache.radial,
            polar=cache.polar,
            anomaly_score=score,
            cardinal_ratios=ratios,
            timings=timings,
        )

    def rerender_polar(self, output_width: int, output_height: int) -> PolarImage:
        """Re-render the polar view of the last analysis at a new size."""
        self.coordinator.rerender_polar(output_width, output_height)
        if not self.coordinator.wait(self.timeout):
            raise TimeoutError(f"Polar re-render did not finish within {self.timeout}s")
        return self.coordinator.cache.polar

    def batch_analyze(self, image_paths: list[Union[str, Path]]) -> list[AnalysisResult]:
        """
        Analyze multiple images in sequence.

        Args:
            image_paths: List of paths to image files

        Returns:
            List of AnalysisResult objects
        """
        logger.info(f"Batch analyzing {len(image_paths)} images")
        return [self.analyze(path) for path in image_paths]

    def close(self) -> None:
        """Release the background workers."""
        self.coordinator.shutdown()

    def __enter__(self) -> "SpectralAnalyzer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
