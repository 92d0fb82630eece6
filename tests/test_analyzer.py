"""Tests for SpectralAnalyzer main class."""

import numpy as np
import pytest
from PIL import Image

from spectral_screener.analyzer import SpectralAnalyzer
from spectral_screener.config import AnalysisConfig
from spectral_screener.engine import EngineContext
from spectral_screener.errors import ConfigurationError
from spectral_screener.profiles import radial_extent


def _interpreted_context():
    def loader():
        raise RuntimeError("native backend disabled for test")

    context = EngineContext(loader=loader)
    context.init().result(timeout=30)
    return context


def _grid_image(size=256, pitch=8):
    rng = np.random.default_rng(0)
    image = rng.integers(60, 120, size=(size, size, 3), dtype=np.uint8)
    image[::pitch, :, :] = 255
    image[:, ::pitch, :] = 255
    return image


def _noise_image(size=256):
    rng = np.random.default_rng(1)
    return rng.integers(0, 256, size=(size, size, 3), dtype=np.uint8)


def test_spectral_analyzer_initialization():
    """Test SpectralAnalyzer initialization from an option mapping."""
    with SpectralAnalyzer({"fftSize": 512, "channel": "luma"}, synchronous=True) as analyzer:
        assert isinstance(analyzer.config, AnalysisConfig)
        assert analyzer.config.fft_size == 512
        assert analyzer.extractor.channel == "luma"


def test_invalid_options_rejected():
    """Test that invalid options fail at construction."""
    with pytest.raises(ConfigurationError):
        SpectralAnalyzer({"engine": "gpu"}, synchronous=True)


def test_analyze_image(tmp_path):
    """Test analyzing a single image."""
    img = Image.new("RGB", (200, 150), color=(128, 128, 128))
    img_path = tmp_path / "test.png"
    img.save(img_path)

    analyzer = SpectralAnalyzer({"fft_size": 256}, synchronous=True, seed=0)
    result = analyzer.analyze(img_path)

    assert result.image_path == str(img_path)
    assert (result.fft_width, result.fft_height) == (256, 256)
    assert result.magnitude.linear.shape == (256 * 256,)
    assert result.azimuthal.shape == (360,)
    assert result.smoothed_azimuthal.shape == (360,)
    assert result.radial.shape == (radial_extent(256, 256) - 1,)
    assert result.polar.pixels.shape == (300, 400, 4)
    assert set(result.cardinal_ratios) == {0, 90, 180, 270}
    assert result.anomaly_score == max(result.cardinal_ratios.values())
    assert result.timings.backend in ("native", "interpreted")
    assert result.timings.total_ms >= result.timings.transform_ms


def test_grid_scores_above_noise():
    """Test that a periodic grid stands out against plain noise."""
    options = {"fft_size": 256, "channel": "luma"}
    with SpectralAnalyzer(options, context=_interpreted_context(), seed=0) as analyzer:
        grid = analyzer.analyze_array(_grid_image())
        noise = analyzer.analyze_array(_noise_image())

    assert grid.timings.backend == "interpreted"
    assert grid.anomaly_score > 3.0 * noise.anomaly_score
    assert noise.anomaly_score < 3.0


def test_backends_give_same_score():
    """Test that the score does not depend on the FFT backend."""
    image = _grid_image(size=128)
    native_context = EngineContext()
    native_context.init().result(timeout=30)

    native = SpectralAnalyzer({"fft_size": 128}, context=native_context, synchronous=True)
    interpreted = SpectralAnalyzer(
        {"fft_size": 128}, context=_interpreted_context(), synchronous=True
    )
    native_result = native.analyze_array(image)
    interpreted_result = interpreted.analyze_array(image)

    assert native_result.timings.backend == "native"
    assert interpreted_result.timings.backend == "interpreted"
    assert native_result.anomaly_score == pytest.approx(interpreted_result.anomaly_score, rel=1e-3)


def test_interpreted_auto_size_is_power_of_two():
    """Test automatic transform sizing on the interpreted backend."""
    analyzer = SpectralAnalyzer(
        {"engine": "interpreted"}, context=_interpreted_context(), synchronous=True
    )
    result = analyzer.analyze_array(_noise_image(size=300))

    assert (result.fft_width, result.fft_height) == (512, 512)


def test_rerender_polar():
    """Test re-rendering the polar view of the last analysis."""
    analyzer = SpectralAnalyzer({"fft_size": 128}, synchronous=True, seed=0)
    result = analyzer.analyze_array(_noise_image(size=128))

    polar = analyzer.rerender_polar(180, 90)

    assert polar.pixels.shape == (90, 180, 4)
    assert result.polar.pixels.shape == (300, 400, 4)


def test_analyze_array_rejects_bad_shapes():
    """Test ConfigurationError on unusable arrays."""
    analyzer = SpectralAnalyzer(synchronous=True)
    with pytest.raises(ConfigurationError):
        analyzer.analyze_array(np.zeros(64, dtype=np.uint8))
    with pytest.raises(ConfigurationError):
        analyzer.analyze_array(np.zeros((0, 10, 3), dtype=np.uint8))


def test_batch_analyze(tmp_path):
    """Test batch analysis of multiple images."""
    image_paths = []
    for i in range(3):
        img = Image.new("RGB", (100, 100), color=(i * 50, i * 50, i * 50))
        img_path = tmp_path / f"test_{i}.png"
        img.save(img_path)
        image_paths.append(img_path)

    analyzer = SpectralAnalyzer({"fft_size": 128}, synchronous=True)
    results = analyzer.batch_analyze(image_paths)

    assert len(results) == 3
    for path, result in zip(image_paths, results):
        assert result.image_path == str(path)
        assert result.anomaly_score >= 0.0


def test_analyze_float_grayscale():
    """Test that float [0, 1] images produce a non-zero spectrum."""
    image = np.random.default_rng(2).random((64, 64))
    analyzer = SpectralAnalyzer({"fft_size": 64, "signal": "raw"}, synchronous=True)

    result = analyzer.analyze_array(image)

    assert result.magnitude.linear.max() > 0


def test_analyze_out_of_range_float_rejected():
    """Test that float images outside [0, 1] raise ConfigurationError."""
    analyzer = SpectralAnalyzer({"fft_size": 64}, synchronous=True)

    with pytest.raises(ConfigurationError, match="Float image values"):
        analyzer.analyze_array(np.full((64, 64), 200.0))
