"""Tests for backend selection and the engine context."""

import threading

import numpy as np
import pytest

from spectral_screener.engine import (
    INTERPRETED,
    NATIVE,
    BackendDispatcher,
    EngineCapability,
    EngineContext,
    load_scipy_kernel,
)
from spectral_screener.errors import AccelerationUnavailable, ConfigurationError


def _ready(context: EngineContext) -> EngineContext:
    context.init().result(timeout=30)
    return context


def _failing_loader():
    raise AccelerationUnavailable("no native FFT on this platform")


def _broken_kernel_loader():
    def kernel(grid):
        raise RuntimeError("kernel crashed")

    return kernel


def test_load_scipy_kernel_matches_numpy():
    """Test the scipy kernel against numpy's FFT."""
    kernel = load_scipy_kernel()
    grid = np.random.default_rng(0).random((6, 10))
    np.testing.assert_allclose(kernel(grid), np.fft.fft2(grid), atol=1e-9)


def test_context_becomes_available():
    """Test native initialization with a working loader."""
    context = EngineContext()
    assert context.capability is EngineCapability.PENDING

    capability = context.init().result(timeout=30)

    assert capability is EngineCapability.AVAILABLE
    assert context.capability is EngineCapability.AVAILABLE
    assert context.kernel is not None
    assert context.error is None


def test_context_failure_is_unavailable():
    """Test that a failing loader leaves the backend permanently unavailable."""
    context = _ready(EngineContext(loader=_failing_loader))

    assert context.capability is EngineCapability.UNAVAILABLE
    assert isinstance(context.error, AccelerationUnavailable)
    assert context.kernel is None


def test_init_is_idempotent():
    """Test that repeated init calls share one initialization."""
    calls = []

    def loader():
        calls.append(1)
        return load_scipy_kernel()

    context = EngineContext(loader=loader)
    first = context.init()
    second = context.init()
    first.result(timeout=30)

    assert first is second
    assert context.init() is first
    assert len(calls) == 1


def test_pending_context_uses_interpreted():
    """Test that transforms never wait on a pending native backend."""
    release = threading.Event()

    def slow_loader():
        release.wait(timeout=30)
        return load_scipy_kernel()

    context = EngineContext(loader=slow_loader)
    dispatcher = BackendDispatcher(context)
    try:
        samples = np.random.default_rng(1).random(64).astype(np.float32)
        result = dispatcher.transform(samples, 8, 8, engine="native")

        assert context.capability is EngineCapability.PENDING
        assert result.backend == INTERPRETED
    finally:
        release.set()
        context.init().result(timeout=30)


def test_effective_backend():
    """Test backend resolution for each engine choice."""
    available = BackendDispatcher(_ready(EngineContext()))
    unavailable = BackendDispatcher(_ready(EngineContext(loader=_failing_loader)))

    assert available.effective_backend("auto") == NATIVE
    assert available.effective_backend("native") == NATIVE
    assert available.effective_backend("interpreted") == INTERPRETED
    assert unavailable.effective_backend("auto") == INTERPRETED
    assert unavailable.effective_backend("native") == INTERPRETED

    with pytest.raises(ConfigurationError, match="engine must be one of"):
        available.effective_backend("gpu")


def test_backends_agree():
    """Test that native and interpreted transforms agree."""
    dispatcher = BackendDispatcher(_ready(EngineContext()))
    rng = np.random.default_rng(2)
    width, height = 64, 32
    samples = rng.standard_normal(width * height).astype(np.float32)

    native = dispatcher.transform(samples, width, height, engine="native")
    interpreted = dispatcher.transform(samples, width, height, engine="interpreted")

    assert native.backend == NATIVE
    assert interpreted.backend == INTERPRETED
    assert native.magnitude.dtype == np.float32
    assert native.magnitude.shape == (width * height,)
    scale = float(np.max(interpreted.magnitude))
    np.testing.assert_allclose(
        native.magnitude, interpreted.magnitude, rtol=1e-3, atol=1e-6 * scale
    )


def test_native_accepts_arbitrary_dimensions():
    """Test that the native backend handles non power-of-two fields."""
    dispatcher = BackendDispatcher(_ready(EngineContext()))
    samples = np.zeros(30 * 20, dtype=np.float32)
    samples[0] = 1.0

    result = dispatcher.transform(samples, 30, 20)

    assert result.backend == NATIVE
    np.testing.assert_allclose(result.magnitude, 1.0, rtol=1e-6)


def test_native_failure_retries_interpreted():
    """Test fallback to the interpreted backend when the native kernel raises."""
    dispatcher = BackendDispatcher(_ready(EngineContext(loader=_broken_kernel_loader)))
    samples = np.ones(16 * 16, dtype=np.float32)

    result = dispatcher.transform(samples, 16, 16)

    assert result.backend == INTERPRETED
    assert result.magnitude[8 * 16 + 8] == pytest.approx(256.0 ** 2)


def test_native_failure_without_fallback_propagates():
    """Test that a native failure on non power-of-two dimensions is raised."""
    dispatcher = BackendDispatcher(_ready(EngineContext(loader=_broken_kernel_loader)))

    with pytest.raises(RuntimeError, match="kernel crashed"):
        dispatcher.transform(np.ones(30 * 20, dtype=np.float32), 30, 20)


def test_transform_rejects_bad_input():
    """Test ConfigurationError on malformed requests."""
    dispatcher = BackendDispatcher(_ready(EngineContext(loader=_failing_loader)))

    with pytest.raises(ConfigurationError, match="positive"):
        dispatcher.transform(np.zeros(0, dtype=np.float32), 0, 16)
    with pytest.raises(ConfigurationError, match="exceed maximum"):
        dispatcher.transform(np.zeros(16, dtype=np.float32), 16384, 1)
    with pytest.raises(ConfigurationError, match="integers"):
        dispatcher.transform(np.zeros(64, dtype=np.float32), 8.0, 8)
    with pytest.raises(ConfigurationError, match="does not match"):
        dispatcher.transform(np.zeros(100, dtype=np.float32), 16, 16)
    with pytest.raises(ConfigurationError, match="flat sample buffer"):
        dispatcher.transform(np.zeros((16, 16), dtype=np.float32), 16, 16)
    with pytest.raises(ConfigurationError, match="power-of-two"):
        dispatcher.transform(np.zeros(48 * 32, dtype=np.float32), 48, 32)


def test_resolve_fft_size_interpreted():
    """Test automatic square power-of-two sizing on the interpreted path."""
    dispatcher = BackendDispatcher(_ready(EngineContext(loader=_failing_loader)))

    assert dispatcher.resolve_fft_size(300, 200) == (512, 512)
    assert dispatcher.resolve_fft_size(1000, 600) == (1024, 1024)
    assert dispatcher.resolve_fft_size(2048, 100) == (2048, 2048)
    assert dispatcher.resolve_fft_size(20000, 100) == (8192, 8192)
    assert dispatcher.resolve_fft_size(600, 513) == (1024, 1024)
    assert dispatcher.resolve_fft_size(512, 512) == (512, 512)
    assert dispatcher.resolve_fft_size(8, 8) == (512, 512)


def test_resolve_fft_size_native():
    """Test that the native path keeps image dimensions up to the maximum."""
    dispatcher = BackendDispatcher(_ready(EngineContext()))

    assert dispatcher.resolve_fft_size(640, 480) == (640, 480)
    assert dispatcher.resolve_fft_size(16384, 8192) == (8192, 4096)
    assert dispatcher.resolve_fft_size(640, 480, engine="interpreted") == (1024, 1024)


def test_resolve_fft_size_explicit():
    """Test explicit power-of-two sizes."""
    dispatcher = BackendDispatcher(_ready(EngineContext()))

    assert dispatcher.resolve_fft_size(640, 480, fft_size=256) == (256, 256)
    with pytest.raises(ConfigurationError, match="power of two"):
        dispatcher.resolve_fft_size(640, 480, fft_size=300)
    with pytest.raises(ConfigurationError, match="power of two"):
        dispatcher.resolve_fft_size(640, 480, fft_size=16384)
    with pytest.raises(ConfigurationError, match="positive"):
        dispatcher.resolve_fft_size(0, 480)
