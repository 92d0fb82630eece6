"""FFT backend selection: native acceleration with an interpreted fallback."""

import logging
import threading
import time
from concurrent.futures import Future
from enum import Enum
from typing import Callable, NamedTuple, Optional, Tuple, Union

import numpy as np

from spectral_screener.config import (
    ENGINE_CHOICES,
    MAX_FFT_SIZE,
    MIN_AUTO_FFT_SIZE,
)
from spectral_screener.errors import AccelerationUnavailable, ConfigurationError
from spectral_screener.fft import complex_field, fft2d, is_power_of_two, next_power_of_two
from spectral_screener.magnitude import power_spectrum

logger = logging.getLogger(__name__)

__all__ = [
    'EngineCapability',
    'EngineContext',
    'BackendDispatcher',
    'TransformResult',
    'load_scipy_kernel',
    'NATIVE',
    'INTERPRETED',
]

NATIVE = "native"
INTERPRETED = "interpreted"

# A native kernel maps a real (height, width) grid to its complex 2D spectrum
NativeKernel = Callable[[np.ndarray], np.ndarray]


class EngineCapability(str, Enum):
    """Availability of the native FFT backend."""

    PENDING = "pending"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class TransformResult(NamedTuple):
    """Centered linear power field plus execution telemetry."""

    magnitude: np.ndarray  # Flat float32, DC at (width//2, height//2)
    width: int
    height: int
    backend: str
    duration_ms: float


def load_scipy_kernel() -> NativeKernel:
    """
    Load scipy's compiled FFT and verify it on known transforms.

    Raises:
        AccelerationUnavailable: If scipy.fft cannot be imported or the probe
            transforms do not match their analytic results
    """
    try:
        from scipy import fft as scipy_fft
    except ImportError as e:
        raise AccelerationUnavailable(f"scipy.fft is not importable: {e}") from e

    def kernel(grid: np.ndarray) -> np.ndarray:
        return scipy_fft.fft2(grid, workers=-1)

    # An impulse transforms to a flat spectrum for any (including odd) shape
    for shape in ((4, 4), (3, 5)):
        probe = np.zeros(shape, dtype=np.float64)
        probe[0, 0] = 1.0
        if not np.allclose(kernel(probe), 1.0):
            raise AccelerationUnavailable(f"scipy.fft probe mismatch for shape {shape}")
    return kernel


class EngineContext:
    """
    Owns the native backend lifecycle.

    ``init()`` starts a one-time background initialization and returns a
    future resolving to the final capability. Until it completes the
    capability is PENDING and callers use the interpreted path. A failed
    initialization is logged once and leaves the capability UNAVAILABLE for
    the lifetime of the context.
    """

    def __init__(self, loader: Callable[[], NativeKernel] = load_scipy_kernel):
        self._loader = loader
        self._lock = threading.Lock()
        self._future: Optional[Future] = None
        self._kernel: Optional[NativeKernel] = None
        self._capability = EngineCapability.PENDING
        self.error: Optional[BaseException] = None

    @property
    def capability(self) -> EngineCapability:
        return self._capability

    @property
    def kernel(self) -> Optional[NativeKernel]:
        return self._kernel

    def init(self) -> Future:
        """Start native initialization if not yet started; idempotent."""
        with self._lock:
            if self._future is None:
                self._future = Future()
                self._future.set_running_or_notify_cancel()
                thread = threading.Thread(
                    target=self._initialize, name="native-fft-init", daemon=True
                )
                thread.start()
            return self._future

    def _initialize(self) -> None:
        start = time.perf_counter()
        try:
            kernel = self._loader()
        except Exception as e:
            with self._lock:
                self.error = e
                self._capability = EngineCapability.UNAVAILABLE
            logger.warning(f"Native FFT unavailable, using interpreted backend: {e}")
        else:
            with self._lock:
                self._kernel = kernel
                self._capability = EngineCapability.AVAILABLE
            elapsed = (time.perf_counter() - start) * 1000.0
            logger.info(f"Native FFT loaded in {elapsed:.0f}ms")
        self._future.set_result(self._capability)


def _validate_dimensions(width: int, height: int) -> None:
    if not isinstance(width, (int, np.integer)) or not isinstance(height, (int, np.integer)):
        raise ConfigurationError(f"Dimensions must be integers, got {width!r}x{height!r}")
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Dimensions must be positive, got {width}x{height}")
    if width > MAX_FFT_SIZE or height > MAX_FFT_SIZE:
        raise ConfigurationError(
            f"Dimensions {width}x{height} exceed maximum of {MAX_FFT_SIZE}"
        )


class BackendDispatcher:
    """Routes transforms to the native or interpreted backend."""

    def __init__(self, context: Optional[EngineContext] = None):
        self.context = context if context is not None else EngineContext()

    def effective_backend(self, engine: str = "auto") -> str:
        """
        Resolve the backend for a request.

        An explicit "interpreted" is always honoured. "native" and "auto" use
        the native backend only once it is AVAILABLE.
        """
        if engine not in ENGINE_CHOICES:
            raise ConfigurationError(
                f"engine must be one of {ENGINE_CHOICES}, got {engine!r}"
            )
        if engine == INTERPRETED:
            return INTERPRETED
        if self.context.capability is EngineCapability.AVAILABLE:
            return NATIVE
        if engine == NATIVE:
            logger.debug("Native engine requested but not available; using interpreted")
        return INTERPRETED

    def resolve_fft_size(
        self,
        image_width: int,
        image_height: int,
        fft_size: Union[str, int] = "native",
        engine: str = "auto",
    ) -> Tuple[int, int]:
        """
        Pick transform dimensions for an image.

        An explicit power-of-two ``fft_size`` gives a square transform. With
        ``"native"``, the native backend uses the image dimensions (scaled
        down to fit MAX_FFT_SIZE); the interpreted backend uses the smallest
        square power of two >= the larger image side, between
        MIN_AUTO_FFT_SIZE and MAX_FFT_SIZE.

        Returns:
            (width, height) of the transform
        """
        if image_width <= 0 or image_height <= 0:
            raise ConfigurationError(
                f"Image dimensions must be positive, got {image_width}x{image_height}"
            )

        if fft_size != "native":
            if not is_power_of_two(fft_size) or fft_size > MAX_FFT_SIZE:
                raise ConfigurationError(
                    f"fft_size must be 'native' or a power of two <= {MAX_FFT_SIZE}, got {fft_size!r}"
                )
            return fft_size, fft_size

        if self.effective_backend(engine) == NATIVE:
            largest = max(image_width, image_height)
            if largest <= MAX_FFT_SIZE:
                return image_width, image_height
            scale = MAX_FFT_SIZE / largest
            return max(1, int(image_width * scale)), max(1, int(image_height * scale))

        largest = max(image_width, image_height)
        size = min(MAX_FFT_SIZE, next_power_of_two(max(largest, MIN_AUTO_FFT_SIZE)))
        return size, size

    def transform(
        self,
        samples: np.ndarray,
        width: int,
        height: int,
        engine: str = "auto",
    ) -> TransformResult:
        """
        Transform a sample buffer into a centered linear power field.

        Native initialization is kicked off on first use but never waited on.

        Args:
            samples: Flat float32 sample buffer of length width*height
            width: Transform width
            height: Transform height
            engine: "auto", "native" or "interpreted"

        Returns:
            TransformResult with the magnitude field, backend name and duration

        Raises:
            ConfigurationError: On malformed dimensions or buffers, or
                non-power-of-two dimensions on the interpreted path
        """
        self.context.init()
        _validate_dimensions(width, height)
        samples = np.asarray(samples)
        if samples.ndim != 1:
            raise ConfigurationError(f"Expected a flat sample buffer, got shape {samples.shape}")
        if samples.size != width * height:
            raise ConfigurationError(
                f"Sample buffer of length {samples.size} does not match "
                f"{width}x{height} ({width * height})"
            )

        backend = self.effective_backend(engine)
        if backend == INTERPRETED and not (is_power_of_two(width) and is_power_of_two(height)):
            raise ConfigurationError(
                f"Interpreted backend requires power-of-two dimensions, got {width}x{height}; "
                "use resolve_fft_size to pick transform dimensions"
            )

        logger.debug(f"FFT engine: {backend}, size: {width}x{height}")
        start = time.perf_counter()
        if backend == NATIVE:
            try:
                magnitude = self._run_native(samples, width, height)
            except Exception as e:
                if not (is_power_of_two(width) and is_power_of_two(height)):
                    raise
                logger.warning(f"Native FFT failed ({e}); retrying with interpreted backend")
                backend = INTERPRETED
                magnitude = self._run_interpreted(samples, width, height)
        else:
            magnitude = self._run_interpreted(samples, width, height)
        elapsed = (time.perf_counter() - start) * 1000.0

        logger.info(f"FFT complete ({backend}, {width}x{height}): {elapsed:.1f}ms")
        return TransformResult(
            magnitude=magnitude,
            width=width,
            height=height,
            backend=backend,
            duration_ms=elapsed,
        )

    def _run_native(self, samples: np.ndarray, width: int, height: int) -> np.ndarray:
        grid = samples.reshape(height, width).astype(np.float64)
        spectrum = self.context.kernel(grid)
        return power_spectrum(spectrum.real, spectrum.imag, width, height)

    def _run_interpreted(self, samples: np.ndarray, width: int, height: int) -> np.ndarray:
        re, im = complex_field(samples)
        fft2d(re, im, width, height)
        return power_spectrum(re, im, width, height)
