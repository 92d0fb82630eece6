"""Power spectrum extraction and quadrant-shift centering."""

import logging
from dataclasses import dataclass

import numpy as np

from spectral_screener.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ['MagnitudeField', 'power_spectrum', 'build_magnitude_field', 'DC_SUPPRESSION_RADIUS']

DC_SUPPRESSION_RADIUS = 2  # Visual samples with |dx| and |dy| below this are zeroed


@dataclass(frozen=True)
class MagnitudeField:
    """Centered power field in two independently owned variants."""

    linear: np.ndarray  # Raw power re^2 + im^2, used for scoring
    visual: np.ndarray  # Optionally log-compressed, used for rendering
    width: int
    height: int
    log_scale: bool = False

    @property
    def center(self) -> tuple:
        """(cx, cy) index of the DC term."""
        return self.width // 2, self.height // 2


def _check_field_size(size: int, width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Dimensions must be positive, got {width}x{height}")
    if size != width * height:
        raise ConfigurationError(
            f"Buffer of length {size} does not match {width}x{height} ({width * height})"
        )


def power_spectrum(re: np.ndarray, im: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Convert a transformed complex field into a centered power field.

    The sample at (x, y) is relocated to ((x + w//2) mod w, (y + h//2) mod h)
    so the DC term lands at (w//2, h//2).

    Args:
        re: Real part of the spectrum (flat or (height, width))
        im: Imaginary part, same size
        width: Field width
        height: Field height

    Returns:
        Flat float32 array of length width*height
    """
    _check_field_size(np.size(re), width, height)
    _check_field_size(np.size(im), width, height)

    re_grid = np.reshape(re, (height, width))
    im_grid = np.reshape(im, (height, width))
    power = re_grid * re_grid + im_grid * im_grid
    centered = np.roll(power, shift=(height // 2, width // 2), axis=(0, 1))
    return np.ascontiguousarray(centered, dtype=np.float32).ravel()


def build_magnitude_field(
    linear: np.ndarray,
    width: int,
    height: int,
    log_scale: bool = False,
    suppress_dc: bool = False,
) -> MagnitudeField:
    """
    Build the linear and visual magnitude fields from centered power.

    The visual copy is a separate buffer: ``log1p`` is applied when
    ``log_scale`` is set and the DC neighbourhood is zeroed when
    ``suppress_dc`` is set. The linear copy is never altered.

    Args:
        linear: Centered power field of length width*height
        width: Field width
        height: Field height
        log_scale: Apply log(1 + power) to the visual copy
        suppress_dc: Zero the visual samples around the DC term

    Returns:
        MagnitudeField with read-only linear and visual arrays
    """
    _check_field_size(np.size(linear), width, height)

    linear_owned = np.array(linear, dtype=np.float32, copy=True).ravel()
    if log_scale:
        visual = np.log1p(linear_owned)
    else:
        visual = linear_owned.copy()

    if suppress_dc:
        cx, cy = width // 2, height // 2
        reach = DC_SUPPRESSION_RADIUS - 1
        grid = visual.reshape(height, width)
        grid[max(0, cy - reach):cy + reach + 1, max(0, cx - reach):cx + reach + 1] = 0.0
        logger.debug(f"Suppressed DC neighbourhood around ({cx}, {cy}) in visual field")

    linear_owned.setflags(write=False)
    visual.setflags(write=False)

    return MagnitudeField(
        linear=linear_owned,
        visual=visual,
        width=width,
        height=height,
        log_scale=log_scale,
    )
