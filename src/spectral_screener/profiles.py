"""Combined azimuthal and radial profile scan of a centered magnitude field."""

import logging
import math
import time
from typing import NamedTuple

import numpy as np

from spectral_screener.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ['ScanResult', 'scan_profiles', 'smooth_azimuthal', 'radial_extent']

# Angular resolution of the azimuthal profile (one bin per degree)
AZIMUTH_BINS = 360

# Annulus sampled by the azimuthal profile, as fractions of min(width, height).
# Empirical calibration tied to the anomaly score thresholds; keep as-is.
ANNULUS_INNER_FRACTION = 0.25
ANNULUS_OUTER_FRACTION = 0.45

SMOOTHING_HALF_WIDTH = 2  # 5-tap circular moving average for chart output

SCAN_BAND_ROWS = 512  # Rows per band; caps temporaries on 8192x8192 fields


class ScanResult(NamedTuple):
    """Profiles produced by a single pass over the magnitude field."""

    azimuthal: np.ndarray  # AZIMUTH_BINS means, index = degrees
    radial: np.ndarray  # Means for integer radii 1 .. maxR-1
    scan_ms: float  # Wall-clock time of the scan


def radial_extent(width: int, height: int) -> int:
    """maxR = ceil(sqrt((w/2)^2 + (h/2)^2)); radial bins run over [1, maxR)."""
    return int(math.ceil(math.sqrt((width / 2) ** 2 + (height / 2) ** 2)))


def scan_profiles(magnitude: np.ndarray, width: int, height: int) -> ScanResult:
    """
    Compute the azimuthal and radial profiles in one pass.

    For every sample the squared distance from the DC term is computed once.
    Samples inside the annulus (tested on squared thresholds) contribute to
    the angle bin floor(atan2(dy, dx) in degrees) mod 360. The radius
    floor(sqrt(distSq)) is taken once per sample and feeds the radial bin.
    The field is walked in bands of SCAN_BAND_ROWS rows; accumulation is in
    float64 and fully deterministic.

    Args:
        magnitude: Centered linear magnitude field of length width*height
        width: Field width
        height: Field height

    Returns:
        ScanResult with a 360-bin azimuthal profile and a (maxR - 1)-bin
        radial profile (radius 0, the DC term, excluded). Empty bins are 0.

    Raises:
        ConfigurationError: If dimensions are non-positive or do not match
    """
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Dimensions must be positive, got {width}x{height}")
    if np.size(magnitude) != width * height:
        raise ConfigurationError(
            f"Magnitude field of length {np.size(magnitude)} does not match {width}x{height}"
        )

    start = time.perf_counter()
    grid = np.reshape(magnitude, (height, width))

    cx, cy = width // 2, height // 2
    max_r = radial_extent(width, height)
    min_dim = min(width, height)
    inner = min_dim * ANNULUS_INNER_FRACTION
    outer = min_dim * ANNULUS_OUTER_FRACTION
    inner_sq = inner * inner
    outer_sq = outer * outer

    azimuthal_sums = np.zeros(AZIMUTH_BINS, dtype=np.float64)
    azimuthal_counts = np.zeros(AZIMUTH_BINS, dtype=np.int64)
    radial_sums = np.zeros(max_r, dtype=np.float64)
    radial_counts = np.zeros(max_r, dtype=np.int64)

    dx = np.arange(width, dtype=np.float64) - cx
    dx_sq = dx * dx

    for y0 in range(0, height, SCAN_BAND_ROWS):
        y1 = min(y0 + SCAN_BAND_ROWS, height)
        dy = np.arange(y0, y1, dtype=np.float64) - cy
        dist_sq = dx_sq[np.newaxis, :] + (dy * dy)[:, np.newaxis]
        values = grid[y0:y1].astype(np.float64)

        # Azimuthal: annulus members only, no sqrt needed for the test
        ring = (dist_sq >= inner_sq) & (dist_sq < outer_sq)
        if ring.any():
            rows, cols = np.nonzero(ring)
            angles = np.degrees(np.arctan2(dy[rows], dx[cols]))
            angles[angles < 0] += 360.0
            bins = np.floor(angles).astype(np.intp) % AZIMUTH_BINS
            azimuthal_sums += np.bincount(bins, weights=values[ring], minlength=AZIMUTH_BINS)
            azimuthal_counts += np.bincount(bins, minlength=AZIMUTH_BINS)

        # Radial: the one sqrt per sample
        radii = np.floor(np.sqrt(dist_sq)).astype(np.intp)
        inside = radii < max_r
        radial_sums += np.bincount(radii[inside], weights=values[inside], minlength=max_r)
        radial_counts += np.bincount(radii[inside], minlength=max_r)

    azimuthal = np.divide(
        azimuthal_sums,
        azimuthal_counts,
        out=np.zeros(AZIMUTH_BINS, dtype=np.float64),
        where=azimuthal_counts > 0,
    )
    radial = np.divide(
        radial_sums,
        radial_counts,
        out=np.zeros(max_r, dtype=np.float64),
        where=radial_counts > 0,
    )[1:]

    elapsed = (time.perf_counter() - start) * 1000.0
    logger.info(f"Combined profile scan ({width}x{height}): {elapsed:.1f}ms")

    return ScanResult(azimuthal=azimuthal, radial=radial, scan_ms=elapsed)


def smooth_azimuthal(profile: np.ndarray) -> np.ndarray:
    """Circular moving average over +/-SMOOTHING_HALF_WIDTH degrees, for charts."""
    data = np.asarray(profile, dtype=np.float64)
    if data.shape != (AZIMUTH_BINS,):
        raise ConfigurationError(
            f"Azimuthal profile must have {AZIMUTH_BINS} entries, got shape {data.shape}"
        )
    taps = range(-SMOOTHING_HALF_WIDTH, SMOOTHING_HALF_WIDTH + 1)
    return sum(np.roll(data, -offset) for offset in taps) / len(taps)
