"""Grid anomaly score from the azimuthal profile."""

import logging
from typing import Dict

import numpy as np

from spectral_screener.errors import ConfigurationError
from spectral_screener.profiles import AZIMUTH_BINS

logger = logging.getLogger(__name__)

__all__ = ['score_grid_anomaly', 'cardinal_ratios']

CARDINAL_ANGLES = (0, 90, 180, 270)
PEAK_HALF_WIDTH = 2  # Peak = max over angle +/- 2 degrees
BACKGROUND_HALF_WIDTH = 15  # Background = mean over angle +/- 15 degrees ...
BACKGROUND_EXCLUSION = 3  # ... skipping offsets within +/- 3 degrees of the peak

_PEAK_OFFSETS = np.arange(-PEAK_HALF_WIDTH, PEAK_HALF_WIDTH + 1)
_BACKGROUND_OFFSETS = np.array(
    [
        offset
        for offset in range(-BACKGROUND_HALF_WIDTH, BACKGROUND_HALF_WIDTH + 1)
        if abs(offset) > BACKGROUND_EXCLUSION
    ]
)


def cardinal_ratios(profile: np.ndarray) -> Dict[int, float]:
    """
    Peak-to-local-background ratio at each cardinal angle.

    Args:
        profile: Raw (linear) azimuthal profile with 360 entries

    Returns:
        Mapping of angle in degrees to ratio. A ratio whose background is zero
        or not finite is reported as 0.0.

    Raises:
        ConfigurationError: If the profile does not have 360 entries
    """
    data = np.asarray(profile, dtype=np.float64)
    if data.shape != (AZIMUTH_BINS,):
        raise ConfigurationError(
            f"Azimuthal profile must have {AZIMUTH_BINS} entries, got shape {data.shape}"
        )

    ratios = {}
    for angle in CARDINAL_ANGLES:
        peak = float(np.max(data[(angle + _PEAK_OFFSETS) % AZIMUTH_BINS]))
        background = float(np.mean(data[(angle + _BACKGROUND_OFFSETS) % AZIMUTH_BINS]))
        if background > 0 and np.isfinite(background) and np.isfinite(peak):
            ratios[angle] = peak / background
        else:
            ratios[angle] = 0.0
    return ratios


def score_grid_anomaly(profile: np.ndarray) -> float:
    """
    Score periodic grid artifacts from an azimuthal profile.

    Returns the largest cardinal peak/background ratio. Higher values indicate
    a stronger axis-aligned grid; a flat profile scores about 1.0 and an
    all-zero profile scores 0.0.
    """
    ratios = cardinal_ratios(profile)
    score = max(ratios.values())
    logger.debug(
        "Grid prominence ratios: "
        + ", ".join(f"{angle}deg={ratio:.2f}" for angle, ratio in ratios.items())
    )
    logger.info(f"Grid prominence score: {score:.2f}x")
    return score
