"""Tests for the grid anomaly score."""

import numpy as np
import pytest

from spectral_screener.errors import ConfigurationError
from spectral_screener.scoring import cardinal_ratios, score_grid_anomaly


def test_flat_profile_scores_one():
    """Test that a uniform profile has no cardinal prominence."""
    ratios = cardinal_ratios(np.full(360, 3.0))

    assert set(ratios) == {0, 90, 180, 270}
    assert all(ratio == pytest.approx(1.0) for ratio in ratios.values())
    assert score_grid_anomaly(np.full(360, 3.0)) == pytest.approx(1.0)


def test_zero_profile_scores_zero():
    """Test that a zero background contributes a ratio of 0."""
    assert score_grid_anomaly(np.zeros(360)) == 0.0


def test_single_cardinal_peak():
    """Test peak/background ratio at one cardinal angle."""
    profile = np.ones(360)
    profile[91] = 8.0

    ratios = cardinal_ratios(profile)

    assert ratios[90] == pytest.approx(8.0)
    assert ratios[0] == pytest.approx(1.0)
    assert score_grid_anomaly(profile) == pytest.approx(8.0)


def test_peak_outside_window_is_ignored():
    """Test that energy 3 degrees off-axis is neither peak nor background."""
    profile = np.ones(360)
    profile[183] = 50.0

    ratios = cardinal_ratios(profile)

    assert ratios[180] == pytest.approx(1.0)


def test_background_wraps_around_zero():
    """Test circular indexing of the window around 0 degrees."""
    profile = np.ones(360)
    profile[350:356] = 2.0  # offsets -10 .. -5 from 0 degrees

    ratios = cardinal_ratios(profile)

    # 24 background offsets, 6 of them doubled
    assert ratios[0] == pytest.approx(1.0 / (30.0 / 24.0))


def test_nonfinite_background_scores_zero():
    """Test that a non-finite background yields a zero ratio."""
    profile = np.ones(360)
    profile[280] = np.inf

    ratios = cardinal_ratios(profile)

    assert ratios[270] == 0.0
    assert ratios[90] == pytest.approx(1.0)


def test_profile_length_is_checked():
    """Test rejection of profiles that do not have 360 bins."""
    with pytest.raises(ConfigurationError, match="360"):
        score_grid_anomaly(np.ones(180))
