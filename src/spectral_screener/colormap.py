"""Colormap lookups mapping normalized intensities to RGB bytes."""

from functools import lru_cache
from typing import Callable, Dict

import numpy as np
from matplotlib import colormaps

__all__ = ['magma', 'magma_approx', 'get_colormap', 'COLORMAPS']

LUT_SIZE = 256

# Stops of the three-segment magma approximation: (t, (r, g, b))
_MAGMA_STOPS = (
    (0.00, (0.0, 0.0, 0.0)),
    (0.33, (63.0, 15.0, 114.0)),
    (0.66, (252.0, 103.0, 93.0)),
    (1.00, (252.0, 253.0, 191.0)),
)


@lru_cache(maxsize=8)
def _matplotlib_lut(name: str) -> np.ndarray:
    rgba = colormaps[name](np.linspace(0.0, 1.0, LUT_SIZE))
    lut = np.rint(rgba[:, :3] * 255.0).astype(np.uint8)
    lut.setflags(write=False)
    return lut


def magma(t: np.ndarray) -> np.ndarray:
    """Map t in [0, 1] to RGB with matplotlib's magma table (values are clipped)."""
    t = np.clip(np.nan_to_num(np.asarray(t, dtype=np.float64)), 0.0, 1.0)
    index = np.rint(t * (LUT_SIZE - 1)).astype(np.intp)
    return _matplotlib_lut("magma")[index]


def magma_approx(t: np.ndarray) -> np.ndarray:
    """Map t in [0, 1] to RGB with a piecewise-linear magma approximation."""
    t = np.clip(np.nan_to_num(np.asarray(t, dtype=np.float64)), 0.0, 1.0)
    positions = [stop for stop, _ in _MAGMA_STOPS]
    channels = [
        np.interp(t, positions, [color[c] for _, color in _MAGMA_STOPS])
        for c in range(3)
    ]
    return np.rint(np.stack(channels, axis=-1)).astype(np.uint8)


COLORMAPS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "magma": magma,
    "magma_approx": magma_approx,
}


def get_colormap(name: str) -> Callable[[np.ndarray], np.ndarray]:
    """Look up a colormap function by name."""
    try:
        return COLORMAPS[name]
    except KeyError:
        raise ValueError(
            f"Unknown colormap {name!r}; expected one of {sorted(COLORMAPS)}"
        ) from None
