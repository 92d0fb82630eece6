"""Polar remapping and RGBA rendering of centered magnitude fields."""

import logging
import time
from functools import lru_cache
from typing import NamedTuple, Optional, Tuple

import numpy as np
from pydantic import Field, field_validator
from pydantic.dataclasses import dataclass

from spectral_screener.colormap import COLORMAPS, get_colormap
from spectral_screener.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ['PolarImage', 'PolarRemapper', 'estimate_ceiling', 'render_spectrogram']

CEILING_SAMPLE_DRAWS = 1000  # Random draws used to estimate the normalization ceiling
POLAR_GAMMA = 0.8

SPECTROGRAM_EXACT_LIMIT = 1_000_000  # Larger fields use a sampled percentile
SPECTROGRAM_SAMPLE_DRAWS = 10_000
SPECTROGRAM_PERCENTILE = 0.99


class PolarImage(NamedTuple):
    """RGBA polar rendering. Row 0 is the largest radius; the last row is DC."""

    pixels: np.ndarray  # (height, width, 4) uint8
    width: int
    height: int
    ceiling: float  # Normalization ceiling used for this render
    remap_ms: float


@lru_cache(maxsize=16)
def _angle_tables(output_width: int) -> Tuple[np.ndarray, np.ndarray]:
    """cos/sin of theta = (ox / output_width) * 2*pi, one entry per output column."""
    theta = np.arange(output_width, dtype=np.float64) / output_width * 2.0 * np.pi
    cos_table = np.cos(theta)
    sin_table = np.sin(theta)
    cos_table.setflags(write=False)
    sin_table.setflags(write=False)
    return cos_table, sin_table


def estimate_ceiling(
    values: np.ndarray,
    draws: int = CEILING_SAMPLE_DRAWS,
    rng: Optional[np.random.Generator] = None,
) -> float:
    """
    Approximate the field maximum from a bounded random sample.

    This is an estimate only, used for display normalization; it never feeds
    the deterministic profiles.

    Returns:
        The largest sampled value, or 1.0 if it is not positive
    """
    flat = np.ravel(values)
    if flat.size == 0:
        return 1.0
    rng = rng if rng is not None else np.random.default_rng()
    sample = flat[rng.integers(0, flat.size, size=draws)]
    ceiling = float(np.max(sample))
    if not np.isfinite(ceiling) or ceiling <= 0:
        return 1.0
    return ceiling


def _validate_field(magnitude: np.ndarray, width: int, height: int) -> np.ndarray:
    if width <= 0 or height <= 0:
        raise ConfigurationError(f"Dimensions must be positive, got {width}x{height}")
    if np.size(magnitude) != width * height:
        raise ConfigurationError(
            f"Magnitude field of length {np.size(magnitude)} does not match {width}x{height}"
        )
    return np.reshape(magnitude, (height, width))


@dataclass
class PolarRemapper:
    """Resamples a centered field into an (angle x radius) raster."""

    gamma: float = Field(default=POLAR_GAMMA, gt=0.0)
    sample_draws: int = Field(default=CEILING_SAMPLE_DRAWS, gt=0)
    seed: Optional[int] = None
    colormap: str = "magma"

    @field_validator("colormap")
    @classmethod
    def validate_colormap(cls, v: str) -> str:
        """Colormap must be registered."""
        if v not in COLORMAPS:
            raise ValueError(f"Unknown colormap {v!r}; expected one of {sorted(COLORMAPS)}")
        return v

    def remap(
        self,
        magnitude: np.ndarray,
        width: int,
        height: int,
        output_width: int,
        output_height: int,
    ) -> PolarImage:
        """
        Render the polar view of a centered magnitude field.

        Output column ox maps to theta = (ox / output_width) * 2*pi and output
        band oy to radius = (oy / output_height) * min(width, height) / 2.
        Source samples are looked up nearest-neighbour (floor), normalized
        against a sampled ceiling, raised to ``gamma`` and colormapped. Bands
        are written bottom-up so row 0 holds the largest radius.

        Args:
            magnitude: Centered (visual) magnitude field
            width: Field width
            height: Field height
            output_width: Angle columns in the output
            output_height: Radius rows in the output

        Returns:
            PolarImage
        """
        grid = _validate_field(magnitude, width, height)
        if output_width <= 0 or output_height <= 0:
            raise ConfigurationError(
                f"Output dimensions must be positive, got {output_width}x{output_height}"
            )

        start = time.perf_counter()
        cx, cy = width // 2, height // 2
        max_r = min(width, height) / 2

        rng = np.random.default_rng(self.seed)
        ceiling = estimate_ceiling(grid, self.sample_draws, rng)

        cos_table, sin_table = _angle_tables(output_width)
        radii = np.arange(output_height, dtype=np.float64) / output_height * max_r

        px = np.floor(cx + radii[:, np.newaxis] * cos_table[np.newaxis, :]).astype(np.intp)
        py = np.floor(cy + radii[:, np.newaxis] * sin_table[np.newaxis, :]).astype(np.intp)
        valid = (px >= 0) & (px < width) & (py >= 0) & (py < height)

        values = np.zeros((output_height, output_width), dtype=np.float64)
        values[valid] = grid[py[valid], px[valid]]

        t = np.clip(values / ceiling, 0.0, 1.0) ** self.gamma
        rgb = get_colormap(self.colormap)(t)

        pixels = np.empty((output_height, output_width, 4), dtype=np.uint8)
        pixels[..., :3] = rgb[::-1]
        pixels[..., 3] = 255

        elapsed = (time.perf_counter() - start) * 1000.0
        logger.info(
            f"Polar remap {output_width}x{output_height} from {width}x{height} field: "
            f"{elapsed:.1f}ms (ceiling={ceiling:.4g})"
        )

        return PolarImage(
            pixels=pixels,
            width=output_width,
            height=output_height,
            ceiling=ceiling,
            remap_ms=elapsed,
        )


def render_spectrogram(
    magnitude: np.ndarray,
    width: int,
    height: int,
    seed: Optional[int] = None,
    colormap: str = "magma",
) -> np.ndarray:
    """
    Render a centered magnitude field as an RGBA image.

    Values are normalized between the minimum and the 99th percentile. Fields
    up to SPECTROGRAM_EXACT_LIMIT samples use an exact sort; larger fields use
    a random sample of SPECTROGRAM_SAMPLE_DRAWS values.

    Returns:
        (height, width, 4) uint8 array
    """
    grid = _validate_field(magnitude, width, height)
    flat = grid.ravel()

    if flat.size > SPECTROGRAM_EXACT_LIMIT:
        rng = np.random.default_rng(seed)
        ordered = np.sort(flat[rng.integers(0, flat.size, size=SPECTROGRAM_SAMPLE_DRAWS)])
        logger.debug(f"Spectrogram normalization from {SPECTROGRAM_SAMPLE_DRAWS} samples")
    else:
        ordered = np.sort(flat)

    low = float(ordered[0])
    high = float(ordered[int(ordered.size * SPECTROGRAM_PERCENTILE)]) or 1.0
    span = high - low if high != low else 1.0

    t = np.clip((grid.astype(np.float64) - low) / span, 0.0, 1.0)
    rgb = get_colormap(colormap)(t)

    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = rgb
    pixels[..., 3] = 255
    return pixels
