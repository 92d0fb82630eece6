"""Interpreted radix-2 Cooley-Tukey FFT.

The 1D kernel transforms pairs of real/imaginary float arrays in place. It
operates along the last axis, so a 2D array is treated as a batch of
independent rows and every butterfly stage is applied to all rows at once.
The 2D composer builds the full transform from row passes followed by column
passes.
"""

import logging
from functools import lru_cache
from typing import Tuple

import numpy as np

from spectral_screener.errors import TransformPreconditionError

logger = logging.getLogger(__name__)

__all__ = [
    'is_power_of_two',
    'next_power_of_two',
    'bit_reversal_permutation',
    'fft1d',
    'fft2d',
    'complex_field',
]

# Rows (or columns) transformed per batch in fft2d; bounds temporary memory
TRANSFORM_BATCH_LINES = 256


def is_power_of_two(n: int) -> bool:
    """Return True if n is a positive integral power of two."""
    return isinstance(n, (int, np.integer)) and n > 0 and (n & (n - 1)) == 0


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (n must be positive)."""
    if n <= 0:
        raise ValueError(f"n must be positive, got {n}")
    return 1 << (int(n) - 1).bit_length()


@lru_cache(maxsize=32)
def bit_reversal_permutation(n: int) -> np.ndarray:
    """
    Compute the bit-reversal permutation for an n-point transform.

    Uses the incremental bit-flip technique: the reversed counter j is advanced
    by clearing its leading ones and setting the next zero, so no per-element
    bit-count loop is needed.

    Args:
        n: Transform length (power of two)

    Returns:
        Read-only index array where perm[i] is the bit-reversed index of i
    """
    perm = np.arange(n, dtype=np.intp)
    j = 0
    for i in range(n - 1):
        if i < j:
            perm[i], perm[j] = perm[j], perm[i]
        k = n >> 1
        while k <= j:
            j -= k
            k >>= 1
        j += k
    perm.setflags(write=False)
    return perm


def _check_pair(re: np.ndarray, im: np.ndarray) -> int:
    if re.shape != im.shape:
        raise TransformPreconditionError(
            f"Real and imaginary parts differ in shape: {re.shape} vs {im.shape}"
        )
    if re.ndim == 0:
        raise TransformPreconditionError("Cannot transform a 0-d array")
    n = re.shape[-1]
    if not is_power_of_two(n):
        raise TransformPreconditionError(
            f"Interpreted FFT requires a power-of-two length, got {n}"
        )
    return n


def fft1d(re: np.ndarray, im: np.ndarray) -> None:
    """
    In-place forward DFT along the last axis (decimation in time).

    Phase 1 reorders samples into bit-reversed order. Phase 2 runs log2(n)
    butterfly stages; at half-size ``step`` the twiddle increment is
    W = exp(-i*pi/step). Each stage's twiddle table is derived from the
    previous one by a single complex multiply per entry (even entries carry
    over, odd entries are the carried value times W), so only one cos/sin pair
    is evaluated per stage.

    Args:
        re: Real part, shape (..., n), modified in place
        im: Imaginary part, same shape as re, modified in place

    Raises:
        TransformPreconditionError: If n is not a power of two or shapes differ
    """
    n = _check_pair(re, im)
    if n == 1:
        return

    work_re = re if re.flags.c_contiguous else np.ascontiguousarray(re)
    work_im = im if im.flags.c_contiguous else np.ascontiguousarray(im)

    # Phase 1: bit-reversal permutation
    perm = bit_reversal_permutation(n)
    work_re[...] = work_re[..., perm]
    work_im[...] = work_im[..., perm]

    # Phase 2: butterflies
    lead = work_re.shape[:-1]
    wr = np.ones(1, dtype=work_re.dtype)
    wi = np.zeros(1, dtype=work_re.dtype)
    step = 1
    while step < n:
        jump = step * 2
        if step > 1:
            theta = -np.pi / step
            inc_r, inc_i = np.cos(theta), np.sin(theta)
            next_wr = np.empty(step, dtype=work_re.dtype)
            next_wi = np.empty(step, dtype=work_re.dtype)
            next_wr[0::2] = wr
            next_wi[0::2] = wi
            next_wr[1::2] = wr * inc_r - wi * inc_i
            next_wi[1::2] = wr * inc_i + wi * inc_r
            wr, wi = next_wr, next_wi

        blocks_re = work_re.reshape(lead + (n // jump, jump))
        blocks_im = work_im.reshape(lead + (n // jump, jump))
        a_re, b_re = blocks_re[..., :step], blocks_re[..., step:]
        a_im, b_im = blocks_im[..., :step], blocks_im[..., step:]

        tr = wr * b_re - wi * b_im
        ti = wr * b_im + wi * b_re
        b_re[...] = a_re - tr
        b_im[...] = a_im - ti
        a_re += tr
        a_im += ti

        step = jump

    if work_re is not re:
        re[...] = work_re
    if work_im is not im:
        im[...] = work_im


def fft2d(re: np.ndarray, im: np.ndarray, width: int, height: int) -> None:
    """
    In-place 2D DFT of a flat row-major complex field.

    Every row is transformed first, then every column of the row-transformed
    result. Rows and columns are processed in batches of
    TRANSFORM_BATCH_LINES to keep temporaries small on large fields.

    Args:
        re: Flat real part of length width*height (C-contiguous)
        im: Flat imaginary part, same length
        width: Field width (power of two)
        height: Field height (power of two)

    Raises:
        TransformPreconditionError: On non power-of-two dimensions or buffers
            that do not match width*height
    """
    if not (is_power_of_two(width) and is_power_of_two(height)):
        raise TransformPreconditionError(
            f"Interpreted 2D FFT requires power-of-two dimensions, got {width}x{height}"
        )
    if re.size != width * height or im.size != width * height:
        raise TransformPreconditionError(
            f"Field length {re.size}/{im.size} does not match {width}x{height}"
        )
    if not (re.flags.c_contiguous and im.flags.c_contiguous):
        raise TransformPreconditionError("Complex field buffers must be C-contiguous")

    grid_re = re.reshape(height, width)
    grid_im = im.reshape(height, width)

    for start in range(0, height, TRANSFORM_BATCH_LINES):
        stop = min(start + TRANSFORM_BATCH_LINES, height)
        fft1d(grid_re[start:stop], grid_im[start:stop])

    for start in range(0, width, TRANSFORM_BATCH_LINES):
        stop = min(start + TRANSFORM_BATCH_LINES, width)
        cols_re = np.ascontiguousarray(grid_re[:, start:stop].T)
        cols_im = np.ascontiguousarray(grid_im[:, start:stop].T)
        fft1d(cols_re, cols_im)
        grid_re[:, start:stop] = cols_re.T
        grid_im[:, start:stop] = cols_im.T

    logger.debug(f"Interpreted 2D FFT complete for {width}x{height} field")


def complex_field(samples: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Create a (real, imaginary) float64 field from a sample buffer."""
    re = np.array(samples, dtype=np.float64, copy=True).ravel()
    im = np.zeros_like(re)
    return re, im
