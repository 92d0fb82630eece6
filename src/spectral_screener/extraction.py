"""Sample buffer extraction from decoded images."""

import logging
from pathlib import Path
from typing import Literal, Union

import numpy as np
from PIL import Image
from pydantic.dataclasses import dataclass
from scipy.signal import convolve2d, windows

from spectral_screener.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ['SignalExtractor', 'SUPPORTED_FORMATS']

SUPPORTED_FORMATS = (".jpg", ".jpeg", ".png", ".webp", ".bmp")

CHANNEL_INDEX = {"red": 0, "green": 1, "blue": 2}
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)

# 8-neighbour Laplacian: 8 * center - sum of the surrounding ring
LAPLACIAN_KERNEL = np.array(
    [[-1.0, -1.0, -1.0], [-1.0, 8.0, -1.0], [-1.0, -1.0, -1.0]], dtype=np.float32
)


@dataclass
class SignalExtractor:
    """Turns a decoded RGB image into a flat float32 sample buffer."""

    channel: Literal["red", "green", "blue", "luma"] = "blue"
    signal: Literal["raw", "laplacian"] = "laplacian"
    window: bool = False

    def load_rgb(self, image_path: Union[str, Path]) -> np.ndarray:
        """
        Load an image from disk as RGB.

        Args:
            image_path: Path to the image file (.jpg, .png, .webp, .bmp)

        Returns:
            (H, W, 3) uint8 array
        """
        path = Path(image_path)
        if not path.exists():
            raise FileNotFoundError(f"Image not found: {image_path}")

        if path.suffix.lower() not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported image format: {path.suffix}")

        logger.debug(f"Loading image: {image_path}")
        try:
            with Image.open(path) as img:
                img.verify()
            # verify() leaves the file unusable, reopen for decoding
            with Image.open(path) as img:
                rgb = np.array(img.convert("RGB"), dtype=np.uint8)
        except Exception as e:
            raise ValueError(f"Failed to load or verify image {image_path}: {e}")

        return rgb

    def resize(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        """Resample an (H, W[, C]) uint8 image to width x height (bilinear)."""
        if image.shape[1] == width and image.shape[0] == height:
            return image
        resized = Image.fromarray(image).resize((width, height), Image.Resampling.BILINEAR)
        logger.debug(f"Resized image from {image.shape[1]}x{image.shape[0]} to {width}x{height}")
        return np.array(resized)

    def select_channel(self, image: np.ndarray) -> np.ndarray:
        """Pick the configured channel (or luma) as a float32 (H, W) array."""
        if image.ndim == 2:
            return image.astype(np.float32)
        if image.ndim != 3 or image.shape[2] < 3:
            raise ConfigurationError(
                f"Expected a grayscale or RGB(A) image, got shape {image.shape}"
            )
        if self.channel == "luma":
            return image[..., :3].astype(np.float32) @ LUMA_WEIGHTS
        return image[..., CHANNEL_INDEX[self.channel]].astype(np.float32)

    def apply_laplacian(self, samples: np.ndarray) -> np.ndarray:
        """High-pass the interior samples; border samples keep their raw values."""
        filtered = samples.copy()
        if samples.shape[0] >= 3 and samples.shape[1] >= 3:
            filtered[1:-1, 1:-1] = convolve2d(samples, LAPLACIAN_KERNEL, mode="valid")
        return filtered

    def apply_window(self, samples: np.ndarray) -> np.ndarray:
        """Multiply by a separable symmetric Hann window."""
        height, width = samples.shape
        window_y = windows.hann(height).astype(np.float32)
        window_x = windows.hann(width).astype(np.float32)
        return samples * window_y[:, np.newaxis] * window_x[np.newaxis, :]

    def to_uint8(self, image: np.ndarray) -> np.ndarray:
        """
        Convert an image to uint8 without silently discarding its range.

        Integer (and boolean) images are taken as 0..255 values. Float images
        are taken as intensities in [0, 1] and scaled by 255.

        Raises:
            ConfigurationError: If values fall outside that range or are not finite
        """
        if image.dtype == np.uint8:
            return image
        if image.dtype == np.bool_:
            return image.astype(np.uint8) * 255
        if np.issubdtype(image.dtype, np.integer):
            low, high = int(image.min()), int(image.max())
            if low < 0 or high > 255:
                raise ConfigurationError(
                    f"Integer image values must lie in [0, 255], got [{low}, {high}]"
                )
            return image.astype(np.uint8)
        if np.issubdtype(image.dtype, np.floating):
            if not np.all(np.isfinite(image)):
                raise ConfigurationError("Float image contains non-finite values")
            low, high = float(image.min()), float(image.max())
            if low < 0.0 or high > 1.0:
                raise ConfigurationError(
                    f"Float image values must lie in [0, 1], got [{low:.4g}, {high:.4g}]"
                )
            return np.rint(image * 255.0).astype(np.uint8)
        raise ConfigurationError(f"Unsupported image dtype: {image.dtype}")

    def extract(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        """
        Complete extraction: resize, channel selection, filtering, windowing.

        Args:
            image: Decoded (H, W, 3|4) or (H, W) image. Integer images must hold
                values in [0, 255]; float images must be scaled to [0, 1]
            width: Target sample width
            height: Target sample height

        Returns:
            Read-only flat float32 buffer of length width*height

        Raises:
            ConfigurationError: On empty images, non-positive targets, or pixel
                values outside the range implied by the dtype
        """
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"Target dimensions must be positive, got {width}x{height}")
        image = np.asarray(image)
        if image.size == 0:
            raise ConfigurationError("Image array is empty")
        image = self.to_uint8(image)

        samples = self.select_channel(self.resize(image, width, height))
        if self.signal == "laplacian":
            samples = self.apply_laplacian(samples)
        if self.window:
            samples = self.apply_window(samples)

        buffer = np.ascontiguousarray(samples, dtype=np.float32).ravel()
        buffer.setflags(write=False)
        logger.debug(
            f"Extracted {width}x{height} samples (channel={self.channel}, "
            f"signal={self.signal}, window={self.window})"
        )
        return buffer
