"""Analysis configuration surface."""

import logging
from typing import Any, Literal, Mapping, Union

from pydantic import Field, ValidationError, field_validator
from pydantic.dataclasses import dataclass

from spectral_screener.errors import ConfigurationError
from spectral_screener.fft import is_power_of_two

logger = logging.getLogger(__name__)

__all__ = [
    'AnalysisConfig',
    'parse_config',
    'MAX_FFT_SIZE',
    'MIN_AUTO_FFT_SIZE',
    'ENGINE_CHOICES',
    'SIGNAL_CHOICES',
    'CHANNEL_CHOICES',
]

MAX_FFT_SIZE = 8192  # Largest transform dimension accepted on either backend
MIN_AUTO_FFT_SIZE = 512  # Smallest square size picked for "native" on the interpreted path
MAX_OUTPUT_SIZE = 4096  # Largest polar render dimension

ENGINE_CHOICES = ("auto", "native", "interpreted")
SIGNAL_CHOICES = ("raw", "laplacian")
CHANNEL_CHOICES = ("red", "green", "blue", "luma")

# Option names accepted by parse_config in addition to the field names
_OPTION_ALIASES = {
    "fftSize": "fft_size",
    "logScale": "log_scale",
    "suppressDc": "suppress_dc",
    "polarWidth": "polar_width",
    "polarHeight": "polar_height",
}


@dataclass
class AnalysisConfig:
    """Options recognized by the spectral analysis pipeline."""

    fft_size: Union[Literal["native"], int] = "native"
    signal: Literal["raw", "laplacian"] = "laplacian"
    channel: Literal["red", "green", "blue", "luma"] = "blue"
    window: bool = False
    log_scale: bool = False
    engine: Literal["auto", "native", "interpreted"] = "auto"
    polar_width: int = Field(default=400, gt=0, le=MAX_OUTPUT_SIZE)
    polar_height: int = Field(default=300, gt=0, le=MAX_OUTPUT_SIZE)
    suppress_dc: bool = False

    @field_validator("fft_size")
    @classmethod
    def validate_fft_size(cls, v: Union[str, int]) -> Union[str, int]:
        """Explicit sizes must be powers of two no larger than MAX_FFT_SIZE."""
        if v == "native":
            return v
        if not is_power_of_two(v):
            raise ValueError(f"fft_size must be 'native' or a power of two, got {v}")
        if v > MAX_FFT_SIZE:
            raise ValueError(f"fft_size {v} exceeds maximum of {MAX_FFT_SIZE}")
        return v


def parse_config(options: Mapping[str, Any]) -> AnalysisConfig:
    """
    Build an AnalysisConfig from a plain option mapping.

    Accepts both field names and the camelCase option names (``fftSize``,
    ``logScale``, ...).

    Args:
        options: Option name to value mapping

    Returns:
        Validated AnalysisConfig

    Raises:
        ConfigurationError: On unknown option names or invalid values
    """
    normalized = {}
    for key, value in options.items():
        name = _OPTION_ALIASES.get(key, key)
        if name not in AnalysisConfig.__dataclass_fields__:
            raise ConfigurationError(f"Unknown analysis option: {key!r}")
        normalized[name] = value

    try:
        config = AnalysisConfig(**normalized)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid analysis options: {e}") from e

    logger.debug(f"Parsed analysis config: {config}")
    return config
