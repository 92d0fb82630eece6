"""Exception taxonomy for spectral analysis."""

__all__ = [
    'SpectralScreenerError',
    'ConfigurationError',
    'AccelerationUnavailable',
    'TransformPreconditionError',
    'BackgroundExecutionFailure',
]


class SpectralScreenerError(Exception):
    """Base class for all errors raised by spectral_screener."""


class ConfigurationError(SpectralScreenerError, ValueError):
    """Invalid dimensions, buffer sizes or option values supplied by the caller."""


class AccelerationUnavailable(SpectralScreenerError):
    """The native FFT backend could not be initialized on this platform."""


class TransformPreconditionError(SpectralScreenerError, AssertionError):
    """The interpreted FFT kernel was handed a length that is not a power of two.

    This is an internal invariant violation: the backend dispatcher must never
    route such a request to the interpreted path.
    """


class BackgroundExecutionFailure(SpectralScreenerError):
    """A scan or remap job failed inside a background execution context."""

    def __init__(self, kind: str, request_id: int, cause: BaseException):
        super().__init__(f"{kind} job for request {request_id} failed: {cause!r}")
        self.kind = kind
        self.request_id = request_id
        self.cause = cause
