"""
Error taxonomy for the chunk-relay pipeline.

Only RateLimited is retried automatically (by the API client). Everything
else propagates: chunk-level failures are folded into the combined output by
the processor, file-level failures surface as FileProcessingError.
"""


class RelayError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(RelayError):
    """Endpoint or credential missing. Fatal, never retried."""


class TokenLimitExceeded(RelayError):
    """The remote service rejected prompt + content as too large for its context."""


class RateLimited(RelayError):
    """HTTP 429 from the remote service."""

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamError(RelayError):
    """Non-2xx response or malformed response body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(RelayError):
    """Request was sent but no response came back."""


class ReadWriteError(RelayError):
    """Reading the input or writing the output failed."""


class FileProcessingError(RelayError):
    """A file could not be processed end to end."""
