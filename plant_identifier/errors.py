"""
Exception types for the plant identification pipeline.

Client input problems (`ImageValidationError`) surface as HTTP 400. Upstream
failures are recovered inside the Gemini client and only escape as
`AllModelsExhausted`, which the API maps to HTTP 503.
"""
from typing import Optional


class PlantIdentifierError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(PlantIdentifierError):
    """Raised at startup when required settings are missing or invalid."""


class ImageValidationError(PlantIdentifierError):
    """Uploaded file rejected before any network call."""


class InvalidMediaType(ImageValidationError):
    def __init__(self, mime_type: str, allowed):
        self.mime_type = mime_type
        self.allowed = tuple(allowed)
        super().__init__(
            f"Unsupported image format '{mime_type or 'unknown'}'. "
            f"Supported formats: {', '.join(self.allowed)}"
        )


class PayloadTooLarge(ImageValidationError):
    def __init__(self, size: int, max_bytes: int):
        self.size = size
        self.max_bytes = max_bytes
        limit_mb = max_bytes / (1024 * 1024)
        super().__init__(f"Image file too large. Maximum size is {limit_mb:g}MB.")


class EmptyPayload(ImageValidationError):
    def __init__(self):
        super().__init__("Uploaded image is empty")


class UpstreamError(PlantIdentifierError):
    """A single failed attempt against the inference endpoint."""

    def __init__(self, model: str, message: str, status_code: Optional[int] = None):
        self.model = model
        self.status_code = status_code
        super().__init__(message)


class RetryableUpstreamFailure(UpstreamError):
    """HTTP 429/503: the model is overloaded or rate limited."""


class ModelNotFound(UpstreamError):
    """HTTP 404: the model identifier is not served by the endpoint."""


class UpstreamHTTPError(UpstreamError):
    """Any other non-2xx status or a transport failure."""


class AllModelsExhausted(PlantIdentifierError):
    """Every configured model failed, or the time budget ran out."""

    def __init__(self, message: str, last_error: Optional[Exception] = None, attempts: int = 0):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(message)


class NoRecoverableJson(PlantIdentifierError):
    """No repair strategy produced a JSON object from the model output."""

    def __init__(self, reasons):
        self.reasons = list(reasons)
        super().__init__("No JSON object could be recovered: " + "; ".join(self.reasons))
