"""Custom exception types."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every typed failure the processing pipeline reports."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(PipelineError):
    """Raised when stored configuration cannot be used as-is."""


class ConfigurationNotFoundError(ConfigurationError):
    """Raised when no active, enabled credential exists."""

    def __init__(self, message: str = "no active AI configuration found") -> None:
        super().__init__(message)


class NoCandidateError(ConfigurationError):
    """Raised when the rotation pool has no enabled credential."""

    def __init__(self, message: str = "no configurations available") -> None:
        super().__init__(message)


class ProviderCallError(PipelineError):
    """Raised when a vendor call fails.

    The string form carries the HTTP status and raw body so the rate-limit
    classifier can inspect it.
    """

    def __init__(
        self,
        provider_id: str,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider_id = provider_id
        self.status_code = status_code
        self.body = body


class RateLimitExhaustedError(PipelineError):
    """Raised when rate limiting could not be escaped by rotating credentials."""


class RetriesExhaustedError(RateLimitExhaustedError):
    def __init__(self, max_retries: int) -> None:
        super().__init__(
            f"retry limit reached ({max_retries} rotations); stop processing and wait "
            "for provider quotas to reset"
        )
        self.max_retries = max_retries


class CredentialPoolExhaustedError(RateLimitExhaustedError):
    def __init__(self, tried: int, detail: str | None = None) -> None:
        message = (
            f"all available credentials are rate limited ({tried} tried); wait for the "
            "quotas to reset or activate another credential manually"
        )
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.tried = tried


class ResponseFormatError(PipelineError):
    """Raised when the AI output is not canonical-shaped JSON."""


class PayloadValidationError(PipelineError):
    """Raised when an extracted record violates a domain acceptance rule."""

    def __init__(self, message: str, *, index: int | None = None, field: str | None = None) -> None:
        super().__init__(message)
        self.index = index
        self.field = field


class SinkError(PipelineError):
    """Raised when the structured-data sink rejects a record."""
