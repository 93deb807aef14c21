"""
Error taxonomy for the performance pipeline.

    PipelineError (base)
    ├── ConfigurationError      - required credentials missing (fatal, before any fetch)
    └── UpstreamFetchError      - Shopify / Meta / SP-API returned non-success (fatal)
        └── RateLimitExceededError - signed call still 429 after bounded retries

Tracking lookups never raise out of the pipeline; they degrade to the
Shopify fallback status.
"""
from typing import Optional, Sequence


class PipelineError(Exception):
    """Base exception for pipeline failures surfaced to the caller."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ConfigurationError(PipelineError):
    """Required credentials or identifiers are not configured."""

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(
            "Server configuration error: API credentials missing.",
            ", ".join(self.missing),
        )


class UpstreamFetchError(PipelineError):
    """A must-have upstream (commerce, ads, marketplace) failed."""

    status_code = 502

    def __init__(self, source: str, message: str, upstream_status: Optional[int] = None):
        self.source = source
        self.upstream_status = upstream_status
        label = f"{source} API Error"
        if upstream_status is not None:
            label = f"{label} ({upstream_status})"
        super().__init__(label, message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["source"] = self.source
        data["upstreamStatus"] = self.upstream_status
        return data


class RateLimitExceededError(UpstreamFetchError):
    """Token-signed request kept receiving 429 after every retry."""

    def __init__(self, endpoint: str, attempts: int):
        self.endpoint = endpoint
        self.attempts = attempts
        super().__init__(
            "Amazon SP-API",
            f"Max retries exceeded for {endpoint}. The API is still rate-limiting.",
            upstream_status=429,
        )
