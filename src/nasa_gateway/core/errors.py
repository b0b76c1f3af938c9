from __future__ import annotations

from typing import Optional


class NasaGatewayError(Exception):
    """Base class for errors raised by the gateway."""


class ConfigurationError(NasaGatewayError):
    """Required configuration (such as the API key) is missing or invalid."""


class ValidationError(NasaGatewayError):
    """Caller input was rejected before any upstream call was made."""


class UpstreamError(NasaGatewayError):
    def __init__(self, status: Optional[int], body: str, *, url: str = "") -> None:
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"Upstream request failed. status={status} url={url} body={body[:200]}")


class UpstreamAuthError(UpstreamError):
    """Upstream rejected the API key (401/403)."""


class RateLimited(UpstreamError):
    """Upstream kept answering 429 after every retry attempt was used."""

    def __init__(self, *, url: str, attempts: int, retry_after: float, body: str = "") -> None:
        self.attempts = attempts
        self.retry_after = retry_after
        super().__init__(429, body, url=url)


class PartialReconciliationFailure(NasaGatewayError):
    """A single period could not be persisted. Recorded, never raised out of a batch."""

    def __init__(self, parent_identity: str, period_key: int, cause: BaseException) -> None:
        self.parent_identity = parent_identity
        self.period_key = period_key
        self.cause = cause
        super().__init__(
            f"Failed to reconcile period. parent={parent_identity} period={period_key} error={cause}"
        )
