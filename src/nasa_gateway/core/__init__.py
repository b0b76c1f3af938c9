"""Domain types and error taxonomy shared by every layer."""

from nasa_gateway.core.errors import (
    ConfigurationError,
    NasaGatewayError,
    PartialReconciliationFailure,
    RateLimited,
    UpstreamAuthError,
    UpstreamError,
    ValidationError,
)
from nasa_gateway.core.models import (
    KNOWN_ROVERS,
    Apod,
    CacheEntry,
    IssPosition,
    Item,
    ManifestPayload,
    ManifestRecord,
    NearEarthObject,
    ParentEntity,
    PeriodResult,
    ReconcileOutcome,
    ReconcilePlan,
)

__all__ = [
    "KNOWN_ROVERS",
    "Apod",
    "CacheEntry",
    "ConfigurationError",
    "IssPosition",
    "Item",
    "ManifestPayload",
    "ManifestRecord",
    "NasaGatewayError",
    "NearEarthObject",
    "ParentEntity",
    "PartialReconciliationFailure",
    "PeriodResult",
    "RateLimited",
    "ReconcileOutcome",
    "ReconcilePlan",
    "UpstreamAuthError",
    "UpstreamError",
    "ValidationError",
]
