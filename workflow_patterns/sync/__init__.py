"""Registry client and push/pull orchestration."""

from workflow_patterns.sync.rate_limit import RateLimitTracker
from workflow_patterns.sync.registry_client import (
    Pagination,
    PullResponse,
    PushResponse,
    RateLimitInfo,
    RegistryClient,
    RegistryPattern,
)
from workflow_patterns.sync.service import PullSummary, PushSummary, SyncService

__all__ = [
    "Pagination",
    "PullResponse",
    "PullSummary",
    "PushResponse",
    "PushSummary",
    "RateLimitInfo",
    "RateLimitTracker",
    "RegistryClient",
    "RegistryPattern",
    "SyncService",
]
