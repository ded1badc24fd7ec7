"""
Section freshness, request coalescing, and stale-while-revalidate.
"""
from .core import CacheSource, RefreshDecision, SectionState
from .freshness import (
    SECTION_POLICIES,
    FreshnessPolicy,
    RefreshRule,
    get_max_age_days,
)
from .coalescer import RequestCoalescer
from .manager import RevalidationCoordinator

__all__ = [
    # Core types
    "CacheSource",
    "RefreshDecision",
    "SectionState",
    # Freshness
    "SECTION_POLICIES",
    "FreshnessPolicy",
    "RefreshRule",
    "get_max_age_days",
    # Coalescing
    "RequestCoalescer",
    # Coordinator
    "RevalidationCoordinator",
]
