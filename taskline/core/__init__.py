"""Tier chain and orchestration."""

from taskline.core.orchestrator import Orchestrator
from taskline.core.tiers import (
    ExactTier,
    FallbackTier,
    FuzzyTier,
    ParseRequest,
    PatternTier,
    Tier,
    TierHit,
    build_tiers,
)

__all__ = [
    "ExactTier",
    "FallbackTier",
    "FuzzyTier",
    "Orchestrator",
    "ParseRequest",
    "PatternTier",
    "Tier",
    "TierHit",
    "build_tiers",
]
