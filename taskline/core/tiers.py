"""
Interpretation tiers.

Each tier exposes one capability, ``attempt(request)``, returning a
:class:`TierHit` or ``None`` to pass the request down the chain.  The
orchestrator evaluates an ordered list of tiers built from
``pipeline.tiers`` in settings, so reordering or disabling a tier is a
configuration change.

Tiers never write to the cache; write-back belongs to the orchestrator.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol

from taskline.cache.exact import ExactCache
from taskline.cache.fuzzy import FuzzyMatcher
from taskline.exceptions import ConfigurationError
from taskline.fallback.client import FallbackClient
from taskline.models import ParsedResult, SourceTier
from taskline.patterns.engine import PatternEngine

logger = logging.getLogger(__name__)


@dataclass
class ParseRequest:
    """Per-request state handed from tier to tier.

    Attributes:
        raw_text: The input as typed.
        key: Its normalised cache key.
        partial: The pattern engine's output when it was insufficient.
    """

    raw_text: str
    key: str
    partial: Optional[ParsedResult] = None


@dataclass
class TierHit:
    """A tier's answer.

    Attributes:
        result: The parsed result, tagged with the producing tier.
        matched_key: For fuzzy hits, the cached key that was matched.
    """

    result: ParsedResult
    matched_key: Optional[str] = None


class Tier(Protocol):
    name: str

    async def attempt(self, request: ParseRequest) -> Optional[TierHit]:
        ...


class ExactTier:
    """Tier 1: exact lookup by normalised key."""

    name = SourceTier.EXACT.value

    def __init__(self, cache: ExactCache) -> None:
        self._cache = cache

    async def attempt(self, request: ParseRequest) -> Optional[TierHit]:
        cached = self._cache.get(request.key)
        if cached is None:
            return None
        return TierHit(result=cached.with_tier(SourceTier.EXACT))


class FuzzyTier:
    """Tier 2: near-duplicate lookup over cached keys."""

    name = SourceTier.FUZZY.value

    def __init__(self, matcher: FuzzyMatcher) -> None:
        self._matcher = matcher

    async def attempt(self, request: ParseRequest) -> Optional[TierHit]:
        match = self._matcher.find(request.key)
        if match is None:
            return None
        return TierHit(
            result=match.result.with_tier(SourceTier.FUZZY),
            matched_key=match.matched_key,
        )


class PatternTier:
    """Tier 3: deterministic extraction.

    An insufficient extraction is left on the request for the fallback
    tier and the chain continues.
    """

    name = SourceTier.PATTERN.value

    def __init__(self, engine: PatternEngine) -> None:
        self._engine = engine

    async def attempt(self, request: ParseRequest) -> Optional[TierHit]:
        extraction = self._engine.extract(request.raw_text)
        if extraction.sufficient:
            return TierHit(result=extraction.result)
        request.partial = extraction.result
        logger.debug("Pattern extraction insufficient", extra={"cache_key": request.key[:40]})
        return None


class FallbackTier:
    """Tier 4: slow interpretation.  Always answers, possibly degraded."""

    name = SourceTier.FALLBACK.value

    def __init__(self, client: FallbackClient) -> None:
        self._client = client

    async def attempt(self, request: ParseRequest) -> Optional[TierHit]:
        partial = request.partial or bare_result(request.raw_text)
        result = await self._client.interpret(request.raw_text, partial)
        return TierHit(result=result)


def bare_result(raw_text: str) -> ParsedResult:
    """Result used when nothing was extracted: the whole input as title."""
    return ParsedResult(
        title=" ".join(raw_text.split()),
        source_tier=SourceTier.PATTERN,
    )


def build_tiers(
    names: Iterable[str],
    cache: ExactCache,
    matcher: Optional[FuzzyMatcher] = None,
    engine: Optional[PatternEngine] = None,
    fallback: Optional[FallbackClient] = None,
) -> List[Tier]:
    """Build the tier chain in the order given by ``names``.

    A tier whose collaborator is ``None`` is left out, which is how
    ``cache.fuzzy_enabled=false`` and ``fallback.enabled=false`` apply.

    Raises:
        ConfigurationError: On an unknown or repeated tier name.
    """
    tiers: List[Tier] = []
    seen = set()
    for name in names:
        if name in seen:
            raise ConfigurationError(f"Tier listed twice: {name}")
        seen.add(name)
        if name == "exact":
            tiers.append(ExactTier(cache))
        elif name == "fuzzy":
            if matcher is not None:
                tiers.append(FuzzyTier(matcher))
        elif name == "pattern":
            if engine is not None:
                tiers.append(PatternTier(engine))
        elif name == "fallback":
            if fallback is not None:
                tiers.append(FallbackTier(fallback))
        else:
            raise ConfigurationError(f"Unknown tier: {name}")
    return tiers
