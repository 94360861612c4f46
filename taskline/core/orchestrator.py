"""
Orchestrator for the Taskline interpretation pipeline.

Per request::

    normalise -> exact -> fuzzy -> pattern -> [sufficient? done : fallback]
              -> write-back -> respond

The first tier that answers ends the chain.  Write-back stores the final
result in the exact cache under the request's key; on a fuzzy hit that
entry is the alias and the matched entry's recency is refreshed.  Exact
hits are not re-stored.

The orchestrator holds no long-lived state of its own.  It borrows the
shared cache and tiers; the cache's own lock covers each lookup and
each write, and nothing holds it across the fallback call.
"""

import logging
import time
from typing import Iterable, List, Optional, Tuple

from taskline.cache.exact import CacheStats, ExactCache
from taskline.config import get_settings
from taskline.core.tiers import ParseRequest, Tier, TierHit, bare_result
from taskline.models import Confidence, ParsedResult, SourceTier
from taskline.normalize import normalize

logger = logging.getLogger(__name__)


class Orchestrator:
    """Sequence tiers and write results back into the exact cache.

    Args:
        cache: Shared exact cache that receives write-backs.
        tiers: Ordered tier chain (see :func:`taskline.core.tiers.build_tiers`).
        cache_partial_results: Whether degraded results are written back.
            Defaults to ``cache.cache_partial_results`` from settings.
    """

    def __init__(
        self,
        cache: ExactCache,
        tiers: List[Tier],
        cache_partial_results: Optional[bool] = None,
    ) -> None:
        self._cache = cache
        self._tiers = list(tiers)
        self._cache_partial = (
            cache_partial_results
            if cache_partial_results is not None
            else get_settings().cache.cache_partial_results
        )

    @property
    def tier_names(self) -> List[str]:
        return [tier.name for tier in self._tiers]

    async def parse(self, raw_text: str) -> ParsedResult:
        """Interpret ``raw_text`` into a ParsedResult.

        Args:
            raw_text: The user's input.

        Returns:
            The result of the first tier that answered, or the pattern
            engine's partial extraction marked ``confidence=partial`` when
            no tier did.

        Raises:
            InvalidInputError: If ``raw_text`` is not text or is blank.
        """
        _, result = await self.parse_keyed(raw_text)
        return result

    async def parse_keyed(self, raw_text: str) -> Tuple[str, ParsedResult]:
        """Like :meth:`parse`, also returning the normalised key."""
        key = normalize(raw_text)
        request = ParseRequest(raw_text=raw_text, key=key)
        started = time.perf_counter()

        hit: Optional[TierHit] = None
        for tier in self._tiers:
            hit = await tier.attempt(request)
            if hit is not None:
                break
            logger.debug("Tier passed", extra={"tier": tier.name})

        if hit is None:
            hit = TierHit(result=(request.partial or bare_result(raw_text)).degraded())

        self._write_back(key, hit)

        logger.debug(
            "Parse complete",
            extra={
                "source_tier": hit.result.source_tier.value,
                "confidence": hit.result.confidence.value,
                "elapsed_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return key, hit.result

    def seed(self, entries: Iterable[Tuple[str, ParsedResult]]) -> int:
        """Preload cache entries that are not already present.

        Returns:
            Number of entries inserted.
        """
        inserted = 0
        for key, result in entries:
            if not key or key in self._cache:
                continue
            self._cache.put(key, result)
            inserted += 1
        return inserted

    def stats(self) -> CacheStats:
        return self._cache.stats()

    def _write_back(self, key: str, hit: TierHit) -> None:
        result = hit.result
        if result.source_tier is SourceTier.EXACT:
            return
        if result.confidence is Confidence.PARTIAL and not self._cache_partial:
            return
        if hit.matched_key is not None:
            self._cache.touch(hit.matched_key)
        self._cache.put(key, result)
