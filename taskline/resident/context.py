"""
Shared state for the resident process.

One :class:`ResidentContext` is built at startup and handed by
reference to every connection handler and to the warmer.  It owns the
exact cache, the fuzzy matcher's view of it, the fallback client and
the orchestrator wired over them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from taskline.cache.exact import ExactCache
from taskline.cache.fuzzy import FuzzyMatcher
from taskline.config import Settings, get_settings
from taskline.core.orchestrator import Orchestrator
from taskline.core.tiers import build_tiers
from taskline.exceptions import StorageError
from taskline.fallback.client import FallbackClient
from taskline.fallback.service import CompletionService, HttpCompletionService
from taskline.patterns.engine import Clock, PatternEngine
from taskline.storage.repository import TaskStore, open_repository

logger = logging.getLogger(__name__)


@dataclass
class ResidentContext:
    cache: ExactCache
    engine: PatternEngine
    orchestrator: Orchestrator
    matcher: Optional[FuzzyMatcher] = None
    fallback: Optional[FallbackClient] = None
    store: Optional[TaskStore] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        service: Optional[CompletionService] = None,
        store: Optional[TaskStore] = None,
        open_store: bool = True,
        clock: Optional[Clock] = None,
    ) -> "ResidentContext":
        """Wire every collaborator from settings.

        Args:
            settings: Settings to use.  Defaults to :func:`get_settings`.
            service: Completion backend; an HTTP service is built when
                the fallback is enabled and none is given.
            store: Task store; opened from ``storage.database_url`` when
                ``open_store`` is set and none is given.
            open_store: Whether to open the configured store at all.
            clock: Reference "now" for the pattern engine and fallback.

        Returns:
            A ready context.  A store that fails to open is logged and
            left out; the pipeline runs without it.
        """
        s = settings or get_settings()

        cache = ExactCache(capacity=s.cache.capacity)
        matcher = (
            FuzzyMatcher(cache, threshold=s.cache.fuzzy_threshold)
            if s.cache.fuzzy_enabled
            else None
        )
        engine = PatternEngine(
            min_title_length=s.pattern.min_title_length,
            default_due_hour=s.pattern.default_due_hour,
            business_end_hour=s.pattern.business_end_hour,
            quantize_minutes=s.pattern.quantize_minutes,
            clock=clock,
        )

        fallback: Optional[FallbackClient] = None
        if s.fallback.enabled:
            fallback = FallbackClient(
                service or HttpCompletionService(
                    base_url=s.fallback.base_url,
                    endpoint=s.fallback.endpoint,
                    model=s.fallback.model,
                ),
                timeout_ms=s.fallback.timeout_ms,
                cold_timeout_ms=s.fallback.cold_timeout_ms,
                clock=clock,
            )

        if store is None and open_store:
            try:
                store = open_repository(s.storage.database_url)
            except StorageError as exc:
                logger.warning("Task store unavailable", extra={"error": str(exc)})

        tiers = build_tiers(
            s.pipeline.tiers, cache, matcher=matcher, engine=engine, fallback=fallback
        )
        orchestrator = Orchestrator(
            cache, tiers, cache_partial_results=s.cache.cache_partial_results
        )
        logger.info(
            "Resident context ready",
            extra={
                "tiers": orchestrator.tier_names,
                "capacity": cache.capacity,
                "store": store is not None,
            },
        )
        return cls(
            cache=cache,
            engine=engine,
            orchestrator=orchestrator,
            matcher=matcher,
            fallback=fallback,
            store=store,
        )

    async def aclose(self) -> None:
        if self.fallback is not None:
            await self.fallback.aclose()
