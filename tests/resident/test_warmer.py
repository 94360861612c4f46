"""Tests for the BackgroundWarmer."""

import asyncio
from typing import List, Tuple

import pytest

from taskline.cache.exact import ExactCache
from taskline.core.orchestrator import Orchestrator
from taskline.core.tiers import build_tiers
from taskline.exceptions import StorageError
from taskline.fallback.client import FallbackClient
from taskline.models import ParsedResult, SourceTier
from taskline.resident.warmer import BackgroundWarmer, WarmReport


class FakeService:
    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        return '{"ok": true}'

    async def aclose(self) -> None:
        pass


class FakeStore:
    def __init__(self, entries=None, error: Exception = None) -> None:
        self.entries = entries or []
        self.error = error
        self.requested_k = None

    def save(self, raw_text: str, key: str, result: ParsedResult) -> int:
        return 1

    def get_top_k_recent(self, k: int) -> List[Tuple[str, ParsedResult]]:
        self.requested_k = k
        if self.error is not None:
            raise self.error
        return self.entries[:k]


def _entry(key: str) -> Tuple[str, ParsedResult]:
    return key, ParsedResult(title=key.title(), source_tier=SourceTier.PATTERN)


@pytest.fixture
def cache() -> ExactCache:
    return ExactCache(capacity=10)


@pytest.fixture
def orchestrator(cache: ExactCache) -> Orchestrator:
    return Orchestrator(cache, build_tiers(["exact"], cache), cache_partial_results=True)


class TestPreload:
    async def test_preloads_top_k(self, cache, orchestrator) -> None:
        store = FakeStore([_entry("water plants"), _entry("call bob"), _entry("pay rent")])
        warmer = BackgroundWarmer(orchestrator, store=store, preload_top_k=2)
        assert await warmer.preload() == 2
        assert store.requested_k == 2
        assert "water plants" in cache
        assert "pay rent" not in cache

    async def test_storage_failure_is_not_fatal(self, orchestrator) -> None:
        warmer = BackgroundWarmer(orchestrator, store=FakeStore(error=StorageError("locked")))
        assert await warmer.preload() == 0

    async def test_unexpected_failure_is_not_fatal(self, orchestrator) -> None:
        warmer = BackgroundWarmer(orchestrator, store=FakeStore(error=RuntimeError("x")))
        assert await warmer.preload() == 0

    async def test_no_store(self, orchestrator) -> None:
        assert await BackgroundWarmer(orchestrator).preload() == 0


class TestWarmOnce:
    async def test_warms_fallback_and_preloads(self, cache, orchestrator, clock) -> None:
        service = FakeService()
        fallback = FallbackClient(service, timeout_ms=100, cold_timeout_ms=100, clock=clock)
        warmer = BackgroundWarmer(
            orchestrator, fallback=fallback, store=FakeStore([_entry("call bob")])
        )
        report = await warmer.warm_once()
        assert report == WarmReport(preloaded=1, fallback_warmed=True)
        assert len(service.prompts) == 1
        assert not fallback.is_cold

    async def test_fallback_timeout_reported(self, orchestrator, clock) -> None:
        fallback = FallbackClient(
            FakeService(delay=1.0), timeout_ms=20, cold_timeout_ms=20, clock=clock
        )
        report = await BackgroundWarmer(orchestrator, fallback=fallback).warm_once()
        assert report.fallback_warmed is False

    async def test_nothing_configured(self, orchestrator) -> None:
        assert await BackgroundWarmer(orchestrator).warm_once() == WarmReport()


class TestBackgroundTask:
    async def test_run_once_without_interval(self, orchestrator, clock) -> None:
        service = FakeService()
        fallback = FallbackClient(service, timeout_ms=100, cold_timeout_ms=100, clock=clock)
        warmer = BackgroundWarmer(orchestrator, fallback=fallback, interval_seconds=0)
        await asyncio.wait_for(warmer.start(), 1.0)
        assert len(service.prompts) == 1
        assert warmer.last_report.fallback_warmed

    async def test_periodic_rewarm(self, orchestrator, clock) -> None:
        service = FakeService()
        fallback = FallbackClient(service, timeout_ms=100, cold_timeout_ms=100, clock=clock)
        warmer = BackgroundWarmer(orchestrator, fallback=fallback, interval_seconds=0.05)
        warmer.start()
        await asyncio.sleep(0.3)
        await warmer.stop()
        assert len(service.prompts) >= 3

    async def test_stop_before_start_is_noop(self, orchestrator) -> None:
        await BackgroundWarmer(orchestrator).stop()
