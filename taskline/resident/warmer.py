"""
Background warmer for the resident process.

At startup it preloads the exact cache with the most used prior inputs
from the task store and sends one no-op prompt down the fallback path
so the first real fallback call does not pay the model-load cost.  With
``warmer.interval_seconds > 0`` the no-op is repeated on that interval
to keep the model resident.

Runs as a detached task.  Every failure is logged; none is fatal to the
resident process.
"""

import asyncio
import logging
from typing import Optional

from pydantic import BaseModel

from taskline.config import get_settings
from taskline.core.orchestrator import Orchestrator
from taskline.exceptions import StorageError
from taskline.fallback.client import FallbackClient
from taskline.storage.repository import TaskStore

logger = logging.getLogger(__name__)


class WarmReport(BaseModel):
    """Outcome of one warm pass."""

    preloaded: int = 0
    fallback_warmed: bool = False


class BackgroundWarmer:
    """Prime the cache and the fallback path.

    Args:
        orchestrator: Receives preloaded entries via ``seed``.
        fallback: Client to warm, if the fallback tier is enabled.
        store: Ranked source of prior entries, if available.
        preload_top_k: How many entries to preload.  Defaults to settings.
        interval_seconds: Re-warm period; 0 disables.  Defaults to settings.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        fallback: Optional[FallbackClient] = None,
        store: Optional[TaskStore] = None,
        preload_top_k: Optional[int] = None,
        interval_seconds: Optional[float] = None,
    ) -> None:
        _s = get_settings().warmer
        self._orchestrator = orchestrator
        self._fallback = fallback
        self._store = store
        self._top_k = preload_top_k if preload_top_k is not None else _s.preload_top_k
        self._interval = interval_seconds if interval_seconds is not None else _s.interval_seconds
        self._task: Optional["asyncio.Task[None]"] = None
        self.last_report: Optional[WarmReport] = None

    def start(self) -> "asyncio.Task[None]":
        """Schedule :meth:`run` as a detached task and return it."""
        self._task = asyncio.create_task(self.run(), name="taskline-warmer")
        return self._task

    async def stop(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def run(self) -> None:
        self.last_report = await self.warm_once()
        if self._interval <= 0 or self._fallback is None:
            return
        while True:
            await asyncio.sleep(self._interval)
            await self._warm_fallback()

    async def warm_once(self) -> WarmReport:
        """Preload the cache, then warm the fallback."""
        report = WarmReport(preloaded=await self.preload())
        report.fallback_warmed = await self._warm_fallback()
        logger.info(
            "Warm pass complete",
            extra={"preloaded": report.preloaded, "fallback_warmed": report.fallback_warmed},
        )
        return report

    async def preload(self) -> int:
        """Seed the exact cache from the store's most used entries.

        Returns:
            Number of entries inserted.
        """
        if self._store is None or self._top_k <= 0:
            return 0
        try:
            entries = await asyncio.to_thread(self._store.get_top_k_recent, self._top_k)
        except StorageError as exc:
            logger.warning("Cache preload failed", extra={"error": str(exc)})
            return 0
        except Exception as exc:
            logger.error("Cache preload failed", extra={"error": str(exc)}, exc_info=True)
            return 0
        return self._orchestrator.seed(entries)

    async def _warm_fallback(self) -> bool:
        if self._fallback is None:
            return False
        try:
            return await self._fallback.warm_up()
        except Exception as exc:
            logger.error("Fallback warm-up crashed", extra={"error": str(exc)}, exc_info=True)
            return False
