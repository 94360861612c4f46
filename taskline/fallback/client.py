"""
Fallback client for Taskline (Tier 4).

Sends raw text, plus whatever the pattern engine already found, to the
slow completion service and merges its structured answer over the
partial result.  Every call runs under a hard deadline.  On timeout or
any service failure the partial result comes back unchanged but marked
``confidence=partial``; nothing raised by the service reaches the
caller.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from taskline.config import get_settings
from taskline.exceptions import FallbackError, FallbackTimeout, FallbackUnavailable
from taskline.fallback.service import CompletionService
from taskline.models import Confidence, ParsedResult, Priority, SourceTier
from taskline.patterns.temporal import localize

logger = logging.getLogger(__name__)

WARMUP_PROMPT = 'Reply with the JSON object {"ok": true}.'


class FallbackAnswer(BaseModel):
    """Structured fields parsed out of a completion.

    Any field the service leaves out (or sends as ``null``) keeps the
    pattern engine's value when merged.
    """

    title: Optional[str] = None
    due: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("due", "datetime")
    )
    tags: Optional[List[str]] = None
    priority: Optional[Priority] = None

    model_config = {"extra": "ignore"}

    @field_validator("priority", mode="before")
    @classmethod
    def _lenient_priority(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().lower()
            return value if value in {p.value for p in Priority} else None
        return value

    @field_validator("due", mode="before")
    @classmethod
    def _blank_due(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class FallbackExchange(BaseModel):
    """One round trip to the completion service (not persisted).

    Attributes:
        prompt: The outbound prompt.
        completion: The inbound completion text, if any.
        error: Failure description, if the call failed.
        elapsed_ms: Wall time spent waiting.
    """

    prompt: str
    completion: Optional[str] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0


def parse_completion(completion: str) -> FallbackAnswer:
    """Decode a completion string into a :class:`FallbackAnswer`.

    The ``datetime`` key used by older prompts is accepted as ``due``.

    Raises:
        FallbackUnavailable: If the completion is not a JSON object with
            usable fields.
    """
    try:
        answer = FallbackAnswer.model_validate_json(completion)
    except ValidationError as exc:
        raise FallbackUnavailable(f"Unusable completion: {exc.error_count()} errors") from exc
    return answer


class FallbackClient:
    """Bounded-latency client for the slow interpretation service.

    The first call made through a client (usually the warm-up) uses the
    cold-start timeout, since the service may still be loading its
    model; every later call uses the regular timeout.

    Args:
        service: Completion backend.
        timeout_ms: Deadline for warm calls.  Defaults to settings.
        cold_timeout_ms: Deadline for the first call.  Defaults to settings.
        clock: Returns the local "now" used in prompts and to localise
            naive datetimes in answers.
    """

    def __init__(
        self,
        service: CompletionService,
        timeout_ms: Optional[int] = None,
        cold_timeout_ms: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        _s = get_settings().fallback
        self._service = service
        self._timeout = (timeout_ms if timeout_ms is not None else _s.timeout_ms) / 1000.0
        self._cold_timeout = (
            cold_timeout_ms if cold_timeout_ms is not None else _s.cold_timeout_ms
        ) / 1000.0
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._cold = True
        self.last_exchange: Optional[FallbackExchange] = None

    @property
    def is_cold(self) -> bool:
        return self._cold

    def current_timeout(self) -> float:
        """Deadline in seconds the next call will get."""
        return self._cold_timeout if self._cold else self._timeout

    async def interpret(self, raw_text: str, partial: ParsedResult) -> ParsedResult:
        """Ask the service to interpret ``raw_text``.

        Args:
            raw_text: The user's original input.
            partial: The pattern engine's (insufficient) extraction.

        Returns:
            A ``source_tier=fallback``, ``confidence=full`` result on
            success; otherwise ``partial`` marked ``confidence=partial``.
        """
        prompt = self.build_prompt(raw_text, partial)
        try:
            completion = await self._call(prompt)
            answer = parse_completion(completion)
        except FallbackTimeout as exc:
            logger.warning(
                "Fallback timed out",
                extra={"error": str(exc), "input_prefix": raw_text[:40]},
            )
            return partial.degraded()
        except FallbackError as exc:
            self._record_error(exc)
            logger.warning(
                "Fallback unavailable",
                extra={"error": str(exc), "input_prefix": raw_text[:40]},
            )
            return partial.degraded()
        except Exception as exc:
            self._record_error(exc)
            logger.error(
                "Fallback failed unexpectedly",
                extra={"error": str(exc)},
                exc_info=True,
            )
            return partial.degraded()

        return self._merge(partial, answer)

    async def warm_up(self) -> bool:
        """Send one no-op prompt so the service loads its model.

        Returns:
            ``True`` if the service answered in time.
        """
        started = time.perf_counter()
        try:
            await self._call(WARMUP_PROMPT)
        except FallbackError as exc:
            logger.warning("Fallback warm-up failed", extra={"error": str(exc)})
            return False
        logger.info(
            "Fallback warmed",
            extra={"elapsed_ms": round((time.perf_counter() - started) * 1000, 1)},
        )
        return True

    def build_prompt(self, raw_text: str, partial: Optional[ParsedResult] = None) -> str:
        """Build the interpretation prompt for ``raw_text``."""
        now = self._clock()
        today = now.strftime("%Y-%m-%d")
        tomorrow = (now + timedelta(days=1)).strftime("%Y-%m-%d")
        offset = now.strftime("%z") or "+0000"
        offset = f"{offset[:3]}:{offset[3:]}"

        hints = ""
        if partial is not None:
            known = []
            if partial.due is not None:
                known.append(f"due={partial.due.isoformat()}")
            if partial.tags:
                known.append("tags=" + ",".join(sorted(partial.tags)))
            if partial.priority is not Priority.MEDIUM:
                known.append(f"priority={partial.priority.value}")
            if known:
                hints = "Already detected: " + "; ".join(known) + "\n"

        return (
            f"Today is {today}. Parse the following natural language input into a task.\n"
            "Return ONLY a JSON object with keys: title (string), due (ISO 8601 "
            f"with offset {offset}, or null), tags (array of strings), priority "
            "(low|medium|high|urgent).\n"
            "Times: '4:12 PM' is 16:12, '12:00 PM' is noon, '12:00 AM' is midnight.\n"
            'Example: "Submit report tomorrow at 3pm #work" -> '
            f'{{"title": "Submit report", "due": "{tomorrow}T15:00:00{offset}", '
            '"tags": ["work"], "priority": "medium"}\n'
            f"{hints}"
            f'Input: "{raw_text}"\n'
            "Output:"
        )

    async def aclose(self) -> None:
        await self._service.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call(self, prompt: str) -> str:
        timeout = self.current_timeout()
        self._cold = False
        exchange = FallbackExchange(prompt=prompt)
        self.last_exchange = exchange
        started = time.perf_counter()
        try:
            completion = await asyncio.wait_for(self._service.complete(prompt), timeout)
        except asyncio.TimeoutError as exc:
            exchange.error = "timeout"
            raise FallbackTimeout(f"No completion within {timeout:.3f}s") from exc
        finally:
            exchange.elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        exchange.completion = completion
        return completion

    def _record_error(self, exc: BaseException) -> None:
        if self.last_exchange is not None and self.last_exchange.error is None:
            self.last_exchange.error = str(exc)

    def _merge(self, partial: ParsedResult, answer: FallbackAnswer) -> ParsedResult:
        due = answer.due if answer.due is not None else partial.due
        if due is not None and due.tzinfo is None:
            due = localize(due, self._clock())
        title = answer.title.strip() if answer.title and answer.title.strip() else partial.title
        return ParsedResult(
            title=title,
            due=due,
            priority=answer.priority or partial.priority,
            tags=answer.tags if answer.tags else partial.tags,
            source_tier=SourceTier.FALLBACK,
            confidence=Confidence.FULL,
        )
