"""
Completion service adapters for the fallback tier.

The fallback tier talks to a slow, general-purpose interpreter through
one narrow interface: send a prompt, get a completion string back.  The
:class:`HttpCompletionService` speaks the Ollama ``/api/generate`` JSON
API over ``httpx``; anything else implementing :class:`CompletionService`
can be swapped in (tests use in-process fakes).
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from taskline.config import get_settings
from taskline.exceptions import FallbackUnavailable

logger = logging.getLogger(__name__)


@runtime_checkable
class CompletionService(Protocol):
    """Protocol for prompt -> completion backends."""

    async def complete(self, prompt: str) -> str:
        """Return the service's completion for ``prompt``.

        Raises:
            FallbackUnavailable: If the service errors or its reply
                carries no completion.
        """
        ...

    async def aclose(self) -> None:
        """Release any held connections."""
        ...


class HttpCompletionService:
    """Completion service reached over local HTTP.

    Posts ``{"model", "prompt", "stream": false, "format": "json"}`` and
    reads the completion from the ``response`` field (Ollama) or the
    ``completion`` field.

    Args:
        base_url: Service root, e.g. ``http://localhost:11434``.
        endpoint: Generation path appended to ``base_url``.
        model: Model identifier sent with every request.
        client: Pre-built ``httpx.AsyncClient`` (testing).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        endpoint: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        _s = get_settings().fallback
        self._base_url = (base_url or _s.base_url).rstrip("/")
        self._endpoint = endpoint or _s.endpoint
        self._model = model or _s.model
        # Deadline is enforced by the caller; this only guards against a
        # connection that never resolves.
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(_s.cold_timeout_ms / 1000.0),
        )

    @property
    def model(self) -> str:
        return self._model

    async def complete(self, prompt: str) -> str:
        payload: Dict[str, Any] = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
        }
        try:
            response = await self._client.post(self._endpoint, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise FallbackUnavailable(f"Completion request failed: {exc}") from exc
        except ValueError as exc:
            raise FallbackUnavailable(f"Completion reply is not JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise FallbackUnavailable("Completion reply is not a JSON object")
        completion = data.get("response", data.get("completion"))
        if not isinstance(completion, str):
            raise FallbackUnavailable("Completion reply has no completion text")
        logger.debug(
            "Completion received",
            extra={"model": self._model, "chars": len(completion)},
        )
        return completion

    async def health_check(self) -> bool:
        """Check whether the service answers at all."""
        try:
            response = await self._client.get("/api/tags")
            return response.status_code < 500
        except httpx.HTTPError:
            return False

    async def aclose(self) -> None:
        await self._client.aclose()
