"""Tests for the HTTP completion service."""

import json

import httpx
import pytest

from taskline.exceptions import FallbackUnavailable
from taskline.fallback.service import CompletionService, HttpCompletionService


def _service(handler) -> HttpCompletionService:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://fallback.test"
    )
    return HttpCompletionService(
        base_url="http://fallback.test", endpoint="/api/generate", model="tiny", client=client
    )


class TestHttpCompletionService:
    async def test_posts_prompt_and_returns_response(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": '{"title": "x"}', "done": True})

        service = _service(handler)
        completion = await service.complete("hello")
        assert completion == '{"title": "x"}'
        assert seen["path"] == "/api/generate"
        assert seen["body"] == {
            "model": "tiny", "prompt": "hello", "stream": False, "format": "json",
        }

    async def test_accepts_completion_field(self) -> None:
        service = _service(lambda r: httpx.Response(200, json={"completion": "ok"}))
        assert await service.complete("p") == "ok"

    async def test_http_error_is_unavailable(self) -> None:
        service = _service(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(FallbackUnavailable):
            await service.complete("p")

    async def test_connection_error_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(FallbackUnavailable):
            await _service(handler).complete("p")

    async def test_non_json_body_is_unavailable(self) -> None:
        service = _service(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(FallbackUnavailable):
            await service.complete("p")

    async def test_missing_completion_is_unavailable(self) -> None:
        service = _service(lambda r: httpx.Response(200, json={"done": True}))
        with pytest.raises(FallbackUnavailable):
            await service.complete("p")

    async def test_health_check(self) -> None:
        service = _service(lambda r: httpx.Response(200, json={"models": []}))
        assert await service.health_check() is True

    def test_satisfies_protocol(self) -> None:
        service = _service(lambda r: httpx.Response(200, json={}))
        assert isinstance(service, CompletionService)
        assert service.model == "tiny"
