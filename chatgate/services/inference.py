"""Streaming relay to the upstream chat-completion provider (OpenRouter)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from functools import lru_cache
from typing import Any

import httpx
import structlog

from chatgate.config import Settings, get_settings
from chatgate.errors import UpstreamError
from chatgate.models import ChatMessage, CompletionOptions

logger = structlog.get_logger(__name__)

PROVIDER = "OpenRouter"


class InferenceClient:
    """Issues streaming chat-completion requests."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.client = httpx.AsyncClient(
            base_url=settings.openrouter_base_url.rstrip("/"),
            timeout=settings.upstream_timeout_seconds,
            transport=transport,
        )

    def build_payload(
        self,
        messages: list[ChatMessage],
        model: str,
        options: CompletionOptions,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [m.model_dump() for m in messages],
            "stream": True,
            "temperature": self.settings.completion_temperature,
            "max_tokens": self.settings.completion_max_tokens,
        }
        if options.web_search:
            payload["plugins"] = ["web"]
        return payload

    def build_headers(self) -> dict[str, str]:
        api_key = self.settings.openrouter_api_key
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key.get_secret_value() if api_key else ''}",
            "HTTP-Referer": self.settings.frontend_url,
            "X-Title": self.settings.openrouter_app_title,
            # raw bytes are relayed as-is, so ask for them uncompressed
            "Accept-Encoding": "identity",
        }

    async def open_stream(
        self,
        messages: list[ChatMessage],
        model: str,
        options: CompletionOptions | None = None,
    ) -> httpx.Response:
        """
        Start a streaming completion and return the open upstream response.

        The caller owns the response and must close it.

        Raises:
            UpstreamError: provider answered with a non-success status.
        """
        options = options or CompletionOptions()
        request = self.client.build_request(
            "POST",
            "/chat/completions",
            json=self.build_payload(messages, model, options),
            headers=self.build_headers(),
        )
        upstream = await self.client.send(request, stream=True)

        if upstream.is_error:
            body = (await upstream.aread()).decode(errors="replace")
            await upstream.aclose()
            logger.error(
                "upstream_request_failed",
                provider=PROVIDER,
                status=upstream.status_code,
                model=model,
            )
            raise UpstreamError(PROVIDER, upstream.status_code, body)

        logger.info(
            "upstream_stream_opened",
            model=model,
            web_search=options.web_search,
            thinking_mode=options.thinking_mode,
        )
        return upstream

    async def aclose(self) -> None:
        await self.client.aclose()


async def relay_stream(
    upstream: httpx.Response,
    on_complete: Callable[[int], Awaitable[Any]],
) -> AsyncIterator[bytes]:
    """
    Forward upstream bytes unchanged while counting them.

    ``on_complete`` receives the byte total only when upstream reaches its
    natural end. A dropped upstream connection ends the stream early, and a
    client disconnect closes the generator; neither calls ``on_complete``.
    """
    relayed = 0
    try:
        async for chunk in upstream.aiter_raw():
            relayed += len(chunk)
            yield chunk
    except httpx.HTTPError as exc:
        logger.warning("upstream_stream_interrupted", bytes_relayed=relayed, error=str(exc))
        return
    finally:
        await upstream.aclose()

    await on_complete(relayed)


@lru_cache
def get_inference_client() -> InferenceClient:
    """Get the process-wide inference client."""
    return InferenceClient(get_settings())
