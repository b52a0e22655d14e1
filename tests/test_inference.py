import httpx
import pytest

from chatgate.config import Settings
from chatgate.errors import UpstreamError
from chatgate.models import ChatMessage, CompletionOptions
from chatgate.services.inference import InferenceClient, relay_stream

MESSAGES = [ChatMessage(role="user", content="hi")]


def make_client(handler) -> InferenceClient:
    settings = Settings(_env_file=None, openrouter_api_key="sk-or-test", prometheus_enabled=False)
    return InferenceClient(settings, transport=httpx.MockTransport(handler))


def test_payload_adds_web_plugin_only_when_enabled():
    client = make_client(lambda request: httpx.Response(200))

    plain = client.build_payload(MESSAGES, "openai/gpt-4o", CompletionOptions())
    searching = client.build_payload(MESSAGES, "openai/gpt-4o", CompletionOptions(web_search=True))

    assert "plugins" not in plain
    assert searching["plugins"] == ["web"]
    assert plain["stream"] is True
    assert plain["temperature"] == 0.7
    assert plain["max_tokens"] == 2048
    assert plain["messages"] == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_open_stream_sends_attribution_headers(upstream):
    client = make_client(upstream.handler)

    response = await client.open_stream(MESSAGES, "openai/gpt-4o")
    await response.aclose()

    headers = upstream.headers[0]
    assert headers["authorization"] == "Bearer sk-or-test"
    assert headers["x-title"] == "AI Chat Desktop"
    assert headers["http-referer"] == "http://localhost:5173"
    assert upstream.requests[0]["model"] == "openai/gpt-4o"


@pytest.mark.asyncio
async def test_open_stream_raises_on_error_status(upstream):
    upstream.status_code = 429
    client = make_client(upstream.handler)

    with pytest.raises(UpstreamError) as exc_info:
        await client.open_stream(MESSAGES, "openai/gpt-4o")

    error = exc_info.value
    assert error.upstream_status == 429
    assert "rate limited" in error.body
    assert error.to_body()["details"]["provider"] == "OpenRouter"


@pytest.mark.asyncio
async def test_relay_forwards_bytes_and_reports_total(upstream):
    client = make_client(upstream.handler)
    completed = []

    async def on_complete(total):
        completed.append(total)

    response = await client.open_stream(MESSAGES, "openai/gpt-4o")
    relayed = [chunk async for chunk in relay_stream(response, on_complete)]

    assert b"".join(relayed) == b"".join(upstream.chunks)
    assert completed == [sum(len(c) for c in upstream.chunks)]
    assert response.is_closed


@pytest.mark.asyncio
async def test_relay_closed_early_skips_completion(upstream):
    client = make_client(upstream.handler)
    completed = []

    async def on_complete(total):
        completed.append(total)

    response = await client.open_stream(MESSAGES, "openai/gpt-4o")
    stream = relay_stream(response, on_complete)
    await stream.__anext__()
    await stream.aclose()

    assert completed == []
    assert response.is_closed


@pytest.mark.asyncio
async def test_relay_interrupted_upstream_truncates_without_completion():
    async def body():
        yield b"data: partial\n\n"
        raise httpx.ReadError("connection reset")

    client = make_client(lambda request: httpx.Response(200, content=body()))
    completed = []

    async def on_complete(total):
        completed.append(total)

    response = await client.open_stream(MESSAGES, "openai/gpt-4o")
    relayed = [chunk async for chunk in relay_stream(response, on_complete)]

    assert relayed == [b"data: partial\n\n"]
    assert completed == []
