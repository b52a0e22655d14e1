"""Quota-gated streaming chat endpoint."""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from chatgate.auth import CurrentAccount, Store
from chatgate.config import Settings, get_settings
from chatgate.models import ChatRequest, CompletionOptions, ErrorResponse, QuotaExceededResponse
from chatgate.services.catalog import select_model
from chatgate.services.entitlement import is_effective_paid
from chatgate.services.inference import InferenceClient, get_inference_client, relay_stream
from chatgate.services.quota import QuotaLedger
from chatgate.services.usage import UsageRecorder

router = APIRouter(tags=["chat"])
logger = structlog.get_logger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


@router.post(
    "/chat",
    summary="Stream a chat completion",
    description="Relays the upstream provider's event stream byte for byte.",
    response_class=StreamingResponse,
    responses={
        200: {"content": {"text/event-stream": {}}},
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": QuotaExceededResponse},
        500: {"model": ErrorResponse},
    },
)
async def chat(
    body: ChatRequest,
    account: CurrentAccount,
    store: Store,
    settings: Settings = Depends(get_settings),
    inference: InferenceClient = Depends(get_inference_client),
) -> StreamingResponse:
    """Authenticate, pick a model, spend quota, then relay the stream."""
    is_paid = is_effective_paid(account)
    model = select_model(body.model, is_paid, thinking_mode=body.thinking_mode)

    # paid-only features; a free account asking for them is not an error
    options = CompletionOptions(
        web_search=body.web_search and is_paid,
        thinking_mode=body.thinking_mode and is_paid,
    )

    if not is_paid:
        await QuotaLedger(store, settings.free_daily_messages).consume(account)

    upstream = await inference.open_stream(body.messages, model, options)
    recorder = UsageRecorder(store)

    async def record_usage(byte_length: int) -> None:
        await recorder.record(account.id, byte_length, model)

    logger.info("chat_relay_started", account_id=account.id, model=model, is_paid=is_paid)
    return StreamingResponse(
        relay_stream(upstream, record_usage),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )
