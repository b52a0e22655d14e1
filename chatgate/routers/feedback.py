"""Free-text feedback submission. Anonymous callers are accepted."""

import uuid
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Request

from chatgate.auth import OptionalIdentity, Store
from chatgate.errors import InvalidRequest
from chatgate.models import Feedback, FeedbackCreate, FeedbackResponse

router = APIRouter(tags=["feedback"])
logger = structlog.get_logger(__name__)

MAX_FEEDBACK_LENGTH = 5000


@router.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(
    body: FeedbackCreate,
    request: Request,
    identity: OptionalIdentity,
    store: Store,
) -> FeedbackResponse:
    message = (body.message or "").strip()
    if not message:
        raise InvalidRequest("Feedback message is required")
    if len(body.message) > MAX_FEEDBACK_LENGTH:
        raise InvalidRequest(f"Feedback message is too long (max {MAX_FEEDBACK_LENGTH} characters)")

    feedback = Feedback(
        id=uuid.uuid4().hex,
        user_id=identity.id if identity else None,
        email=(identity.email if identity else None) or body.email,
        type=body.type or "general",
        message=message,
        rating=body.rating,
        page=body.page,
        user_agent=request.headers.get("user-agent"),
        created_at=datetime.now(UTC),
    )
    feedback_id = await store.add_feedback(feedback)

    logger.info("feedback_received", feedback_type=feedback.type, anonymous=identity is None)
    return FeedbackResponse(id=feedback_id)
