"""Pydantic models for API requests, responses and stored records."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Tier(str, Enum):
    """Effective entitlement tiers."""

    FREE = "free"
    PRO = "pro"


# ============ Identity & Account ============


class Identity(BaseModel):
    """Authenticated identity returned by the identity provider."""

    id: str
    email: str | None = None


class Account(BaseModel):
    """Billing/entitlement record for one identity."""

    id: str
    email: str | None = None
    display_name: str | None = None
    credits: int = Field(default=0, ge=0)
    is_pro: bool = False
    subscription_end_date: datetime | None = None
    paypal_subscription_id: str | None = None
    paypal_payer_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UsageLogEntry(BaseModel):
    """Append-only token usage record, one per completed stream."""

    user_id: str
    tokens_used: int = Field(..., ge=0)
    model: str
    created_at: datetime


class QuotaDecision(BaseModel):
    """Outcome of the free-tier quota check."""

    accepted: bool
    used_credit: bool = False
    message_count: int  # counter value after the decision
    credits: int  # credit balance after the decision


# ============ Chat Models ============


class ChatMessage(BaseModel):
    """Single role/content message."""

    role: str
    content: str


class ChatRequest(BaseModel):
    """Chat relay request body."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    messages: list[ChatMessage]
    model: str | None = None
    web_search: bool = Field(default=False, alias="webSearch")
    thinking_mode: bool = Field(default=False, alias="thinkingMode")


class CompletionOptions(BaseModel):
    """Upstream options after tier gating."""

    web_search: bool = False
    thinking_mode: bool = False


# ============ Catalog & Profile ============


class ModelInfo(BaseModel):
    id: str
    name: str
    tier: Tier


class ModelCatalog(BaseModel):
    models: dict[str, list[ModelInfo]]
    defaults: dict[str, str]


class UserSummary(BaseModel):
    id: str
    email: str | None = None
    display_name: str | None = None


class SubscriptionSummary(BaseModel):
    is_pro: bool
    credits: int
    subscription_end_date: datetime | None = None


class UsageSummary(BaseModel):
    today_messages: int
    daily_limit: int | None = None
    remaining_today: int | None = None


class UserProfileResponse(BaseModel):
    """Profile, entitlement and today's usage for the current account."""

    model_config = ConfigDict(protected_namespaces=())

    user: UserSummary
    subscription: SubscriptionSummary
    usage: UsageSummary
    available_models: list[str]
    default_model: str


# ============ Feedback ============


class FeedbackCreate(BaseModel):
    """Feedback submission request."""

    type: str | None = None
    message: str | None = None
    email: str | None = None
    rating: int | None = Field(default=None, ge=1, le=5)
    page: str | None = None


class Feedback(BaseModel):
    """Stored feedback record."""

    id: str
    user_id: str | None = None
    email: str | None = None
    type: str = "general"
    message: str
    rating: int | None = None
    page: str | None = None
    user_agent: str | None = None
    created_at: datetime


class FeedbackResponse(BaseModel):
    success: bool = True
    id: str
    message: str = "Thank you for your feedback!"


# ============ Billing Models ============


class CheckoutRequest(BaseModel):
    plan_id: str | None = Field(default=None, alias="planId")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutResponse(BaseModel):
    subscription_id: str = Field(..., serialization_alias="subscriptionId")
    url: str


class PortalResponse(BaseModel):
    url: str


class WebhookEvent(BaseModel):
    """PayPal webhook envelope. Only lives for one request."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    event_type: str = ""
    resource: dict[str, Any] = Field(default_factory=dict)


# ============ Error Models ============


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    message: str
    details: dict | None = None


class QuotaExceededResponse(ErrorResponse):
    """Daily limit exhausted."""

    upgrade_required: bool = True


# ============ Health Models ============


class HealthCheck(BaseModel):
    """Health check response."""

    status: str
    version: str
    environment: str
    store: str
    payments: str
