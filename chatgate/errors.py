"""Gateway error taxonomy.

Every failure that reaches the HTTP boundary is one of these. The app-level
exception handler turns them into a single JSON shape:
``{"error": <code>, "message": <text>, ...extra}``.
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class GatewayError(Exception):
    """Base class for errors with a fixed HTTP mapping."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "internal_server_error"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class AuthError(GatewayError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "unauthorized"
    default_message = "Missing or invalid authorization header"


class ProfileNotFound(GatewayError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "profile_not_found"
    default_message = "User profile not found"


class InvalidRequest(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "invalid_request"
    default_message = "Malformed request body"


class NoActiveSubscription(InvalidRequest):
    error = "no_active_subscription"
    default_message = "No active subscription found"


class QuotaExceeded(GatewayError):
    """Daily free messages used up and no credits left."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "daily_limit_reached"
    default_message = "Daily message limit reached"

    def __init__(self, daily_limit: int, message: str | None = None):
        self.daily_limit = daily_limit
        super().__init__(
            message
            or f"Your {daily_limit} free messages for today are used up. "
            "Upgrade to Pro for unlimited messages."
        )

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        body["upgrade_required"] = True
        return body


class UpstreamError(GatewayError):
    """Non-success answer from the inference or payment provider."""

    error = "upstream_error"

    def __init__(self, provider: str, upstream_status: int | None, body: str, message: str | None = None):
        self.provider = provider
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(
            message or f"{provider} API error: {upstream_status}",
            details={"provider": provider, "status": upstream_status, "body": body},
        )


class WebhookSignatureInvalid(GatewayError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "invalid_signature"
    default_message = "Invalid signature"


class ReconciliationUnresolved(GatewayError):
    """A billing event could not be mapped to an account. Logged, never surfaced."""

    error = "reconciliation_unresolved"
    default_message = "Billing event missing account context"


class ConfigurationMissing(GatewayError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "service_not_configured"
    default_message = "Payment service not configured"


class StoreUnavailable(GatewayError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "store_unavailable"
    default_message = "Account store not available"
