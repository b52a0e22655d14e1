"""PayPal REST client for billing subscriptions.

Owns the process-wide OAuth access token cache. Webhook signatures are checked
by PayPal's own verification endpoint; nothing is verified locally.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx
import structlog

from chatgate.config import Settings, get_settings
from chatgate.errors import UpstreamError

logger = structlog.get_logger(__name__)

PROVIDER = "PayPal"

# Refresh the token when less than this much validity is left
TOKEN_EXPIRY_MARGIN_SECONDS = 60

SIGNATURE_HEADERS = (
    "paypal-transmission-id",
    "paypal-transmission-time",
    "paypal-cert-url",
    "paypal-auth-algo",
    "paypal-transmission-sig",
)

PORTAL_LINK_PRIORITY = ("manage", "edit", "self")


@dataclass
class TokenCache:
    """Single cached access token. Starts empty; a refresh overwrites it."""

    value: str | None = None
    expires_at: float = 0.0

    def get(self, now: float) -> str | None:
        if self.value and self.expires_at > now + TOKEN_EXPIRY_MARGIN_SECONDS:
            return self.value
        return None

    def store(self, value: str, expires_in: float, now: float) -> None:
        self.value = value
        self.expires_at = now + expires_in


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


def find_link(links: list[dict[str, Any]], *rels: str) -> str | None:
    """First href whose rel matches, trying ``rels`` in order."""
    for rel in rels:
        for link in links:
            if link.get("rel") == rel and link.get("href"):
                return link["href"]
    return None


class PaymentGatewayClient:
    """Thin async wrapper over the PayPal billing API."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.clock = clock
        self.token_cache = TokenCache()
        self.client = httpx.AsyncClient(
            base_url=settings.paypal_api_base,
            transport=transport,
        )

    async def get_access_token(self) -> str:
        """
        Return the cached token, or exchange client credentials for a new one.

        Concurrent refreshes are harmless: the last one to finish wins.
        """
        cached = self.token_cache.get(self.clock())
        if cached:
            return cached

        response = await self.client.post(
            "/v1/oauth2/token",
            auth=(
                self.settings.paypal_client_id,
                self.settings.paypal_client_secret.get_secret_value(),
            ),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            content="grant_type=client_credentials",
        )
        if response.is_error:
            raise UpstreamError(
                PROVIDER,
                response.status_code,
                response.text,
                message=f"PayPal auth error: {response.status_code}",
            )

        data = response.json()
        self.token_cache.store(data["access_token"], float(data.get("expires_in") or 0), self.clock())
        logger.debug("paypal_token_refreshed", expires_in=data.get("expires_in"))
        return data["access_token"]

    async def request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        token = await self.get_access_token()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            **kwargs.pop("headers", {}),
        }
        return await self.client.request(method, endpoint, headers=headers, **kwargs)

    def _json_or_raise(self, response: httpx.Response) -> dict[str, Any]:
        if response.is_error:
            raise UpstreamError(PROVIDER, response.status_code, response.text)
        return response.json()

    async def create_subscription(
        self,
        account_id: str,
        email: str,
        plan_id: str,
        return_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        """Create a subscription and return its buyer approval link."""
        response = await self.request(
            "POST",
            "/v1/billing/subscriptions",
            json={
                "plan_id": plan_id,
                "custom_id": account_id,
                "subscriber": {"email_address": email},
                "application_context": {
                    "return_url": return_url,
                    "cancel_url": cancel_url,
                    "brand_name": self.settings.paypal_brand_name,
                    "user_action": "SUBSCRIBE_NOW",
                },
            },
        )
        data = self._json_or_raise(response)

        approval_url = find_link(data.get("links") or [], "approve")
        if not approval_url:
            raise UpstreamError(
                PROVIDER, response.status_code, json.dumps(data), message="PayPal approval link not found"
            )

        logger.info("paypal_subscription_created", account_id=account_id, subscription_id=data.get("id"))
        return CheckoutSession(id=data["id"], url=approval_url)

    async def get_subscription(self, subscription_id: str) -> dict[str, Any]:
        response = await self.request("GET", f"/v1/billing/subscriptions/{subscription_id}")
        return self._json_or_raise(response)

    async def get_portal_url(self, subscription_id: str) -> str:
        data = await self.get_subscription(subscription_id)
        url = find_link(data.get("links") or [], *PORTAL_LINK_PRIORITY)
        if not url:
            raise UpstreamError(
                PROVIDER, None, json.dumps(data), message="PayPal customer portal link not available"
            )
        return url

    async def verify_webhook_signature(self, payload: bytes | str, headers: Mapping[str, str]) -> bool:
        """
        Ask PayPal whether a webhook delivery is authentic.

        Any missing signature header, or a body that is not JSON, fails without
        a network call.
        """
        values = {name: headers.get(name) for name in SIGNATURE_HEADERS}
        if not all(values.values()):
            return False

        try:
            event = json.loads(payload)
        except ValueError:
            return False

        response = await self.request(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            json={
                "auth_algo": values["paypal-auth-algo"],
                "cert_url": values["paypal-cert-url"],
                "transmission_id": values["paypal-transmission-id"],
                "transmission_sig": values["paypal-transmission-sig"],
                "transmission_time": values["paypal-transmission-time"],
                "webhook_id": self.settings.paypal_webhook_id,
                "webhook_event": event,
            },
        )
        if response.is_error:
            return False

        return response.json().get("verification_status") == "SUCCESS"

    async def aclose(self) -> None:
        await self.client.aclose()


@lru_cache
def get_payment_gateway() -> PaymentGatewayClient:
    """Get the process-wide PayPal client (and with it the token cache)."""
    return PaymentGatewayClient(get_settings())
