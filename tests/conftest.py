"""Pytest configuration and fixtures."""

import os

# Must be set before the app module builds its settings
os.environ.setdefault("PROMETHEUS_ENABLED", "false")
os.environ.setdefault("ACCOUNT_STORE_BACKEND", "memory")

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from chatgate.auth import dependencies as auth_deps
from chatgate.auth.identity import IdentityVerifier
from chatgate.config import Settings
from chatgate.errors import AuthError
from chatgate.main import create_app
from chatgate.models import Account, Identity
from chatgate.services.inference import InferenceClient, get_inference_client
from chatgate.storage.memory import MemoryAccountStore

SSE_CHUNKS = [
    b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n',
    b'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n',
    b"data: [DONE]\n\n",
]

WEBHOOK_HEADERS = {
    "paypal-transmission-id": "tx-1",
    "paypal-transmission-time": "2026-10-19T10:00:00Z",
    "paypal-cert-url": "https://api.paypal.com/cert.pem",
    "paypal-auth-algo": "SHA256withRSA",
    "paypal-transmission-sig": "c2lnbmF0dXJl",
}


class FakeIdentityVerifier(IdentityVerifier):
    """Maps known tokens to identities; anything else is rejected."""

    def __init__(self, tokens: dict[str, Identity]):
        self.tokens = tokens
        self.calls: list[str] = []

    async def verify(self, token: str) -> Identity:
        self.calls.append(token)
        if token not in self.tokens:
            raise AuthError("Invalid or expired token")
        return self.tokens[token]


class FakeUpstream:
    """Stands in for the chat-completion provider behind httpx.MockTransport."""

    def __init__(self):
        self.requests: list[dict] = []
        self.headers: list[httpx.Headers] = []
        self.status_code = 200
        self.error_body = b'{"error":{"message":"rate limited"}}'
        self.chunks = list(SSE_CHUNKS)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        self.headers.append(request.headers)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, content=self.error_body)

        chunks = list(self.chunks)

        async def body():
            for chunk in chunks:
                yield chunk

        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=body(),
        )


class FakePayPal:
    """Minimal PayPal REST API behind httpx.MockTransport."""

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.verification_status = "SUCCESS"
        self.subscriptions: dict[str, dict] = {}
        self.create_links = [
            {"rel": "approve", "href": "https://www.sandbox.paypal.com/webapps/billing/subscriptions?ba_token=BA-1"},
            {"rel": "self", "href": "https://api-m.sandbox.paypal.com/v1/billing/subscriptions/I-NEW"},
        ]
        self.last_json: dict | None = None
        self.token_expires_in = 32400

    def count(self, path: str) -> int:
        return sum(1 for _, p in self.calls if p == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        if request.content and request.headers.get("content-type") == "application/json":
            self.last_json = json.loads(request.content)

        if path == "/v1/oauth2/token":
            return httpx.Response(
                200,
                json={"access_token": f"A21-{len(self.calls)}", "expires_in": self.token_expires_in},
            )
        if path == "/v1/notifications/verify-webhook-signature":
            return httpx.Response(200, json={"verification_status": self.verification_status})
        if path == "/v1/billing/subscriptions" and request.method == "POST":
            return httpx.Response(201, json={"id": "I-NEW", "status": "APPROVAL_PENDING", "links": self.create_links})
        if path.startswith("/v1/billing/subscriptions/"):
            subscription_id = path.rsplit("/", 1)[-1]
            if subscription_id in self.subscriptions:
                return httpx.Response(200, json=self.subscriptions[subscription_id])
            return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})
        return httpx.Response(404)


def paypal_settings(**overrides) -> Settings:
    values = {
        "paypal_client_id": "client-id",
        "paypal_client_secret": "client-secret",
        "paypal_webhook_id": "WH-123",
        "paypal_plan_id": "P-PRO",
        "prometheus_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def now() -> datetime:
    return datetime.now(UTC)


@pytest.fixture
def free_account() -> Account:
    return Account(id="user-free", email="free@example.com", display_name="Free User", credits=0)


@pytest.fixture
def pro_account(now) -> Account:
    return Account(
        id="user-pro",
        email="pro@example.com",
        display_name="Pro User",
        credits=5,
        is_pro=True,
        subscription_end_date=now + timedelta(days=30),
        paypal_subscription_id="I-PRO",
        paypal_payer_id="PAYER-PRO",
    )


@pytest.fixture
def store(free_account, pro_account) -> MemoryAccountStore:
    return MemoryAccountStore([free_account, pro_account])


@pytest.fixture
def verifier() -> FakeIdentityVerifier:
    return FakeIdentityVerifier(
        {
            "free-token": Identity(id="user-free", email="free@example.com"),
            "pro-token": Identity(id="user-pro", email="pro@example.com"),
            "ghost-token": Identity(id="user-ghost", email="ghost@example.com"),
        }
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def inference_client(upstream) -> InferenceClient:
    settings = Settings(_env_file=None, openrouter_api_key="sk-or-test", prometheus_enabled=False)
    return InferenceClient(settings, transport=httpx.MockTransport(upstream.handler))


@pytest.fixture
def app(store, verifier, inference_client):
    app = create_app()
    app.dependency_overrides[auth_deps.get_account_store] = lambda: store
    app.dependency_overrides[auth_deps.get_identity_verifier] = lambda: verifier
    app.dependency_overrides[get_inference_client] = lambda: inference_client
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def build(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    return build
