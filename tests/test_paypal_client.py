import httpx
import pytest

from chatgate.errors import UpstreamError
from chatgate.services.paypal import PaymentGatewayClient, TokenCache, find_link
from conftest import WEBHOOK_HEADERS, FakePayPal, paypal_settings

TOKEN_PATH = "/v1/oauth2/token"
VERIFY_PATH = "/v1/notifications/verify-webhook-signature"


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def paypal() -> FakePayPal:
    return FakePayPal()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway(paypal, clock) -> PaymentGatewayClient:
    return PaymentGatewayClient(paypal_settings(), transport=httpx.MockTransport(paypal.handler), clock=clock)


def test_token_cache_honours_margin():
    cache = TokenCache()
    assert cache.get(0) is None

    cache.store("tok", 120, now=0)
    assert cache.get(59) == "tok"
    assert cache.get(60) is None


@pytest.mark.asyncio
async def test_cached_token_with_plenty_of_validity_is_reused(gateway, paypal, clock):
    gateway.token_cache.store("cached", 3600, clock.now)

    assert await gateway.get_access_token() == "cached"
    assert paypal.count(TOKEN_PATH) == 0


@pytest.mark.asyncio
async def test_token_close_to_expiry_is_refreshed_once(gateway, paypal, clock):
    gateway.token_cache.store("stale", 30, clock.now)

    first = await gateway.get_access_token()
    second = await gateway.get_access_token()

    assert first != "stale"
    assert first == second
    assert paypal.count(TOKEN_PATH) == 1


@pytest.mark.asyncio
async def test_token_exchange_failure_raises():
    def handler(request):
        return httpx.Response(401, json={"error": "invalid_client"})

    gateway = PaymentGatewayClient(paypal_settings(), transport=httpx.MockTransport(handler))

    with pytest.raises(UpstreamError) as exc_info:
        await gateway.get_access_token()
    assert exc_info.value.upstream_status == 401


@pytest.mark.asyncio
async def test_token_exchange_uses_basic_auth():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"access_token": "A21", "expires_in": 3600})

    gateway = PaymentGatewayClient(paypal_settings(), transport=httpx.MockTransport(handler))
    await gateway.get_access_token()

    assert seen[0].headers["authorization"].startswith("Basic ")
    assert seen[0].content == b"grant_type=client_credentials"


@pytest.mark.asyncio
async def test_missing_signature_header_fails_without_network(gateway, paypal):
    headers = dict(WEBHOOK_HEADERS)
    del headers["paypal-transmission-sig"]

    assert await gateway.verify_webhook_signature(b'{"event_type": "X"}', headers) is False
    assert paypal.calls == []


@pytest.mark.asyncio
async def test_non_json_body_fails_without_network(gateway, paypal):
    assert await gateway.verify_webhook_signature(b"not-json", WEBHOOK_HEADERS) is False
    assert paypal.calls == []


@pytest.mark.asyncio
async def test_signature_verified_remotely(gateway, paypal):
    assert await gateway.verify_webhook_signature(b'{"event_type": "X"}', WEBHOOK_HEADERS) is True

    assert paypal.count(VERIFY_PATH) == 1
    assert paypal.last_json["webhook_id"] == "WH-123"
    assert paypal.last_json["transmission_id"] == "tx-1"
    assert paypal.last_json["webhook_event"] == {"event_type": "X"}


@pytest.mark.asyncio
async def test_failed_verification_status_is_rejected(gateway, paypal):
    paypal.verification_status = "FAILURE"

    assert await gateway.verify_webhook_signature(b'{"event_type": "X"}', WEBHOOK_HEADERS) is False


@pytest.mark.asyncio
async def test_create_subscription_returns_approval_link(gateway, paypal):
    session = await gateway.create_subscription(
        "user-free", "free@example.com", "P-PRO", "http://app/ok", "http://app/cancel"
    )

    assert session.id == "I-NEW"
    assert "ba_token=BA-1" in session.url
    assert paypal.last_json["custom_id"] == "user-free"
    assert paypal.last_json["plan_id"] == "P-PRO"
    assert paypal.last_json["application_context"]["brand_name"] == "ChatWindows"


@pytest.mark.asyncio
async def test_create_subscription_without_approval_link_raises(gateway, paypal):
    paypal.create_links = [{"rel": "self", "href": "https://api/self"}]

    with pytest.raises(UpstreamError):
        await gateway.create_subscription("u", "e@x.com", "P-PRO", "http://ok", "http://cancel")


@pytest.mark.asyncio
async def test_portal_url_prefers_manage_then_edit(gateway, paypal):
    paypal.subscriptions["I-PRO"] = {
        "id": "I-PRO",
        "links": [
            {"rel": "self", "href": "https://api/self"},
            {"rel": "edit", "href": "https://api/edit"},
        ],
    }

    assert await gateway.get_portal_url("I-PRO") == "https://api/edit"


@pytest.mark.asyncio
async def test_unknown_subscription_raises_upstream_error(gateway):
    with pytest.raises(UpstreamError) as exc_info:
        await gateway.get_subscription("I-MISSING")
    assert exc_info.value.upstream_status == 404


def test_find_link_respects_rel_order():
    links = [{"rel": "self", "href": "s"}, {"rel": "manage", "href": "m"}]
    assert find_link(links, "manage", "self") == "m"
    assert find_link(links, "approve") is None
