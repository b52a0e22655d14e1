from datetime import timedelta

from chatgate.models import Tier
from chatgate.services.catalog import DEFAULT_MODEL, THINKING_MODEL
from chatgate.services.quota import today
from chatgate.services.usage import estimate_tokens

CHAT = "/api/chat"
BODY = {"messages": [{"role": "user", "content": "Hello"}]}


def test_missing_authorization_is_rejected(client, upstream):
    resp = client.post(CHAT, json=BODY)

    assert resp.status_code == 401
    assert resp.json()["error"] == "unauthorized"
    assert resp.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert upstream.requests == []


def test_invalid_token_is_rejected(client, auth_headers):
    resp = client.post(CHAT, json=BODY, headers=auth_headers("forged"))

    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid or expired token"


def test_identity_without_profile(client, auth_headers, upstream):
    resp = client.post(CHAT, json=BODY, headers=auth_headers("ghost-token"))

    assert resp.status_code == 404
    assert resp.json()["error"] == "profile_not_found"
    assert upstream.requests == []


def test_missing_messages(client, auth_headers):
    resp = client.post(CHAT, json={"model": "openai/gpt-4o"}, headers=auth_headers("free-token"))

    assert resp.status_code == 400
    assert resp.json()["message"] == "Messages array is required"


def test_free_account_streams_and_is_metered(client, auth_headers, store, upstream):
    resp = client.post(CHAT, json=BODY, headers=auth_headers("free-token"))

    expected = b"".join(upstream.chunks)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache"
    assert resp.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert resp.content == expected

    assert upstream.requests[0]["model"] == DEFAULT_MODEL[Tier.FREE]
    assert store.daily[("user-free", today())] == 1

    [entry] = store.usage_logs
    assert entry.user_id == "user-free"
    assert entry.model == DEFAULT_MODEL[Tier.FREE]
    assert entry.tokens_used == estimate_tokens(len(expected))


def test_free_account_paid_features_are_silently_dropped(client, auth_headers, upstream):
    resp = client.post(
        CHAT,
        json={**BODY, "model": "openai/gpt-4o", "webSearch": True, "thinkingMode": True},
        headers=auth_headers("free-token"),
    )

    assert resp.status_code == 200
    payload = upstream.requests[0]
    assert payload["model"] == DEFAULT_MODEL[Tier.FREE]
    assert "plugins" not in payload


def test_pro_account_gets_reasoning_model_and_web_search(client, auth_headers, store, upstream):
    resp = client.post(
        CHAT,
        json={**BODY, "model": "openai/gpt-4o", "webSearch": True, "thinkingMode": True},
        headers=auth_headers("pro-token"),
    )

    assert resp.status_code == 200
    payload = upstream.requests[0]
    assert payload["model"] == THINKING_MODEL
    assert payload["plugins"] == ["web"]
    # paid accounts do not touch the daily counter
    assert ("user-pro", today()) not in store.daily
    assert store.usage_logs[0].model == THINKING_MODEL


def test_expired_pro_account_is_treated_as_free(client, auth_headers, store, upstream, now):
    store.accounts["user-pro"] = store.accounts["user-pro"].model_copy(
        update={"subscription_end_date": now - timedelta(days=1)}
    )

    resp = client.post(CHAT, json={**BODY, "model": "openai/gpt-4o"}, headers=auth_headers("pro-token"))

    assert resp.status_code == 200
    assert upstream.requests[0]["model"] == DEFAULT_MODEL[Tier.FREE]
    assert store.daily[("user-pro", today())] == 1


def test_daily_limit_reached(client, auth_headers, store, upstream):
    store.daily[("user-free", today())] = 30

    resp = client.post(CHAT, json=BODY, headers=auth_headers("free-token"))

    assert resp.status_code == 429
    body = resp.json()
    assert body["error"] == "daily_limit_reached"
    assert body["upgrade_required"] is True
    assert store.daily[("user-free", today())] == 30
    assert upstream.requests == []


def test_credit_spent_past_daily_limit(client, auth_headers, store):
    store.accounts["user-free"] = store.accounts["user-free"].model_copy(update={"credits": 2})
    store.daily[("user-free", today())] = 30

    resp = client.post(CHAT, json=BODY, headers=auth_headers("free-token"))

    assert resp.status_code == 200
    assert store.accounts["user-free"].credits == 1
    assert store.daily[("user-free", today())] == 31


def test_upstream_error_is_reported(client, auth_headers, store, upstream):
    upstream.status_code = 502

    resp = client.post(CHAT, json=BODY, headers=auth_headers("free-token"))

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "upstream_error"
    assert body["details"]["status"] == 502
    assert "rate limited" in body["details"]["body"]
    assert store.usage_logs == []


def test_preflight(client, upstream):
    resp = client.options(CHAT)

    assert resp.status_code == 200
    assert resp.json() == {}
    assert resp.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
    assert resp.headers["access-control-allow-headers"] == "Content-Type, Authorization"
    assert upstream.requests == []


def test_tool_messages_are_relayed_unchanged(client, auth_headers, upstream):
    messages = [
        {"role": "user", "content": "Weather in Oslo?"},
        {"role": "tool", "content": '{"temp": 4}'},
    ]

    resp = client.post(CHAT, json={"messages": messages}, headers=auth_headers("free-token"))

    assert resp.status_code == 200
    assert upstream.requests[0]["messages"] == messages
