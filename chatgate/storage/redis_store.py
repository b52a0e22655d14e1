"""Redis-backed account store."""

from __future__ import annotations

from datetime import date, datetime

from redis.asyncio import Redis

from chatgate.models import Account, Feedback, QuotaDecision, UsageLogEntry
from chatgate.storage.base import AccountStore

# Fields that may be absent on an account hash
_NULLABLE = ("email", "display_name", "subscription_end_date", "paypal_subscription_id",
             "paypal_payer_id", "created_at", "updated_at")

# Atomic free-tier quota check.
# KEYS[1] = daily counter, KEYS[2] = account hash
# ARGV = [limit, counter_ttl_seconds, now_iso]
# Returns {accepted, used_credit, message_count, credits}
_LUA_CONSUME = r"""
local counter = KEYS[1]
local account = KEYS[2]
local limit = tonumber(ARGV[1])
local ttl = tonumber(ARGV[2])

local count = tonumber(redis.call('GET', counter) or '0')
local credits = tonumber(redis.call('HGET', account, 'credits') or '0')

if count >= limit then
  if credits <= 0 then
    return {0, 0, count, credits}
  end
  credits = redis.call('HINCRBY', account, 'credits', -1)
  redis.call('HSET', account, 'updated_at', ARGV[3])
  count = redis.call('INCR', counter)
  redis.call('EXPIRE', counter, ttl)
  return {1, 1, count, credits}
end

count = redis.call('INCR', counter)
redis.call('EXPIRE', counter, ttl)
return {1, 0, count, credits}
"""


def _account_key(account_id: str) -> str:
    return f"account:{account_id}"


def _subscription_key(subscription_id: str) -> str:
    return f"subscription:{subscription_id}"


def _daily_key(account_id: str, day: date) -> str:
    return f"usage:daily:{account_id}:{day.isoformat()}"


def _usage_log_key(account_id: str) -> str:
    return f"usage:log:{account_id}"


FEEDBACK_KEY = "feedback"


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


def account_to_hash(account: Account) -> tuple[dict[str, str], list[str]]:
    """Split an account into fields to set and nullable fields to delete."""
    mapping: dict[str, str] = {
        "id": account.id,
        "credits": str(account.credits),
        "is_pro": "true" if account.is_pro else "false",
    }
    missing: list[str] = []
    for field in _NULLABLE:
        value = getattr(account, field)
        if value is None:
            missing.append(field)
        elif isinstance(value, datetime):
            mapping[field] = value.isoformat()
        else:
            mapping[field] = str(value)
    return mapping, missing


def account_from_hash(data: dict) -> Account | None:
    if not data:
        return None
    fields = {_decode(k): _decode(v) for k, v in data.items()}
    fields["is_pro"] = fields.get("is_pro", "false") == "true"
    fields["credits"] = int(fields.get("credits", "0"))
    return Account.model_validate(fields)


class RedisAccountStore(AccountStore):
    """Account records as hashes, counters as plain keys, logs as JSON lists."""

    def __init__(self, redis: Redis, counter_ttl_seconds: int = 60 * 60 * 24 * 30) -> None:
        self.redis = redis
        self.counter_ttl_seconds = counter_ttl_seconds

    async def get_account(self, account_id: str) -> Account | None:
        return account_from_hash(await self.redis.hgetall(_account_key(account_id)))

    async def _relink(self, account_id: str, subscription_id: str | None) -> None:
        """Point the linkage index at ``subscription_id``, dropping the previous entry."""
        previous = await self.redis.hget(_account_key(account_id), "paypal_subscription_id")
        previous = _decode(previous) if previous else None
        if previous and previous != subscription_id:
            await self.redis.delete(_subscription_key(previous))
        if subscription_id:
            await self.redis.set(_subscription_key(subscription_id), account_id)

    async def save_account(self, account: Account) -> None:
        key = _account_key(account.id)
        await self._relink(account.id, account.paypal_subscription_id)
        mapping, missing = account_to_hash(account)
        await self.redis.hset(key, mapping=mapping)
        if missing:
            await self.redis.hdel(key, *missing)

    async def find_account_id_by_subscription(self, subscription_id: str) -> str | None:
        account_id = await self.redis.get(_subscription_key(subscription_id))
        if not account_id:
            return None
        account_id = _decode(account_id)
        linked = await self.redis.hget(_account_key(account_id), "paypal_subscription_id")
        if not linked or _decode(linked) != subscription_id:
            return None
        return account_id

    async def activate_subscription(
        self,
        account_id: str,
        *,
        subscription_id: str,
        payer_id: str | None,
        is_pro: bool,
        end_date: datetime | None,
        now: datetime,
    ) -> Account | None:
        key = _account_key(account_id)
        if not await self.redis.exists(key):
            return None

        mapping = {
            "is_pro": "true" if is_pro else "false",
            "paypal_subscription_id": subscription_id,
            "updated_at": now.isoformat(),
        }
        cleared = []
        if payer_id:
            mapping["paypal_payer_id"] = payer_id
        else:
            cleared.append("paypal_payer_id")
        if end_date:
            mapping["subscription_end_date"] = end_date.isoformat()
        else:
            cleared.append("subscription_end_date")

        await self._relink(account_id, subscription_id)
        await self.redis.hset(key, mapping=mapping)
        if cleared:
            await self.redis.hdel(key, *cleared)
        return await self.get_account(account_id)

    async def deactivate_subscription(self, account_id: str, *, now: datetime) -> Account | None:
        key = _account_key(account_id)
        if not await self.redis.exists(key):
            return None
        await self.redis.hset(key, mapping={"is_pro": "false", "updated_at": now.isoformat()})
        await self.redis.hdel(key, "subscription_end_date")
        return await self.get_account(account_id)

    async def get_daily_count(self, account_id: str, day: date) -> int:
        value = await self.redis.get(_daily_key(account_id, day))
        return int(value) if value else 0

    async def consume_daily_message(
        self, account_id: str, day: date, limit: int, *, now: datetime
    ) -> QuotaDecision:
        accepted, used_credit, count, credits = await self.redis.eval(
            _LUA_CONSUME,
            2,
            _daily_key(account_id, day),
            _account_key(account_id),
            limit,
            self.counter_ttl_seconds,
            now.isoformat(),
        )
        return QuotaDecision(
            accepted=bool(int(accepted)),
            used_credit=bool(int(used_credit)),
            message_count=int(count),
            credits=int(credits),
        )

    async def append_usage_log(self, entry: UsageLogEntry) -> None:
        await self.redis.rpush(_usage_log_key(entry.user_id), entry.model_dump_json())

    async def list_usage_logs(self, account_id: str) -> list[UsageLogEntry]:
        raw = await self.redis.lrange(_usage_log_key(account_id), 0, -1)
        return [UsageLogEntry.model_validate_json(item) for item in raw]

    async def add_feedback(self, feedback: Feedback) -> str:
        await self.redis.rpush(FEEDBACK_KEY, feedback.model_dump_json())
        return feedback.id

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.aclose()
