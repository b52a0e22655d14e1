"""Free-tier daily message quota with fallback credits."""

from datetime import UTC, date, datetime

import structlog

from chatgate.errors import QuotaExceeded
from chatgate.models import Account, QuotaDecision
from chatgate.storage.base import AccountStore

logger = structlog.get_logger(__name__)


def decide_quota(message_count: int, limit: int, credits: int) -> QuotaDecision:
    """
    Decide a free-tier request given today's counter and the credit balance.

    The returned decision carries the counter and balance as they will be once
    the decision is applied.
    """
    if message_count < limit:
        return QuotaDecision(
            accepted=True,
            message_count=message_count + 1,
            credits=credits,
        )

    if credits > 0:
        return QuotaDecision(
            accepted=True,
            used_credit=True,
            message_count=message_count + 1,
            credits=credits - 1,
        )

    return QuotaDecision(accepted=False, message_count=message_count, credits=credits)


def today(now: datetime | None = None) -> date:
    """Counter day, in UTC."""
    return (now or datetime.now(UTC)).astimezone(UTC).date()


class QuotaLedger:
    """Enforces the daily cap for free-tier accounts. Paid accounts never get here."""

    def __init__(self, store: AccountStore, daily_limit: int) -> None:
        self.store = store
        self.daily_limit = daily_limit

    async def consume(self, account: Account, now: datetime | None = None) -> QuotaDecision:
        """Spend one message from today's allowance or one credit.

        Raises:
            QuotaExceeded: limit reached and no credits left; nothing is mutated.
        """
        now = now or datetime.now(UTC)
        decision = await self.store.consume_daily_message(
            account.id, today(now), self.daily_limit, now=now
        )

        if not decision.accepted:
            logger.info(
                "quota_exceeded",
                account_id=account.id,
                message_count=decision.message_count,
                daily_limit=self.daily_limit,
            )
            raise QuotaExceeded(self.daily_limit)

        if decision.used_credit:
            logger.info(
                "credit_consumed",
                account_id=account.id,
                credits_remaining=decision.credits,
                message_count=decision.message_count,
            )

        return decision
