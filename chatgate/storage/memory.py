"""In-process account store for development and tests."""

from __future__ import annotations

from datetime import date, datetime

from chatgate.models import Account, Feedback, QuotaDecision, UsageLogEntry
from chatgate.services.quota import decide_quota
from chatgate.storage.base import AccountStore


class MemoryAccountStore(AccountStore):
    """Dict-backed store.

    Methods never await between reading and writing, so each call is atomic
    with respect to other tasks on the same event loop.
    """

    def __init__(self, accounts: list[Account] | None = None) -> None:
        self.accounts: dict[str, Account] = {}
        self.subscriptions: dict[str, str] = {}
        self.daily: dict[tuple[str, date], int] = {}
        self.usage_logs: list[UsageLogEntry] = []
        self.feedback: list[Feedback] = []
        for account in accounts or []:
            self._put(account)

    def _put(self, account: Account) -> None:
        previous = self.accounts.get(account.id)
        if previous and previous.paypal_subscription_id not in (None, account.paypal_subscription_id):
            self.subscriptions.pop(previous.paypal_subscription_id, None)
        self.accounts[account.id] = account
        if account.paypal_subscription_id:
            self.subscriptions[account.paypal_subscription_id] = account.id

    async def get_account(self, account_id: str) -> Account | None:
        account = self.accounts.get(account_id)
        return account.model_copy() if account else None

    async def save_account(self, account: Account) -> None:
        self._put(account.model_copy())

    async def find_account_id_by_subscription(self, subscription_id: str) -> str | None:
        account = self.accounts.get(self.subscriptions.get(subscription_id, ""))
        if account is None or account.paypal_subscription_id != subscription_id:
            return None
        return account.id

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
        account = self.accounts.get(account_id)
        if account is None:
            return None
        updated = account.model_copy(
            update={
                "is_pro": is_pro,
                "paypal_subscription_id": subscription_id,
                "paypal_payer_id": payer_id,
                "subscription_end_date": end_date,
                "updated_at": now,
            }
        )
        self._put(updated)
        return updated.model_copy()

    async def deactivate_subscription(self, account_id: str, *, now: datetime) -> Account | None:
        account = self.accounts.get(account_id)
        if account is None:
            return None
        updated = account.model_copy(
            update={"is_pro": False, "subscription_end_date": None, "updated_at": now}
        )
        self._put(updated)
        return updated.model_copy()

    async def get_daily_count(self, account_id: str, day: date) -> int:
        return self.daily.get((account_id, day), 0)

    async def consume_daily_message(
        self, account_id: str, day: date, limit: int, *, now: datetime
    ) -> QuotaDecision:
        account = self.accounts.get(account_id)
        credits = account.credits if account else 0
        decision = decide_quota(self.daily.get((account_id, day), 0), limit, credits)
        if not decision.accepted:
            return decision

        self.daily[(account_id, day)] = decision.message_count
        if decision.used_credit and account is not None:
            self.accounts[account_id] = account.model_copy(
                update={"credits": decision.credits, "updated_at": now}
            )
        return decision

    async def append_usage_log(self, entry: UsageLogEntry) -> None:
        self.usage_logs.append(entry)

    async def list_usage_logs(self, account_id: str) -> list[UsageLogEntry]:
        return [entry for entry in self.usage_logs if entry.user_id == account_id]

    async def add_feedback(self, feedback: Feedback) -> str:
        self.feedback.append(feedback)
        return feedback.id
