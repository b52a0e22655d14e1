"""Account store interface."""

from abc import ABC, abstractmethod
from datetime import date, datetime

from chatgate.models import Account, Feedback, QuotaDecision, UsageLogEntry


class AccountStore(ABC):
    """
    Accessor over account records, daily usage counters and usage logs.

    Writes are upserts keyed by account id (plus date for counters), so
    repeating one is safe.
    """

    # ============ Accounts ============

    @abstractmethod
    async def get_account(self, account_id: str) -> Account | None:
        """Return the account record, or None if it was never provisioned."""

    @abstractmethod
    async def save_account(self, account: Account) -> None:
        """Create or replace a whole account record."""

    @abstractmethod
    async def find_account_id_by_subscription(self, subscription_id: str) -> str | None:
        """Account currently linked to ``subscription_id``; None once it links another."""

    @abstractmethod
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
        """Store subscription linkage and entitlement. None if the account is unknown."""

    @abstractmethod
    async def deactivate_subscription(self, account_id: str, *, now: datetime) -> Account | None:
        """Clear paid flag and end date; the subscription id stays for lookups."""

    # ============ Quota ============

    @abstractmethod
    async def get_daily_count(self, account_id: str, day: date) -> int:
        """Messages accepted today; 0 when no counter exists yet."""

    @abstractmethod
    async def consume_daily_message(
        self, account_id: str, day: date, limit: int, *, now: datetime
    ) -> QuotaDecision:
        """
        Check the counter against ``limit`` and the credit balance, and apply
        the resulting mutation in one atomic step.

        Under the limit: counter + 1. At or over it with credits: credits - 1
        and counter + 1. Otherwise nothing changes and the decision is rejected.
        """

    # ============ Usage & feedback ============

    @abstractmethod
    async def append_usage_log(self, entry: UsageLogEntry) -> None:
        """Append one usage record."""

    @abstractmethod
    async def list_usage_logs(self, account_id: str) -> list[UsageLogEntry]:
        """All usage records for an account, oldest first."""

    @abstractmethod
    async def add_feedback(self, feedback: Feedback) -> str:
        """Store a feedback record and return its id."""

    # ============ Lifecycle ============

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
