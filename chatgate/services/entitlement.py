"""Effective tier resolution."""

from datetime import UTC, datetime

from chatgate.models import Account


def is_effective_paid(account: Account, now: datetime | None = None) -> bool:
    """Paid flag set and the subscription has not run past its end date.

    Purely time-based: an account whose end date has passed is free even if no
    cancellation event was ever received.
    """
    if not account.is_pro:
        return False
    end = account.subscription_end_date
    if end is None:
        return True
    if end.tzinfo is None:
        end = end.replace(tzinfo=UTC)
    return end > (now or datetime.now(UTC))
