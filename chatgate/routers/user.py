"""Current account profile, entitlement and today's usage."""

from fastapi import APIRouter, Depends

from chatgate.auth import CurrentAccount, Store
from chatgate.config import Settings, get_settings
from chatgate.models import SubscriptionSummary, UsageSummary, UserProfileResponse, UserSummary
from chatgate.services.catalog import allowed_models, default_model
from chatgate.services.entitlement import is_effective_paid
from chatgate.services.quota import today

router = APIRouter(tags=["user"])


@router.get("/user", response_model=UserProfileResponse)
async def get_user(
    account: CurrentAccount,
    store: Store,
    settings: Settings = Depends(get_settings),
) -> UserProfileResponse:
    is_paid = is_effective_paid(account)
    today_messages = await store.get_daily_count(account.id, today())
    limit = settings.free_daily_messages

    return UserProfileResponse(
        user=UserSummary(id=account.id, email=account.email, display_name=account.display_name),
        subscription=SubscriptionSummary(
            is_pro=is_paid,
            credits=account.credits,
            subscription_end_date=account.subscription_end_date,
        ),
        usage=UsageSummary(
            today_messages=today_messages,
            daily_limit=None if is_paid else limit,
            remaining_today=None if is_paid else max(0, limit - today_messages),
        ),
        available_models=allowed_models(is_paid),
        default_model=default_model(is_paid),
    )
