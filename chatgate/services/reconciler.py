"""Applies PayPal webhook events to account entitlement.

Every write is an upsert keyed by account id, so redelivery is harmless.
Events are not ordered: whichever delivery arrives last decides the state.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from chatgate.errors import ReconciliationUnresolved, UpstreamError
from chatgate.models import WebhookEvent
from chatgate.services.paypal import PaymentGatewayClient
from chatgate.storage.base import AccountStore

logger = structlog.get_logger(__name__)

SUBSCRIPTION_UPSERT_EVENTS = frozenset({
    "BILLING.SUBSCRIPTION.CREATED",
    "BILLING.SUBSCRIPTION.ACTIVATED",
    "BILLING.SUBSCRIPTION.UPDATED",
    "BILLING.SUBSCRIPTION.RE-ACTIVATED",
})

SUBSCRIPTION_ENDED_EVENTS = frozenset({
    "BILLING.SUBSCRIPTION.CANCELLED",
    "BILLING.SUBSCRIPTION.SUSPENDED",
    "BILLING.SUBSCRIPTION.EXPIRED",
})

PAYMENT_EVENTS = frozenset({
    "PAYMENT.SALE.COMPLETED",
    "PAYMENT.SALE.DENIED",
})

REFUND_EVENTS = frozenset({
    "PAYMENT.SALE.REFUNDED",
    "PAYMENT.SALE.REVERSED",
})


class Outcome(str, Enum):
    """What happened to one webhook event."""

    APPLIED = "applied"
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"
    FAILED = "failed"


def extract_subscription_id(resource: dict[str, Any]) -> str | None:
    """Subscription id carried by a payment/refund resource."""
    return (
        resource.get("billing_agreement_id")
        or resource.get("billing_subscription_id")
        or resource.get("subscription_id")
        or None
    )


def parse_billing_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("billing_time_unparseable", value=value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class SubscriptionEventReconciler:
    """Moves accounts between Active (paid, linked, expiry set) and Inactive."""

    def __init__(self, store: AccountStore, gateway: PaymentGatewayClient) -> None:
        self.store = store
        self.gateway = gateway

    async def handle(self, event: WebhookEvent) -> Outcome:
        """
        Dispatch one verified event.

        Never raises: unresolvable events, failed subscription refreshes and
        store errors are logged and reported as an outcome, so the provider
        always gets its acknowledgement.
        """
        event_type = event.event_type
        log = logger.bind(event_type=event_type, event_id=event.id)

        try:
            if event_type in SUBSCRIPTION_UPSERT_EVENTS:
                await self.apply_subscription(event.resource)
                outcome = Outcome.APPLIED
            elif event_type in SUBSCRIPTION_ENDED_EVENTS:
                outcome = await self.end_subscription(event.resource)
            elif event_type in PAYMENT_EVENTS:
                outcome = await self.refresh_after_payment(event.resource)
            elif event_type in REFUND_EVENTS:
                outcome = await self.revoke_after_refund(event.resource)
            else:
                log.info("webhook_event_unhandled")
                return Outcome.IGNORED
        except ReconciliationUnresolved as exc:
            log.error("webhook_event_unresolved", reason=exc.message)
            return Outcome.UNRESOLVED
        except Exception:
            log.error("webhook_reconciliation_failed", exc_info=True)
            return Outcome.FAILED

        log.info("webhook_event_processed", outcome=outcome.value)
        return outcome

    async def _resolve_account(self, custom_id: str | None, subscription_id: str | None) -> str:
        if custom_id:
            return custom_id
        if subscription_id:
            account_id = await self.store.find_account_id_by_subscription(subscription_id)
            if account_id:
                return account_id
        raise ReconciliationUnresolved()

    async def apply_subscription(self, resource: dict[str, Any]) -> None:
        """Creation/activation/update: store linkage, payer, status and next billing time."""
        subscription_id = resource.get("id")
        if not subscription_id:
            raise ReconciliationUnresolved("Subscription event without subscription id")
        account_id = await self._resolve_account(resource.get("custom_id"), subscription_id)

        account = await self.store.activate_subscription(
            account_id,
            subscription_id=subscription_id,
            payer_id=(resource.get("subscriber") or {}).get("payer_id"),
            is_pro=resource.get("status") == "ACTIVE",
            end_date=parse_billing_time((resource.get("billing_info") or {}).get("next_billing_time")),
            now=datetime.now(UTC),
        )
        if account is None:
            raise ReconciliationUnresolved(f"No account {account_id} for subscription {subscription_id}")

    async def end_subscription(self, resource: dict[str, Any]) -> Outcome:
        """Cancellation/suspension/expiry: drop to Inactive, keep the subscription id.

        An event for a subscription the account has since replaced is ignored.
        """
        subscription_id = resource.get("id")
        if not subscription_id:
            raise ReconciliationUnresolved("Subscription end event without subscription id")
        account_id = await self._resolve_account(resource.get("custom_id"), subscription_id)

        account = await self.store.get_account(account_id)
        if account is None:
            raise ReconciliationUnresolved(f"No account {account_id}")
        if account.paypal_subscription_id not in (None, subscription_id):
            logger.info(
                "stale_subscription_event_ignored",
                account_id=account_id,
                subscription_id=subscription_id,
                linked_subscription_id=account.paypal_subscription_id,
            )
            return Outcome.IGNORED

        await self._deactivate(account_id)
        return Outcome.APPLIED

    async def refresh_after_payment(self, resource: dict[str, Any]) -> Outcome:
        """Payment events carry no tier state; re-read the subscription instead."""
        subscription_id = extract_subscription_id(resource)
        if not subscription_id:
            logger.info("payment_event_without_subscription")
            return Outcome.IGNORED

        try:
            subscription = await self.gateway.get_subscription(subscription_id)
        except UpstreamError as exc:
            logger.error(
                "subscription_refresh_failed",
                subscription_id=subscription_id,
                status=exc.upstream_status,
            )
            return Outcome.FAILED

        await self.apply_subscription(subscription)
        logger.info("subscription_refreshed", subscription_id=subscription_id)
        return Outcome.APPLIED

    async def revoke_after_refund(self, resource: dict[str, Any]) -> Outcome:
        """Refund/reversal: Inactive, resolved through the stored linkage only."""
        subscription_id = extract_subscription_id(resource)
        if not subscription_id:
            logger.info("refund_event_without_subscription")
            return Outcome.IGNORED

        account_id = await self.store.find_account_id_by_subscription(subscription_id)
        if not account_id:
            raise ReconciliationUnresolved(f"No account linked to subscription {subscription_id}")
        await self._deactivate(account_id)
        logger.info("subscription_revoked_after_refund", account_id=account_id)
        return Outcome.APPLIED

    async def _deactivate(self, account_id: str) -> None:
        account = await self.store.deactivate_subscription(account_id, now=datetime.now(UTC))
        if account is None:
            raise ReconciliationUnresolved(f"No account {account_id}")
