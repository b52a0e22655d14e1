"""PayPal billing endpoints: checkout, customer portal and webhook receiver.

Endpoints:
- POST /paypal/checkout : create a subscription and return its approval URL
- POST /paypal/portal   : return the subscription management URL
- POST /paypal/webhook  : PayPal webhook receiver (remote signature verification)

Every endpoint answers 503 before touching PayPal when it is not configured.
"""
import structlog
from fastapi import APIRouter, Body, Depends, Request
from pydantic import ValidationError

from chatgate.auth import CurrentAccount, Store
from chatgate.config import Settings, get_settings
from chatgate.errors import ConfigurationMissing, InvalidRequest, NoActiveSubscription, WebhookSignatureInvalid
from chatgate.models import CheckoutRequest, CheckoutResponse, PortalResponse, WebhookEvent
from chatgate.services.paypal import PaymentGatewayClient, get_payment_gateway
from chatgate.services.reconciler import SubscriptionEventReconciler

router = APIRouter(prefix="/paypal", tags=["billing"])
logger = structlog.get_logger(__name__)


async def require_payment_gateway(
    settings: Settings = Depends(get_settings),
) -> PaymentGatewayClient:
    """The PayPal client, or 503 when credentials are not filled in."""
    if not settings.paypal_configured:
        raise ConfigurationMissing()
    return get_payment_gateway()


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    account: CurrentAccount,
    gateway: PaymentGatewayClient = Depends(require_payment_gateway),
    settings: Settings = Depends(get_settings),
    body: CheckoutRequest | None = Body(default=None),
) -> CheckoutResponse:
    """Start a Pro subscription for the current account."""
    plan_id = (body.plan_id if body else None) or settings.paypal_plan_id
    if not plan_id or "<" in plan_id:
        raise InvalidRequest("Plan ID not configured. Please set up PayPal Billing Plans.")

    frontend_url = settings.frontend_url.rstrip("/")
    session = await gateway.create_subscription(
        account.id,
        account.email or "",
        plan_id,
        return_url=f"{frontend_url}/subscription/success",
        cancel_url=f"{frontend_url}/subscription/cancel",
    )
    return CheckoutResponse(subscription_id=session.id, url=session.url)


@router.post("/portal", response_model=PortalResponse)
async def portal(
    account: CurrentAccount,
    gateway: PaymentGatewayClient = Depends(require_payment_gateway),
) -> PortalResponse:
    """Return the PayPal page where the subscriber manages the subscription."""
    if not account.paypal_subscription_id:
        raise NoActiveSubscription()
    url = await gateway.get_portal_url(account.paypal_subscription_id)
    return PortalResponse(url=url)


@router.post("/webhook")
async def webhook(
    request: Request,
    store: Store,
    gateway: PaymentGatewayClient = Depends(require_payment_gateway),
) -> dict:
    """Receive PayPal webhook events.

    The signature is checked by PayPal before anything is parsed. Once an event
    is dispatched the answer is always 200 so PayPal does not keep redelivering
    events that can never be matched to an account.
    """
    payload = await request.body()

    if not await gateway.verify_webhook_signature(payload, request.headers):
        logger.warning("webhook_signature_invalid")
        raise WebhookSignatureInvalid()

    try:
        event = WebhookEvent.model_validate_json(payload)
    except ValidationError as exc:
        raise InvalidRequest("Malformed webhook event") from exc

    outcome = await SubscriptionEventReconciler(store, gateway).handle(event)
    logger.info("webhook_processed", event_type=event.event_type, outcome=outcome.value)
    return {"received": True}
