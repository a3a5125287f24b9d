"""
Webhook handlers for Stripe
"""

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from core.dependencies import get_stripe_provider
from core.logging import BusinessEvents
from core.metrics import webhook_events_total
from db.models import PaymentSession, PaymentSessionStatus
from db.session import get_db
from payments.stripe_provider import StripeProviderService

router = APIRouter()

log = structlog.get_logger(__name__)

# PaymentIntent event type -> resulting payment session status
SESSION_STATUS_BY_EVENT = {
    "payment_intent.succeeded": PaymentSessionStatus.authorized,
    "payment_intent.amount_capturable_updated": PaymentSessionStatus.authorized,
    "payment_intent.payment_failed": PaymentSessionStatus.error,
    "payment_intent.canceled": PaymentSessionStatus.canceled,
}


@router.post("/webhook/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    provider: StripeProviderService = Depends(get_stripe_provider),
):
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="signature missing")

    payload = await request.body()
    try:
        event = provider.construct_webhook_event(payload, signature)
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    log.info(BusinessEvents.WEBHOOK_RECEIVED, type=event.type)
    webhook_events_total.labels(type=event.type).inc()

    status = SESSION_STATUS_BY_EVENT.get(event.type)
    if status is None:
        return {"status": "ignored"}

    payment_intent = event.data.object
    session = db.query(PaymentSession).filter_by(intent_id=payment_intent.id).first()
    if session is None:
        raise HTTPException(status_code=404, detail="Payment session not found")

    session.status = status
    db.commit()
    log.info(
        BusinessEvents.PAYMENT_SESSION_UPDATED,
        payment_session_id=session.id,
        cart_id=session.cart_id,
        status=status.value,
    )
    return {"status": "success"}
