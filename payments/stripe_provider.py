"""
Stripe Payment Provider

This module maps the storefront's cart / payment session abstraction onto
Stripe PaymentIntents:
- Creating payment intents for a cart (linking or creating the Stripe customer)
- Keeping the intent's amount and customer in sync with the cart
- Capturing, refunding and cancelling payments
- Verifying webhook signatures
"""

from typing import Any

import stripe
import structlog
import tenacity
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from core.logging import BusinessEvents
from core.settings import StripeOptions
from db.models import PaymentSessionStatus

log = structlog.get_logger(__name__)

INTENT_STATUS_MAP = {
    "requires_payment_method": PaymentSessionStatus.pending,
    "requires_confirmation": PaymentSessionStatus.pending,
    "processing": PaymentSessionStatus.pending,
    "requires_action": PaymentSessionStatus.requires_more,
    "canceled": PaymentSessionStatus.canceled,
    "requires_capture": PaymentSessionStatus.authorized,
    "succeeded": PaymentSessionStatus.authorized,
}

# Read-only calls are retried on transient network failures; writes never are
retry_transient = tenacity.retry(
    retry=tenacity.retry_if_exception_type(stripe.APIConnectionError),
    stop=tenacity.stop_after_attempt(3),
    wait=tenacity.wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)


class StripeProviderError(Exception):
    pass


class CustomerData(BaseModel):
    id: str | None = None
    email: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def stripe_id(self) -> str | None:
        return self.metadata.get("stripe_id")


class PaymentContext(BaseModel):
    """What the provider needs to know about a cart to charge it."""

    cart_id: str
    email: str | None = None
    amount: float  # minor units, e.g. cents
    currency_code: str
    customer: CustomerData | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    resource_id: str | None = None

    @property
    def stripe_customer_id(self) -> str | None:
        return self.customer.stripe_id if self.customer else None


def _field(obj, key: str, default=None):
    """Read a key from a Stripe object or a plain dict."""
    try:
        return obj[key]
    except (KeyError, TypeError):
        return default


def _error_intent(error: stripe.StripeError):
    """The PaymentIntent attached to a Stripe error response, if any."""
    return getattr(getattr(error, "error", None), "payment_intent", None)


class StripeProviderService:
    identifier = "stripe"

    def __init__(self, options: StripeOptions):
        self.options = options
        stripe.api_key = options.api_key

    @property
    def payment_intent_options(self) -> dict[str, Any]:
        """Extra PaymentIntent parameters for method-specific providers."""
        return {}

    async def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return await run_in_threadpool(fn, *args, **kwargs)
        except stripe.StripeError as e:
            log.error(
                BusinessEvents.PAYMENT_FAILURE,
                provider=self.identifier,
                operation=operation,
                error=str(e),
            )
            raise StripeProviderError(str(e)) from e

    async def create_payment(self, context: PaymentContext) -> dict[str, Any]:
        """
        Create a PaymentIntent for a cart.

        Args:
            context: Cart amount, currency, customer and cart context

        Returns:
            Dict with the created intent as ``session_data`` and the Stripe
            customer link as ``collected_data``
        """
        description = context.context.get("payment_description")
        if description is None:
            description = self.options.payment_description
        intent_request = {
            "description": description,
            "amount": round(context.amount),
            "currency": context.currency_code,
            "metadata": {"cart_id": context.cart_id},
            "capture_method": "automatic" if self.options.capture else "manual",
        }
        if context.resource_id:
            intent_request["metadata"]["resource_id"] = context.resource_id
        if self.options.automatic_payment_methods:
            intent_request["automatic_payment_methods"] = {"enabled": True}
        intent_request.update(self.payment_intent_options)

        log.info(
            BusinessEvents.PAYMENT_ATTEMPT,
            provider=self.identifier,
            cart_id=context.cart_id,
            amount=intent_request["amount"],
        )

        customer_id = context.stripe_customer_id
        if not customer_id:
            email = context.email or (context.customer.email if context.customer else None)
            metadata = (
                {"customer_id": context.customer.id}
                if context.customer and context.customer.id
                else {}
            )
            stripe_customer = await self._call(
                "create_customer", stripe.Customer.create, email=email, metadata=metadata
            )
            customer_id = _field(stripe_customer, "id")
        intent_request["customer"] = customer_id

        intent = await self._call(
            "create_payment", stripe.PaymentIntent.create, **intent_request
        )

        log.info(
            BusinessEvents.PAYMENT_SUCCESS,
            provider=self.identifier,
            cart_id=context.cart_id,
            amount=intent_request["amount"],
            provider_transaction_id=_field(intent, "id"),
        )

        return {
            "session_data": intent,
            "collected_data": {"customer": {"stripe_id": customer_id}},
        }

    async def retrieve_payment(self, payment: dict[str, Any]):
        """Fetch the PaymentIntent behind a payment or payment session."""
        return await self._call(
            "retrieve_payment",
            retry_transient(stripe.PaymentIntent.retrieve),
            payment["data"]["id"],
        )

    async def get_payment_data(self, session: dict[str, Any]):
        return await self.retrieve_payment(session)

    async def get_status(self, data: dict[str, Any]) -> PaymentSessionStatus:
        intent = await self._call(
            "get_status", retry_transient(stripe.PaymentIntent.retrieve), data["id"]
        )
        return INTENT_STATUS_MAP.get(
            _field(intent, "status"), PaymentSessionStatus.pending
        )

    async def authorize_payment(self, session: dict[str, Any]) -> dict[str, Any]:
        status = await self.get_status(session["data"])
        return {"status": status, "data": session["data"]}

    async def update_payment(self, session_data: dict[str, Any], cart: PaymentContext):
        """
        Bring an existing intent in line with the cart.

        A changed customer needs a brand new intent; otherwise only the
        amount is updated, and only when it differs.
        """
        if cart.stripe_customer_id != _field(session_data, "customer"):
            created = await self.create_payment(cart)
            return created["session_data"]

        amount = round(cart.amount)
        if cart.amount and _field(session_data, "amount") == amount:
            return session_data

        return await self._call(
            "update_payment",
            stripe.PaymentIntent.modify,
            _field(session_data, "id"),
            amount=amount,
        )

    async def update_payment_data(
        self, session_data: dict[str, Any], data: dict[str, Any]
    ):
        if "amount" in data:
            raise StripeProviderError(
                "Cannot update amount, use update_payment instead"
            )
        return await self._call(
            "update_payment_data",
            stripe.PaymentIntent.modify,
            _field(session_data, "id"),
            **data,
        )

    async def update_payment_intent_customer(self, intent_id: str, customer_id: str):
        return await self._call(
            "update_payment_intent_customer",
            stripe.PaymentIntent.modify,
            intent_id,
            customer=customer_id,
        )

    async def capture_payment(self, payment: dict[str, Any]):
        intent_id = payment["data"]["id"]
        try:
            return await run_in_threadpool(stripe.PaymentIntent.capture, intent_id)
        except stripe.StripeError as e:
            intent = _error_intent(e)
            if (
                e.code == "payment_intent_unexpected_state"
                and _field(intent, "status") == "succeeded"
            ):
                log.info(
                    BusinessEvents.PAYMENT_ALREADY_CAPTURED,
                    provider=self.identifier,
                    provider_transaction_id=intent_id,
                )
                return intent
            log.error(
                BusinessEvents.PAYMENT_FAILURE,
                provider=self.identifier,
                operation="capture_payment",
                provider_transaction_id=intent_id,
                error=str(e),
            )
            raise StripeProviderError(str(e)) from e

    async def refund_payment(self, payment: dict[str, Any], amount: float):
        """Refund ``amount`` (minor units) of a captured payment."""
        data = payment["data"]
        await self._call(
            "refund_payment",
            stripe.Refund.create,
            amount=round(amount),
            payment_intent=_field(data, "payment_intent") or _field(data, "id"),
        )
        return data

    async def cancel_payment(self, payment: dict[str, Any]):
        intent_id = payment["data"]["id"]
        try:
            return await run_in_threadpool(stripe.PaymentIntent.cancel, intent_id)
        except stripe.StripeError as e:
            intent = _error_intent(e)
            if _field(intent, "status") == "canceled":
                return intent
            log.error(
                BusinessEvents.PAYMENT_FAILURE,
                provider=self.identifier,
                operation="cancel_payment",
                provider_transaction_id=intent_id,
                error=str(e),
            )
            raise StripeProviderError(str(e)) from e

    async def delete_payment(self, session: dict[str, Any]) -> None:
        """Cancel the session's intent unless it is already canceled."""
        if _field(session["data"], "status") == "canceled":
            return
        await self.cancel_payment(session)

    async def retrieve_saved_methods(self, customer: CustomerData) -> list:
        if not customer.stripe_id:
            return []
        methods = await self._call(
            "retrieve_saved_methods",
            retry_transient(stripe.PaymentMethod.list),
            customer=customer.stripe_id,
            type="card",
        )
        return list(_field(methods, "data", []))

    def construct_webhook_event(self, payload: bytes | str, signature: str):
        """Verify a webhook payload; raises stripe.SignatureVerificationError."""
        return stripe.Webhook.construct_event(
            payload, signature, self.options.webhook_secret
        )
