"""
Payment-method specific Stripe providers.

Each one is the base provider with the intent restricted to a single
payment method and captured automatically.
"""

from typing import Any

from core.settings import StripeOptions
from payments.stripe_provider import StripeProviderService


class _SingleMethodProvider(StripeProviderService):
    payment_method_type: str

    @property
    def payment_intent_options(self) -> dict[str, Any]:
        return {
            "payment_method_types": [self.payment_method_type],
            "capture_method": "automatic",
        }


class BancontactProviderService(_SingleMethodProvider):
    identifier = "stripe-bancontact"
    payment_method_type = "bancontact"


class IdealProviderService(_SingleMethodProvider):
    identifier = "stripe-ideal"
    payment_method_type = "ideal"


class GiropayProviderService(_SingleMethodProvider):
    identifier = "stripe-giropay"
    payment_method_type = "giropay"


class Przelewy24ProviderService(_SingleMethodProvider):
    identifier = "stripe-przelewy24"
    payment_method_type = "p24"


PROVIDERS: dict[str, type[StripeProviderService]] = {
    cls.identifier: cls
    for cls in (
        StripeProviderService,
        BancontactProviderService,
        IdealProviderService,
        GiropayProviderService,
        Przelewy24ProviderService,
    )
}


def get_provider(identifier: str, options: StripeOptions) -> StripeProviderService:
    try:
        provider_cls = PROVIDERS[identifier]
    except KeyError:
        raise ValueError(f"Unknown Stripe provider: {identifier}") from None
    return provider_cls(options)
