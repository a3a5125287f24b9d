from fastapi import Depends

from core.settings import Settings
from payments.stripe_methods import get_provider
from payments.stripe_provider import StripeProviderService

# Settings singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    """Dependency that provides application settings."""
    assert (
        _settings is not None
    ), "Settings not initialized. Make sure startup() was called."
    return _settings


def init_settings(settings: Settings | None = None):
    """Initialize the singleton; a prebuilt instance wins over the environment."""
    global _settings
    _settings = settings if settings is not None else Settings()


def clear_settings():
    global _settings
    _settings = None


def get_stripe_provider(
    settings: Settings = Depends(get_settings),
) -> StripeProviderService:
    """Base Stripe provider configured from STRIPE_* settings."""
    return get_provider(StripeProviderService.identifier, settings.stripe_options())
