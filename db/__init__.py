from db.models import (
    Base,
    Cart,
    Customer,
    GiftCard,
    PaymentSession,
    PaymentSessionStatus,
    Region,
)

__all__ = [
    "Base",
    "Cart",
    "Customer",
    "GiftCard",
    "PaymentSession",
    "PaymentSessionStatus",
    "Region",
]
