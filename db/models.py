"""
Database Models Module

This module defines SQLAlchemy ORM models for:
- Regions and their tax rates
- Gift cards (the rows backfilled with their region's tax rate)
- Customers, carts and payment sessions used by the Stripe provider
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Region(Base):
    """A selling region. A null tax_rate means the rate is intentionally unset."""

    __tablename__ = "regions"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    currency_code = Column(String(3), nullable=False, default="usd")
    tax_rate = Column(Float, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))

    gift_cards = relationship("GiftCard", back_populates="region")

    def __repr__(self):
        return f"<Region(id={self.id}, tax_rate={self.tax_rate})>"


class GiftCard(Base):
    __tablename__ = "gift_cards"

    id = Column(String(64), primary_key=True)
    code = Column(String(64), nullable=False, unique=True)
    value = Column(Integer, nullable=False)
    balance = Column(Integer, nullable=False)
    region_id = Column(String(64), ForeignKey("regions.id"), nullable=True, index=True)
    tax_rate = Column(Float, nullable=True)
    is_disabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))

    region = relationship("Region", back_populates="gift_cards")

    def __repr__(self):
        return f"<GiftCard(id={self.id}, region_id={self.region_id}, tax_rate={self.tax_rate})>"


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))

    @property
    def stripe_id(self) -> str | None:
        return (self.metadata_ or {}).get("stripe_id")


class Cart(Base):
    __tablename__ = "carts"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True)
    customer_id = Column(String(64), ForeignKey("customers.id"), nullable=True)
    region_id = Column(String(64), ForeignKey("regions.id"), nullable=False)
    total = Column(Integer, nullable=False, default=0)
    context = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))

    customer = relationship("Customer")
    region = relationship("Region")
    payment_sessions = relationship("PaymentSession", back_populates="cart")


class PaymentSessionStatus(PyEnum):
    pending = "pending"
    authorized = "authorized"
    requires_more = "requires_more"
    error = "error"
    canceled = "canceled"


class PaymentSession(Base):
    """Provider-side state of a cart's payment; ``data`` holds the PaymentIntent."""

    __tablename__ = "payment_sessions"

    id = Column(Integer, primary_key=True)
    cart_id = Column(String(64), ForeignKey("carts.id"), nullable=False, index=True)
    provider_id = Column(String(64), nullable=False)
    intent_id = Column(String(255), nullable=True, index=True)
    status = Column(
        Enum(PaymentSessionStatus),
        nullable=False,
        default=PaymentSessionStatus.pending,
    )
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    cart = relationship("Cart", back_populates="payment_sessions")

    def __repr__(self):
        return f"<PaymentSession(id={self.id}, cart_id={self.cart_id}, status={self.status})>"
