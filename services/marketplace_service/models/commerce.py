"""Commerce models: orders, payment intents, deliveries, earnings, notifications."""

import random
import string
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.marketplace_service.models.enums import (
    DeliveryStatus,
    NotificationType,
    OrderStatus,
    PaymentIntentStatus,
    PaymentStatus,
    enum_values,
)
from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# PAYMENT INTENTS
# ============================================================================


class PaymentIntent(Base):
    """One external payment request covering every order of a checkout."""

    __tablename__ = "marketplace_payment_intents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tx_ref: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    payer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    checkout_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    total_amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    # {"<vendor_id>": <minor units>}
    per_vendor_amounts_minor: Mapped[dict] = mapped_column(JSON, default=dict)

    status: Mapped[PaymentIntentStatus] = mapped_column(
        SAEnum(
            PaymentIntentStatus,
            values_callable=enum_values,
            name="marketplace_payment_intent_status_enum",
        ),
        default=PaymentIntentStatus.PENDING,
    )
    gateway_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<PaymentIntent {self.tx_ref} status={self.status}>"


# ============================================================================
# ORDER MODELS
# ============================================================================


class Order(Base):
    """Per-vendor orders. Siblings from one checkout share ``transaction_ref``."""

    __tablename__ = "marketplace_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True
    )

    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("marketplace_vendors.id"), index=True, nullable=False
    )
    transaction_ref: Mapped[str] = mapped_column(
        String(64), index=True, nullable=False
    )

    # Pricing
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Status
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="marketplace_order_status_enum",
        ),
        default=OrderStatus.PENDING,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            values_callable=enum_values,
            name="marketplace_payment_status_enum",
        ),
        default=PaymentStatus.PENDING,
    )
    payment_intent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("marketplace_payment_intents.id"), nullable=True
    )

    # Where it ships: a saved/ad-hoc shipping address or a legacy address
    address_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("marketplace_addresses.id", ondelete="SET NULL"),
        nullable=True,
    )
    shipping_address_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("marketplace_shipping_addresses.id", ondelete="SET NULL"),
        nullable=True,
    )
    shipping_option_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="order_total_non_negative"),
        Index("ix_marketplace_orders_vendor_status", "vendor_id", "status"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    delivery = relationship(
        "Delivery", back_populates="order", uselist=False, lazy="selectin"
    )
    payment_intent = relationship("PaymentIntent")
    address = relationship("Address", lazy="selectin")
    shipping_address = relationship("ShippingAddress", lazy="selectin")

    @staticmethod
    def generate_order_number() -> str:
        """Generate an order number like ORD-20260104-A1B2C3."""
        date_part = utc_now().strftime("%Y%m%d")
        random_part = "".join(
            random.choices(string.ascii_uppercase + string.digits, k=6)
        )
        return f"ORD-{date_part}-{random_part}"

    def __repr__(self):
        return f"<Order {self.order_number} status={self.status}>"


class OrderItem(Base):
    """Order line items. Prices are locked at checkout."""

    __tablename__ = "marketplace_order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_orders.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("marketplace_products.id"), nullable=False
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("marketplace_product_variants.id"), nullable=True
    )

    # Snapshot at order time (products may change)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_item_positive_quantity"),
    )

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem {self.product_name} qty={self.quantity}>"


# ============================================================================
# DELIVERIES
# ============================================================================


class Delivery(Base):
    """Last-mile delivery of one order."""

    __tablename__ = "marketplace_deliveries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    rider_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("marketplace_riders.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    status: Mapped[DeliveryStatus] = mapped_column(
        SAEnum(
            DeliveryStatus,
            values_callable=enum_values,
            name="marketplace_delivery_status_enum",
        ),
        default=DeliveryStatus.PENDING,
    )
    tracking_number: Mapped[str] = mapped_column(
        String(20), unique=True, index=True, nullable=False
    )

    assigned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    order = relationship("Order", back_populates="delivery", lazy="selectin")

    @staticmethod
    def generate_tracking_number() -> str:
        """Ten uppercase letters/digits."""
        return "".join(random.choices(string.ascii_uppercase + string.digits, k=10))

    def __repr__(self):
        return f"<Delivery {self.tracking_number} status={self.status}>"


class RiderEarning(Base):
    """Rider payout owed for a completed delivery. One per delivery."""

    __tablename__ = "marketplace_rider_earnings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("marketplace_riders.id"), index=True, nullable=False
    )
    delivery_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("marketplace_deliveries.id"), unique=True, nullable=False
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("marketplace_orders.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )


# ============================================================================
# NOTIFICATIONS
# ============================================================================


class Notification(Base):
    """In-app notifications for buyers and riders."""

    __tablename__ = "marketplace_notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SAEnum(
            NotificationType,
            values_callable=enum_values,
            name="marketplace_notification_type_enum",
        ),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
