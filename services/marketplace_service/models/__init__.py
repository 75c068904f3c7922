"""Marketplace Service models package."""

from services.marketplace_service.models.access import (
    OperatorPosition,
    Permission,
    Position,
    PositionPermission,
    Rider,
    SubAdminProfile,
)
from services.marketplace_service.models.addresses import Address, ShippingAddress
from services.marketplace_service.models.catalog import (
    Coupon,
    FlashSale,
    FlashSaleItem,
    Product,
    ProductVariant,
    ShippingOption,
    Vendor,
    VendorShippingOption,
)
from services.marketplace_service.models.commerce import (
    Delivery,
    Notification,
    Order,
    OrderItem,
    PaymentIntent,
    RiderEarning,
)
from services.marketplace_service.models.enums import (
    DeliveryStatus,
    DiscountType,
    NotificationType,
    OrderStatus,
    PaymentIntentStatus,
    PaymentStatus,
)

__all__ = [
    "Address",
    "Coupon",
    "Delivery",
    "DeliveryStatus",
    "DiscountType",
    "FlashSale",
    "FlashSaleItem",
    "Notification",
    "NotificationType",
    "OperatorPosition",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentIntent",
    "PaymentIntentStatus",
    "PaymentStatus",
    "Permission",
    "Position",
    "PositionPermission",
    "Product",
    "ProductVariant",
    "Rider",
    "RiderEarning",
    "ShippingAddress",
    "ShippingOption",
    "SubAdminProfile",
    "Vendor",
    "VendorShippingOption",
]
