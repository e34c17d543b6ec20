"""
SQLAlchemy models package.
All models are imported here for easy access and Alembic discovery.
"""
from orderdesk.models.customer import Customer
from orderdesk.models.offer import DiscountType, Offer
from orderdesk.models.order import (
    Order,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
)
from orderdesk.models.store_setting import StoreSetting

__all__ = [
    "Customer",
    "Offer",
    "DiscountType",
    "Order",
    "OrderStatus",
    "OrderType",
    "PaymentMethod",
    "PaymentStatus",
    "StoreSetting",
]
