"""
ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from tfootwear.models.payment import Payment, PaymentMethod, PaymentStatus
from tfootwear.models.shipping import Shipping, ShippingStatus
from tfootwear.models.shop import (
    Cart,
    CartItem,
    Category,
    Order,
    OrderItem,
    OrderStatus,
    Product,
)
from tfootwear.models.user import User, UserRole

__all__ = [
    "Cart",
    "CartItem",
    "Category",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Product",
    "Shipping",
    "ShippingStatus",
    "User",
    "UserRole",
]
