"""
Response builders shared by several endpoint modules.
"""

from datetime import datetime
from typing import Any

from tfootwear.models.payment import Payment
from tfootwear.models.shipping import Shipping
from tfootwear.models.shop import Cart, CartItem, Category, Order, Product
from tfootwear.models.user import User


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_summary(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "created_at": _iso(user.created_at),
    }


def category_summary(category: Category) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "parent_id": category.parent_id,
    }


def product_summary(product: Product, with_category: bool = False) -> dict[str, Any]:
    data = {
        "id": product.id,
        "name": product.name,
        "slug": product.slug,
        "description": product.description,
        "price": float(product.price),
        "image_url": product.image_url,
        "stock": product.stock,
        "in_stock": product.is_in_stock,
        "category_id": product.category_id,
        "created_at": _iso(product.created_at),
    }
    if with_category:
        data["category"] = product.category.name if product.category else None
    return data


def cart_item_summary(item: CartItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "name": item.product.name,
        "price": float(item.product.price),
        "quantity": item.quantity,
        "total": float(item.product.price * item.quantity),
        "image_url": item.product.image_url,
    }


def cart_summary(cart: Cart) -> dict[str, Any]:
    items = [cart_item_summary(item) for item in cart.items]
    return {
        "id": cart.id,
        "items": items,
        "total": round(sum(item["total"] for item in items), 2),
        "item_count": sum(item["quantity"] for item in items),
    }


def shipping_summary(shipping: Shipping) -> dict[str, Any]:
    return {
        "id": shipping.id,
        "order_id": shipping.order_id,
        "address": shipping.address,
        "city": shipping.city,
        "postal_code": shipping.postal_code,
        "phone": shipping.phone,
        "cost": float(shipping.cost),
        "status": shipping.status.value,
        "tracking_number": shipping.tracking_number,
        "estimated_delivery": _iso(shipping.estimated_delivery),
        "created_at": _iso(shipping.created_at),
        "updated_at": _iso(shipping.updated_at),
    }


def payment_summary(payment: Payment, with_order: bool = False) -> dict[str, Any]:
    data = {
        "id": payment.id,
        "order_id": payment.order_id,
        "amount": float(payment.amount),
        "currency": payment.currency,
        "status": payment.status.value,
        "payment_method": payment.payment_method.value,
        "transaction_id": payment.transaction_id,
        "status_description": payment.status_description,
        "refund_reason": payment.refund_reason,
        "paid_at": _iso(payment.paid_at),
        "created_at": _iso(payment.created_at),
    }
    if with_order:
        data["order"] = {
            "id": payment.order.id,
            "status": payment.order.status.value,
            "user": {
                "id": payment.order.user.id,
                "name": payment.order.user.name,
                "email": payment.order.user.email,
            },
        }
    return data


def order_summary(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status.value,
        "total": float(order.total),
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "name": item.product.name if item.product else None,
                "quantity": item.quantity,
                "price": float(item.price),
                "total": float(item.line_total),
            }
            for item in order.items
        ],
        "shipping": shipping_summary(order.shipping) if order.shipping else None,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }
