"""
Shipping Module - Delivery details and forward-only tracking.
"""

from tfootwear.modules.shipping.service import (
    ShippingService,
    calculate_shipping_cost,
    validate_address,
)

__all__ = ["ShippingService", "calculate_shipping_cost", "validate_address"]
