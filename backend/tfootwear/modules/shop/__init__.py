"""
Shop Module - Catalog, cart and order workflow.

Features:
- Category tree and products
- Per-user shopping cart
- Checkout into immutable orders with stock taken atomically
- Product search
"""

from tfootwear.modules.shop.cart import CartService
from tfootwear.modules.shop.catalog import CatalogService
from tfootwear.modules.shop.orders import OrderService
from tfootwear.modules.shop.search import SearchService

__all__ = [
    "CartService",
    "CatalogService",
    "OrderService",
    "SearchService",
]
