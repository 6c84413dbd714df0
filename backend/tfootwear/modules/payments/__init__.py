"""
Payments Module - Pesapal and M-Pesa integration.

Features:
- Pesapal order submission and status queries
- M-Pesa STK push and callbacks
- Webhook reconciliation of payment and order status
- Refunds
"""

from tfootwear.modules.payments.mpesa import MpesaClient
from tfootwear.modules.payments.pesapal import PesapalClient
from tfootwear.modules.payments.service import PaymentService

__all__ = [
    "MpesaClient",
    "PesapalClient",
    "PaymentService",
]
