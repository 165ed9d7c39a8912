"""
Module 'payments' (feature-first): point d'entrée public.
Réunit commission, routage, construction de commande, client PayPal, capture et services.
"""

from .commission import allocate_fees, allocate_group_fee, format_amount
from .routing import MAX_SPLIT_SELLERS, group_by_beneficiary, select_payment_mode
from .order_builder import build_order_payload
from .capture import capture_payment, verify_payment
from .service import create_checkout_order, capture_order

__all__ = [
    # commission
    "allocate_fees",
    "allocate_group_fee",
    "format_amount",
    # routage
    "MAX_SPLIT_SELLERS",
    "group_by_beneficiary",
    "select_payment_mode",
    # commande PayPal
    "build_order_payload",
    # capture
    "capture_payment",
    "verify_payment",
    # services
    "create_checkout_order",
    "capture_order",
]
