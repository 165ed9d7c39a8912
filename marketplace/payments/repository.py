"""
Accès aux données pour la feature 'payments' (table 'orders').
Toutes les écritures passent par le client service-role.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
import logging

import marketplace.infra.supabase_client as supabase_client
from marketplace.payments.models import Order, OrderStatus, PaymentMode

logger = logging.getLogger(__name__)

# module marketplace.payments.repository
def insert_order(
    *,
    order_id: str,
    user_id: str,
    external_order_id: str,
    total_amount: Decimal,
    payment_mode: PaymentMode,
    item_refs: List[str],
) -> Optional[Order]:
    """
    Persiste la commande interne au statut 'Created'.
    - Retourne None en cas d'erreur (la commande externe devient orpheline, journalisée par l'appelant)
    """
    row = {
        "id": order_id,
        "user_id": user_id,
        "external_order_id": external_order_id,
        "total_amount": f"{total_amount:.2f}",
        "payment_mode": PaymentMode(payment_mode).value,
        "status": OrderStatus.CREATED.value,
        "item_refs": list(item_refs),
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        supabase_client.get_service_supabase().table("orders").insert(row).execute()
        return Order(**row)
    except Exception:
        logger.exception("payments.repository.insert_order failed user_id=%s external=%s", user_id, external_order_id)
        return None

def get_order(order_id: str) -> Optional[Order]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .select("*")
            .eq("id", order_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return Order(**rows[0]) if rows else None
    except Exception:
        logger.exception("payments.repository.get_order failed id=%s", order_id)
        return None

def mark_order_completed(order_id: str) -> bool:
    """
    Compare-and-set 'Created' -> 'Completed' au niveau stockage.
    - UPDATE orders SET status='Completed' WHERE id=? AND status='Created'
    - True uniquement pour l'appelant qui a effectué la transition
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("orders")
            .update({
                "status": OrderStatus.COMPLETED.value,
                "completed_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("id", order_id)
            .eq("status", OrderStatus.CREATED.value)
            .execute()
        )
        return bool(res.data)
    except Exception:
        logger.exception("payments.repository.mark_order_completed failed id=%s", order_id)
        return False
