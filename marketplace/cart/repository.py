"""
Accès aux données panier / possession ('cart_items', 'owned_items').
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set
import logging

import marketplace.infra.supabase_client as supabase_client
from marketplace.payments.commission import format_amount
from marketplace.payments.models import CartLine

logger = logging.getLogger(__name__)

# module marketplace.cart.repository
def get_cart_lines(user_id: str) -> List[CartLine]:
    """
    Lignes du panier avec le vendeur de chaque article (jointure 'items').
    - seller_id absent => article plateforme
    - Retourne [] en cas d'erreur
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("cart_items")
            .select("item_ref, price, items(seller_id)")
            .eq("user_id", user_id)
            .execute()
        )
        return [CartLine.from_row(r) for r in (res.data or [])]
    except Exception:
        logger.exception("cart.repository.get_cart_lines failed user_id=%s", user_id)
        return []

def grant_ownership(user_id: str, item_refs: List[str], order_id: str) -> bool:
    """
    Accorde la possession des articles (upsert sur user_id,item_ref: ré-exécution sans doublon).
    """
    if not item_refs:
        return True
    now = datetime.now(timezone.utc).isoformat()
    rows: List[Dict[str, Any]] = [
        {"user_id": user_id, "item_ref": ref, "order_id": order_id, "purchased_at": now}
        for ref in item_refs
    ]
    try:
        (
            supabase_client.get_service_supabase()
            .table("owned_items")
            .upsert(rows, on_conflict="user_id,item_ref")
            .execute()
        )
        return True
    except Exception:
        logger.exception("cart.repository.grant_ownership failed user_id=%s order_id=%s", user_id, order_id)
        return False

def clear_cart(user_id: str) -> bool:
    try:
        supabase_client.get_service_supabase().table("cart_items").delete().eq("user_id", user_id).execute()
        return True
    except Exception:
        logger.exception("cart.repository.clear_cart failed user_id=%s", user_id)
        return False

def list_owned_items(user_id: str) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("owned_items")
            .select("item_ref, order_id, purchased_at")
            .eq("user_id", user_id)
            .order("purchased_at", desc=True)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("cart.repository.list_owned_items failed user_id=%s", user_id)
        return []

def get_owned_refs(user_id: str, item_refs: List[str]) -> Optional[Set[str]]:
    """Sous-ensemble de item_refs déjà possédé; None en cas d'erreur (état inconnu)."""
    if not item_refs:
        return set()
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("owned_items")
            .select("item_ref")
            .eq("user_id", user_id)
            .in_("item_ref", list(item_refs))
            .execute()
        )
        return {r["item_ref"] for r in (res.data or [])}
    except Exception:
        logger.exception("cart.repository.get_owned_refs failed user_id=%s", user_id)
        return None

def get_catalog_item(item_ref: str) -> Optional[Dict[str, Any]]:
    """Article du catalogue ('items'): prix de référence et vendeur éventuel."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("items")
            .select("item_ref, price, seller_id")
            .eq("item_ref", item_ref)
            .limit(1)
            .execute()
        )
        return res.data[0] if res.data else None
    except Exception:
        logger.exception("cart.repository.get_catalog_item failed item_ref=%s", item_ref)
        return None

def add_cart_item(user_id: str, item_ref: str, price: Decimal) -> bool:
    """Ajout idempotent (upsert sur user_id,item_ref): un article n'apparaît qu'une fois."""
    row = {
        "user_id": user_id,
        "item_ref": item_ref,
        "price": format_amount(price),
        "added_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        (
            supabase_client.get_service_supabase()
            .table("cart_items")
            .upsert(row, on_conflict="user_id,item_ref")
            .execute()
        )
        return True
    except Exception:
        logger.exception("cart.repository.add_cart_item failed user_id=%s item_ref=%s", user_id, item_ref)
        return False

def remove_cart_item(user_id: str, item_ref: str) -> bool:
    """True si une ligne a été supprimée."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("cart_items")
            .delete()
            .eq("user_id", user_id)
            .eq("item_ref", item_ref)
            .execute()
        )
        return bool(res.data)
    except Exception:
        logger.exception("cart.repository.remove_cart_item failed user_id=%s item_ref=%s", user_id, item_ref)
        return False
