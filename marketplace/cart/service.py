"""
Cas d'usage 'cart': ajout / retrait d'articles.
- Le prix vient du catalogue ('items'), jamais du client
- Un article déjà possédé ne peut pas être ajouté (AlreadyOwnedError)
"""
import logging
from decimal import Decimal
from typing import Any, Dict

from marketplace.cart import repository as cart_repo
from marketplace.errors import AlreadyOwnedError, CatalogItemNotFoundError

logger = logging.getLogger(__name__)


def _count(user_id: str) -> int:
    return len(cart_repo.get_cart_lines(user_id))


def add_to_cart(user_id: str, item_ref: str) -> Dict[str, Any]:
    item = cart_repo.get_catalog_item(item_ref)
    if item is None:
        raise CatalogItemNotFoundError(item_ref)
    owned = cart_repo.get_owned_refs(user_id, [item_ref])
    if owned is None:
        raise RuntimeError("Possession indisponible")
    if item_ref in owned:
        raise AlreadyOwnedError(item_ref)
    if not cart_repo.add_cart_item(user_id, item_ref, Decimal(str(item["price"]))):
        raise RuntimeError("Ajout au panier impossible")
    logger.info("cart.service item added user=%s item_ref=%s", user_id, item_ref)
    return {"success": True, "count": _count(user_id)}


def remove_from_cart(user_id: str, item_ref: str) -> Dict[str, Any]:
    removed = cart_repo.remove_cart_item(user_id, item_ref)
    return {"success": removed, "count": _count(user_id)}
