# module marketplace.payments.fulfillment
import logging
from typing import List

from marketplace.cart import repository as cart_repo
from marketplace.payments.models import Order

logger = logging.getLogger(__name__)


def fulfill_order(order: Order) -> bool:
    """
    Exécutée uniquement par le gagnant de la transition Created -> Completed:
    accorde la possession des articles puis vide le panier.
    - False si la possession n'a pas pu être accordée (le panier est alors conservé)
    - Un panier non vidé est seulement journalisé: la possession, elle, est acquise
    """
    granted = cart_repo.grant_ownership(order.user_id, order.item_refs, order.id)
    if not granted:
        logger.error("payments.fulfillment ownership grant failed order=%s user=%s", order.id, order.user_id)
        return False
    if not cart_repo.clear_cart(order.user_id):
        logger.warning("payments.fulfillment cart not cleared order=%s user=%s", order.id, order.user_id)
    return True


def ensure_ownership(order: Order) -> bool:
    """
    Rejeu sur une commande déjà Completed: accorde les articles encore manquants
    (cas d'une exécution interrompue après la capture). True si tout est possédé.
    """
    owned = cart_repo.get_owned_refs(order.user_id, order.item_refs)
    if owned is None:
        return False
    missing: List[str] = [ref for ref in order.item_refs if ref not in owned]
    if not missing:
        return True
    logger.warning("payments.fulfillment repairing ownership order=%s missing=%s", order.id, missing)
    if not cart_repo.grant_ownership(order.user_id, missing, order.id):
        return False
    # Seules les lignes de cette commande quittent le panier (il a pu être complété depuis)
    for ref in missing:
        cart_repo.remove_cart_item(order.user_id, ref)
    return True
