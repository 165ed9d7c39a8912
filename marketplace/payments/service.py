"""
Cas d'usage 'payments': orchestre panier, vendeurs, routage, construction de commande,
adaptateur PayPal, capture et exécution.

Flux création:
1) lignes du panier (vide => EmptyCartError)
2) vendeurs concernés -> regroupement -> choix du mode
3) payload Orders v2 -> création PayPal -> commande interne 'Created'

Flux capture:
1) commande existante (OrderNotFoundError) et appartenant à l'acheteur (OrderOwnershipError)
2) déjà 'Completed' => succès idempotent sans appel processeur (possession manquante réaccordée)
3) capture (ou vérification si le client a déjà capturé), une seule fois
4) Captured => CAS Created -> Completed; seul le gagnant exécute l'exécution (possession + panier)
5) possession non accordée => Indeterminate "fulfillment_failed" (aucune confirmation envoyée)
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4

from marketplace import config
from marketplace.cart import repository as cart_repo
from marketplace.errors import EmptyCartError, OrderMismatchError, OrderNotFoundError, OrderOwnershipError, ProcessorError
from marketplace.payments import capture as capture_engine
from marketplace.payments import fulfillment
from marketplace.payments import paypal_client
from marketplace.payments import repository as orders_repo
from marketplace.payments.commission import format_amount
from marketplace.payments.models import CaptureOutcome, CaptureResult, Order, OrderStatus, PaymentMode
from marketplace.payments.order_builder import build_order_payload
from marketplace.payments.routing import group_by_beneficiary, select_payment_mode
from marketplace.sellers import repository as sellers_repo

logger = logging.getLogger(__name__)


@dataclass
class CaptureOrderResult:
    order: Order
    result: CaptureResult
    # True uniquement pour la requête qui a effectué la transition (et donc l'exécution)
    fulfilled: bool = False
    already_completed: bool = False

    @property
    def success(self) -> bool:
        return self.already_completed or self.result.captured


def create_checkout_order(user_id: str) -> Dict[str, Any]:
    lines = cart_repo.get_cart_lines(user_id)
    if not lines:
        raise EmptyCartError("Panier vide")

    grouping = group_by_beneficiary(lines)
    sellers = sellers_repo.get_sellers_by_ids(grouping.seller_ids)
    decision = select_payment_mode(grouping, sellers)

    built = build_order_payload(
        decision,
        grouping,
        sellers,
        platform_merchant_id=config.PAYPAL_PLATFORM_MERCHANT_ID,
        currency=config.PAYMENT_CURRENCY,
        return_url=f"{config.RETURN_BASE_URL}/checkout?success=true",
        cancel_url=f"{config.RETURN_BASE_URL}/checkout?cancelled=true",
        brand_name=config.BRAND_NAME,
    )

    external = paypal_client.create_order(built.payload, partner=built.mode.is_split)
    external_order_id = external.get("id")
    if not external_order_id:
        raise ProcessorError("PayPal order response without id")

    order_id = str(uuid4())
    order = orders_repo.insert_order(
        order_id=order_id,
        user_id=user_id,
        external_order_id=external_order_id,
        total_amount=built.total,
        payment_mode=built.mode,
        item_refs=[line.item_ref for line in grouping.all_lines],
    )
    if order is None:
        # Commande PayPal orpheline: réconciliation hors bande
        logger.error(
            "payments.service orphan external order external_order_id=%s user_id=%s",
            external_order_id, user_id,
        )
        raise RuntimeError("Persistance de la commande impossible")

    logger.info(
        "payments.service order created id=%s external=%s mode=%s total=%s reason=%s",
        order.id, external_order_id, built.mode.value, format_amount(built.total), decision.reason,
    )
    return {
        "order_id": order.id,
        "external_order_id": external_order_id,
        "payment_mode": built.mode.value,
        "total": format_amount(built.total),
        "currency": config.PAYMENT_CURRENCY,
        "approval_url": paypal_client.approval_url(external),
    }


def capture_order(
    user_id: str,
    order_id: str,
    external_order_id: str,
    split_mode: Optional[bool] = None,
    already_captured: bool = False,
) -> CaptureOrderResult:
    order = orders_repo.get_order(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    if order.user_id != user_id:
        raise OrderOwnershipError(order_id)
    if order.external_order_id != external_order_id:
        raise OrderMismatchError(order_id)

    if order.status == OrderStatus.COMPLETED:
        # Une exécution interrompue (possession non accordée) est réparée au rejeu
        if not fulfillment.ensure_ownership(order):
            logger.error("payments.service completed order still not fulfilled id=%s", order.id)
            return CaptureOrderResult(order=order, result=capture_engine.indeterminate("fulfillment_failed"))
        return CaptureOrderResult(
            order=order,
            result=CaptureResult(CaptureOutcome.CAPTURED),
            already_completed=True,
        )

    # Le mode enregistré à la création fait foi
    if split_mode is not None and bool(split_mode) != order.payment_mode.is_split:
        logger.warning(
            "payments.service split flag mismatch order=%s client=%s stored=%s",
            order.id, split_mode, order.payment_mode.value,
        )

    if already_captured:
        result = capture_engine.verify_payment(external_order_id)
    else:
        result = capture_engine.capture_payment(external_order_id, order.payment_mode)

    if not result.captured:
        logger.info(
            "payments.service capture not completed order=%s outcome=%s reason=%s",
            order.id, result.outcome.value, result.reason,
        )
        return CaptureOrderResult(order=order, result=result)

    if orders_repo.mark_order_completed(order.id):
        completed = order.model_copy(update={"status": OrderStatus.COMPLETED})
        if not fulfillment.fulfill_order(order):
            # Paiement acquis, possession manquante: pas de confirmation, le rejeu répare
            logger.error(
                "payments.service captured but not fulfilled id=%s capture=%s", order.id, result.capture_id,
            )
            return CaptureOrderResult(order=completed, result=capture_engine.indeterminate("fulfillment_failed"))
        logger.info("payments.service order completed id=%s capture=%s", order.id, result.capture_id)
        return CaptureOrderResult(order=completed, result=result, fulfilled=True)

    # Transition perdue: une requête concurrente a terminé (ou l'écriture a échoué)
    current = orders_repo.get_order(order.id)
    if current is not None and current.status == OrderStatus.COMPLETED:
        return CaptureOrderResult(order=current, result=result, already_completed=True)

    logger.error(
        "payments.service captured but order not completed id=%s external=%s capture=%s",
        order.id, external_order_id, result.capture_id,
    )
    return CaptureOrderResult(order=order, result=capture_engine.indeterminate("completion_failed"))
