"""
Regroupement du panier par bénéficiaire et choix du mode de paiement.

Table de décision (select_payment_mode):
- aucun article vendeur                      -> Standard
- articles plateforme + articles vendeur     -> Standard (mixed_cart)
- plus de MAX_SPLIT_SELLERS vendeurs         -> Standard (too_many_sellers)
- un vendeur non payable                     -> Standard (seller_not_payable)
- un seul vendeur payable                    -> SingleSellerSplit
- 2..MAX_SPLIT_SELLERS vendeurs payables     -> MultiSellerSplit

Logique pure: aucune E/S, les vendeurs sont fournis par l'appelant.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from marketplace.payments.models import CartLine, PaymentMode, Seller

logger = logging.getLogger(__name__)

MAX_SPLIT_SELLERS = 10


@dataclass
class CartGrouping:
    platform_lines: List[CartLine] = field(default_factory=list)
    # Ordre d'apparition dans le panier conservé
    seller_groups: Dict[str, List[CartLine]] = field(default_factory=dict)

    @property
    def seller_ids(self) -> List[str]:
        return list(self.seller_groups.keys())

    @property
    def all_lines(self) -> List[CartLine]:
        lines = list(self.platform_lines)
        for group in self.seller_groups.values():
            lines.extend(group)
        return lines


@dataclass(frozen=True)
class RoutingDecision:
    mode: PaymentMode
    reason: str
    seller_ids: tuple = ()


def group_by_beneficiary(lines: Iterable[CartLine]) -> CartGrouping:
    grouping = CartGrouping()
    for line in lines:
        if line.seller_id:
            grouping.seller_groups.setdefault(line.seller_id, []).append(line)
        else:
            grouping.platform_lines.append(line)
    return grouping


def is_payable(seller: Optional[Seller]) -> bool:
    return seller is not None and seller.is_payable


def select_payment_mode(grouping: CartGrouping, sellers: Mapping[str, Seller]) -> RoutingDecision:
    seller_ids = grouping.seller_ids
    if not seller_ids:
        return RoutingDecision(PaymentMode.STANDARD, "platform_only")

    if grouping.platform_lines:
        logger.warning("payments.routing fallback to Standard reason=mixed_cart sellers=%s", seller_ids)
        return RoutingDecision(PaymentMode.STANDARD, "mixed_cart")

    if len(seller_ids) > MAX_SPLIT_SELLERS:
        logger.warning(
            "payments.routing fallback to Standard reason=too_many_sellers count=%s", len(seller_ids)
        )
        return RoutingDecision(PaymentMode.STANDARD, "too_many_sellers")

    not_payable = [sid for sid in seller_ids if not is_payable(sellers.get(sid))]
    if not_payable:
        logger.warning(
            "payments.routing fallback to Standard reason=seller_not_payable sellers=%s", not_payable
        )
        return RoutingDecision(PaymentMode.STANDARD, "seller_not_payable")

    if len(seller_ids) == 1:
        return RoutingDecision(PaymentMode.SINGLE_SELLER_SPLIT, "single_seller", tuple(seller_ids))
    return RoutingDecision(PaymentMode.MULTI_SELLER_SPLIT, "multi_seller", tuple(seller_ids))
