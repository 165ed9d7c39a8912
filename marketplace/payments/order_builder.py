"""
Construction du corps de commande PayPal Orders v2 (intent=CAPTURE).

- Standard: une purchase unit, bénéficiaire = plateforme, pas de frais
- SingleSellerSplit: une purchase unit, payee = marchand du vendeur, frais plateforme
  avec payee explicite = marchand de la plateforme
- MultiSellerSplit: une purchase unit par vendeur (reference_id = id vendeur), chacune
  avec son payee et sa ligne de frais; total = somme des groupes
- Décaissement instantané (disbursement_mode=INSTANT)
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from marketplace import config
from marketplace.errors import PaymentConfigurationError
from marketplace.payments.commission import allocate_group_fee, format_amount, gross_of
from marketplace.payments.models import CartLine, PaymentMode, PlatformFeeAllocation, Seller
from marketplace.payments.routing import CartGrouping, RoutingDecision, is_payable

logger = logging.getLogger(__name__)


@dataclass
class BuiltOrder:
    payload: Dict[str, Any]
    mode: PaymentMode
    total: Decimal
    allocations: List[PlatformFeeAllocation] = field(default_factory=list)


def _money(currency: str, value: Decimal) -> Dict[str, str]:
    return {"currency_code": currency, "value": format_amount(value)}


def _items(lines: List[CartLine], currency: str) -> List[Dict[str, Any]]:
    return [
        {
            "name": line.item_ref,
            "sku": line.item_ref,
            "unit_amount": _money(currency, line.unit_price),
            "quantity": "1",
            "category": "DIGITAL_GOODS",
        }
        for line in lines
    ]


def _purchase_unit(lines: List[CartLine], currency: str) -> Dict[str, Any]:
    total = gross_of(lines)
    return {
        "amount": {
            **_money(currency, total),
            "breakdown": {"item_total": _money(currency, total)},
        },
        "items": _items(lines, currency),
    }


def _split_unit(
    seller: Seller,
    lines: List[CartLine],
    allocation: PlatformFeeAllocation,
    platform_merchant_id: str,
    currency: str,
) -> Dict[str, Any]:
    unit = _purchase_unit(lines, currency)
    unit["payee"] = {"merchant_id": seller.merchant_id}
    unit["payment_instruction"] = {
        "disbursement_mode": "INSTANT",
        "platform_fees": [
            {
                "amount": _money(currency, allocation.commission),
                # Le destinataire des frais doit être nommé explicitement
                "payee": {"merchant_id": platform_merchant_id},
            }
        ],
    }
    return unit


def _application_context(brand_name: str, return_url: str, cancel_url: str) -> Dict[str, str]:
    return {
        "brand_name": brand_name,
        "shipping_preference": "NO_SHIPPING",
        "user_action": "PAY_NOW",
        "return_url": return_url,
        "cancel_url": cancel_url,
    }


def build_order_payload(
    decision: RoutingDecision,
    grouping: CartGrouping,
    sellers: Mapping[str, Seller],
    *,
    platform_merchant_id: Optional[str],
    currency: str,
    return_url: str,
    cancel_url: str,
    brand_name: Optional[str] = None,
) -> BuiltOrder:
    """
    Construit le payload de création de commande.
    - Contrôle d'intégrité: un vendeur retenu pour le split mais devenu non éligible
      (identifiant marchand absent, désactivé) => bascule silencieuse en Standard + WARNING
    - Mode split sans identifiant marchand plateforme => PaymentConfigurationError
    """
    mode = decision.mode
    if mode.is_split:
        ineligible = [sid for sid in grouping.seller_ids if not is_payable(sellers.get(sid))]
        if ineligible:
            logger.warning(
                "payments.order_builder seller ineligible at build time, fallback to Standard sellers=%s",
                ineligible,
            )
            mode = PaymentMode.STANDARD

    if mode.is_split and not platform_merchant_id:
        logger.error("payments.order_builder split mode without platform merchant id")
        raise PaymentConfigurationError("PAYPAL_PLATFORM_MERCHANT_ID manquant")

    context = _application_context(brand_name or config.BRAND_NAME, return_url, cancel_url)

    if mode == PaymentMode.STANDARD:
        lines = grouping.all_lines
        return BuiltOrder(
            payload={
                "intent": "CAPTURE",
                "purchase_units": [_purchase_unit(lines, currency)],
                "application_context": context,
            },
            mode=mode,
            total=gross_of(lines),
        )

    units: List[Dict[str, Any]] = []
    allocations: List[PlatformFeeAllocation] = []
    for seller_id, lines in grouping.seller_groups.items():
        seller = sellers[seller_id]
        allocation = allocate_group_fee(seller_id, lines, seller.commission_rate)
        unit = _split_unit(seller, lines, allocation, platform_merchant_id, currency)
        if mode == PaymentMode.MULTI_SELLER_SPLIT:
            unit["reference_id"] = seller_id
        units.append(unit)
        allocations.append(allocation)

    return BuiltOrder(
        payload={"intent": "CAPTURE", "purchase_units": units, "application_context": context},
        mode=mode,
        total=sum((a.gross for a in allocations), Decimal("0")),
        allocations=allocations,
    )
