# module marketplace.payments.commission
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Mapping

from marketplace.payments.models import CartLine, PlatformFeeAllocation

CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Montant processeur: chaîne à deux décimales ("10.00")."""
    return f"{to_money(value):.2f}"


def gross_of(lines: Iterable[CartLine]) -> Decimal:
    return sum((Decimal(line.unit_price) for line in lines), Decimal("0"))


def allocate_group_fee(seller_id: str, lines: Iterable[CartLine], rate: Decimal) -> PlatformFeeAllocation:
    """
    Répartition d'un groupe vendeur:
    - gross = somme exacte des prix
    - commission = gross × rate arrondi au centime (demi vers le haut)
    - net = gross − commission, donc net + commission == gross
    """
    gross = gross_of(lines)
    commission = to_money(gross * Decimal(rate))
    return PlatformFeeAllocation(
        seller_id=seller_id,
        gross=gross,
        commission=commission,
        net=gross - commission,
    )


def allocate_fees(
    groups: Mapping[str, List[CartLine]],
    rates: Mapping[str, Decimal],
) -> List[PlatformFeeAllocation]:
    return [allocate_group_fee(seller_id, lines, rates[seller_id]) for seller_id, lines in groups.items()]
