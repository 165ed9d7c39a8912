"""
Machine à états d'éligibilité vendeur.

Deux déclencheurs indépendants convergent vers le même état:
- complétion directe (retour du vendeur, interrogation du processeur)
- webhooks (complétion / révocation, avant, après ou à la place de la complétion directe)

Les statuts forment un ordre partiel fusionné par maximum:
NotStarted < Pending < Completed < Revoked
- un événement Pending tardif ne fait jamais régresser un vendeur Completed
- Revoked n'est quitté que par un nouveau cycle d'onboarding (repository.start_onboarding_cycle)

L'écriture est conditionnée au statut lu (CAS optimiste); en cas de conflit on relit et on
réapplique une fois.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from marketplace.errors import EligibilityConflictError
from marketplace.payments.models import OnboardingStatus, Seller, SellerEligibilityEvent
from marketplace.sellers import repository as sellers_repo

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 2

_RANK = {
    OnboardingStatus.NOT_STARTED: 0,
    OnboardingStatus.PENDING: 1,
    OnboardingStatus.COMPLETED: 2,
    OnboardingStatus.REVOKED: 3,
}


@dataclass(frozen=True)
class EligibilityOutcome:
    seller_id: str
    previous_status: OnboardingStatus
    status: OnboardingStatus
    is_active: bool

    @property
    def changed(self) -> bool:
        return self.previous_status != self.status


def merge_status(current: OnboardingStatus, incoming: OnboardingStatus) -> OnboardingStatus:
    current = OnboardingStatus(current)
    incoming = OnboardingStatus(incoming)
    return incoming if _RANK[incoming] > _RANK[current] else current


def target_status(event: SellerEligibilityEvent) -> OnboardingStatus:
    """Completed exige payments_receivable et primary_email_confirmed; sinon le vendeur reste Pending."""
    if event.status == OnboardingStatus.COMPLETED:
        if event.payments_receivable and event.primary_email_confirmed:
            return OnboardingStatus.COMPLETED
        return OnboardingStatus.PENDING
    return OnboardingStatus(event.status)


def resolve_seller(event: SellerEligibilityEvent) -> Optional[Seller]:
    """Résolution par tracking_id d'abord, puis par merchant_id."""
    seller = None
    if event.tracking_id:
        seller = sellers_repo.get_seller_by_tracking_id(event.tracking_id)
    if seller is None and event.merchant_id:
        seller = sellers_repo.get_seller_by_merchant_id(event.merchant_id)
    return seller


def compute_changes(seller: Seller, event: SellerEligibilityEvent) -> Dict[str, Any]:
    target = target_status(event)
    merged = merge_status(seller.onboarding_status, target)
    if (
        event.status == OnboardingStatus.COMPLETED
        and target == OnboardingStatus.PENDING
        and seller.onboarding_status == OnboardingStatus.COMPLETED
    ):
        # Statut monotone: le vendeur reste actif, l'écart est signalé pour vérification
        logger.warning(
            "sellers.eligibility completed seller=%s reported not payable by processor "
            "(payments_receivable=%s primary_email_confirmed=%s source=%s)",
            seller.id, event.payments_receivable, event.primary_email_confirmed, event.source,
        )
    changes: Dict[str, Any] = {"onboarding_status": merged}

    # Les drapeaux ne sont rafraîchis que si l'événement porte l'état retenu
    if merged == target:
        if target != OnboardingStatus.REVOKED:
            changes["payments_receivable"] = event.payments_receivable
            changes["primary_email_confirmed"] = event.primary_email_confirmed
        if event.merchant_id:
            changes["merchant_id"] = event.merchant_id
    if event.tracking_id and not seller.tracking_id:
        changes["tracking_id"] = event.tracking_id

    merchant_id = changes.get("merchant_id") or seller.merchant_id
    changes["is_active"] = merged == OnboardingStatus.COMPLETED and bool(merchant_id)
    return changes


def apply_eligibility_event(event: SellerEligibilityEvent) -> Optional[EligibilityOutcome]:
    """
    Transition idempotente commune à la complétion directe et aux webhooks.
    - None si aucun vendeur ne correspond aux identifiants de l'événement
    - EligibilityConflictError si le CAS est perdu à chaque tentative
    """
    for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
        seller = resolve_seller(event)
        if seller is None:
            logger.info(
                "sellers.eligibility seller not found tracking_id=%s merchant_id=%s source=%s",
                event.tracking_id, event.merchant_id, event.source,
            )
            return None

        changes = compute_changes(seller, event)
        if sellers_repo.update_eligibility(seller.id, seller.onboarding_status, changes):
            outcome = EligibilityOutcome(
                seller_id=seller.id,
                previous_status=seller.onboarding_status,
                status=changes["onboarding_status"],
                is_active=changes["is_active"],
            )
            logger.info(
                "sellers.eligibility seller=%s %s -> %s active=%s source=%s",
                seller.id, outcome.previous_status.value, outcome.status.value, outcome.is_active, event.source,
            )
            return outcome

        logger.warning(
            "sellers.eligibility conflict seller=%s expected=%s attempt=%s",
            seller.id, seller.onboarding_status.value, attempt,
        )

    raise EligibilityConflictError(f"eligibility update conflict for event source={event.source}")
