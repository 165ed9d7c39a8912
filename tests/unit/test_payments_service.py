from decimal import Decimal

import pytest

from marketplace.errors import EmptyCartError, OrderMismatchError, OrderNotFoundError, OrderOwnershipError
from marketplace.payments import service
from marketplace.payments.models import (
    CaptureOutcome,
    CaptureResult,
    CartLine,
    OnboardingStatus,
    Order,
    OrderStatus,
    PaymentMode,
    Seller,
)


class FakeOrders:
    """Table 'orders' en mémoire avec la même sémantique de CAS que le repository."""

    def __init__(self):
        self.rows = {}

    def insert_order(self, *, order_id, user_id, external_order_id, total_amount, payment_mode, item_refs):
        order = Order(
            id=order_id,
            user_id=user_id,
            external_order_id=external_order_id,
            total_amount=total_amount,
            payment_mode=payment_mode,
            item_refs=item_refs,
        )
        self.rows[order_id] = order
        return order

    def get_order(self, order_id):
        return self.rows.get(order_id)

    def mark_order_completed(self, order_id):
        order = self.rows.get(order_id)
        if order is None or order.status != OrderStatus.CREATED:
            return False
        self.rows[order_id] = order.model_copy(update={"status": OrderStatus.COMPLETED})
        return True


@pytest.fixture
def orders(monkeypatch):
    fake = FakeOrders()
    monkeypatch.setattr("marketplace.payments.repository.insert_order", fake.insert_order)
    monkeypatch.setattr("marketplace.payments.repository.get_order", fake.get_order)
    monkeypatch.setattr("marketplace.payments.repository.mark_order_completed", fake.mark_order_completed)
    return fake


@pytest.fixture
def cart(monkeypatch):
    state = {"lines": [], "granted": [], "cleared": [], "removed": [], "owned": set(), "grant_ok": True, "clear_ok": True}

    def _grant(user_id, refs, order_id):
        if not state["grant_ok"]:
            return False
        state["granted"].append((user_id, list(refs), order_id))
        state["owned"].update(refs)
        return True

    def _clear(user_id):
        state["cleared"].append(user_id)
        return state["clear_ok"]

    monkeypatch.setattr("marketplace.cart.repository.get_cart_lines", lambda user_id: list(state["lines"]))
    monkeypatch.setattr("marketplace.cart.repository.grant_ownership", _grant)
    monkeypatch.setattr("marketplace.cart.repository.clear_cart", _clear)
    monkeypatch.setattr(
        "marketplace.cart.repository.get_owned_refs",
        lambda user_id, refs: {r for r in refs if r in state["owned"]},
    )
    monkeypatch.setattr(
        "marketplace.cart.repository.remove_cart_item",
        lambda user_id, ref: state["removed"].append(ref) or True,
    )
    return state


def _seller_s():
    return Seller(
        id="S",
        user_id="seller-user",
        merchant_id="M",
        commission_rate=Decimal("0.15"),
        onboarding_status=OnboardingStatus.COMPLETED,
        is_active=True,
    )


def test_single_seller_scenario_end_to_end(monkeypatch, orders, cart):
    cart["lines"] = [CartLine(item_ref="track-A", unit_price=Decimal("10.00"), seller_id="S")]
    monkeypatch.setattr("marketplace.sellers.repository.get_sellers_by_ids", lambda ids: {"S": _seller_s()})
    created_payloads = []
    monkeypatch.setattr(
        "marketplace.payments.paypal_client.create_order",
        lambda payload, partner=False: created_payloads.append((payload, partner)) or {"id": "EXT1", "links": []},
    )

    created = service.create_checkout_order("buyer-1")
    assert created["payment_mode"] == "SingleSellerSplit"
    assert created["external_order_id"] == "EXT1"
    assert created["total"] == "10.00"
    payload, partner = created_payloads[0]
    assert partner is True
    unit = payload["purchase_units"][0]
    assert unit["payee"]["merchant_id"] == "M"
    fee = unit["payment_instruction"]["platform_fees"][0]
    assert fee["amount"]["value"] == "1.50"
    assert fee["payee"]["merchant_id"] == "PLATFORM-M"
    assert orders.rows[created["order_id"]].status == OrderStatus.CREATED

    captures = []
    monkeypatch.setattr(
        "marketplace.payments.capture.capture_payment",
        lambda ext, mode: captures.append((ext, mode)) or CaptureResult(CaptureOutcome.CAPTURED, capture_id="CAP1"),
    )
    outcome = service.capture_order("buyer-1", created["order_id"], "EXT1", split_mode=True)
    assert outcome.success and outcome.fulfilled
    assert captures == [("EXT1", PaymentMode.SINGLE_SELLER_SPLIT)]
    assert orders.rows[created["order_id"]].status == OrderStatus.COMPLETED
    assert cart["granted"] == [("buyer-1", ["track-A"], created["order_id"])]
    assert cart["cleared"] == ["buyer-1"]


def test_empty_cart_is_rejected(cart):
    with pytest.raises(EmptyCartError):
        service.create_checkout_order("buyer-1")


def test_orphan_external_order_is_logged_when_persistence_fails(monkeypatch, cart, caplog):
    cart["lines"] = [CartLine(item_ref="p", unit_price=Decimal("5.00"))]
    monkeypatch.setattr("marketplace.sellers.repository.get_sellers_by_ids", lambda ids: {})
    monkeypatch.setattr("marketplace.payments.paypal_client.create_order", lambda payload, partner=False: {"id": "EXT-ORPHAN"})
    monkeypatch.setattr("marketplace.payments.repository.insert_order", lambda **kw: None)
    with pytest.raises(RuntimeError):
        service.create_checkout_order("buyer-1")
    assert "EXT-ORPHAN" in caplog.text


def _seed(orders, status=OrderStatus.CREATED, mode=PaymentMode.STANDARD, user_id="buyer-1"):
    order = Order(
        id="o1",
        user_id=user_id,
        external_order_id="EXT1",
        total_amount=Decimal("10.00"),
        payment_mode=mode,
        status=status,
        item_refs=["track-A"],
    )
    orders.rows["o1"] = order
    return order


def test_capture_unknown_order_and_foreign_order(orders):
    with pytest.raises(OrderNotFoundError):
        service.capture_order("buyer-1", "missing", "EXT1")
    _seed(orders, user_id="someone-else")
    with pytest.raises(OrderOwnershipError):
        service.capture_order("buyer-1", "o1", "EXT1")


def test_capture_external_id_mismatch(orders):
    _seed(orders)
    with pytest.raises(OrderMismatchError):
        service.capture_order("buyer-1", "o1", "EXT-OTHER")


def test_completed_order_is_idempotent_without_processor_call(monkeypatch, orders, cart):
    _seed(orders, status=OrderStatus.COMPLETED)
    cart["owned"] = {"track-A"}

    def _boom(*a, **kw):
        raise AssertionError("processor must not be called")

    monkeypatch.setattr("marketplace.payments.capture.capture_payment", _boom)
    monkeypatch.setattr("marketplace.payments.capture.verify_payment", _boom)
    outcome = service.capture_order("buyer-1", "o1", "EXT1")
    assert outcome.success and outcome.already_completed and not outcome.fulfilled
    assert cart["granted"] == []


def test_capture_invoked_at_most_once_per_completed_order(monkeypatch, orders, cart):
    _seed(orders)
    calls = []
    monkeypatch.setattr(
        "marketplace.payments.capture.capture_payment",
        lambda ext, mode: calls.append(ext) or CaptureResult(CaptureOutcome.CAPTURED, capture_id="CAP1"),
    )
    first = service.capture_order("buyer-1", "o1", "EXT1")
    second = service.capture_order("buyer-1", "o1", "EXT1")
    assert first.fulfilled and second.already_completed
    assert calls == ["EXT1"]
    assert len(cart["granted"]) == 1


def test_cas_loser_does_not_fulfill(monkeypatch, orders, cart):
    _seed(orders)

    def _capture_while_other_request_completes(ext, mode):
        # Une requête concurrente remporte la transition pendant la capture
        orders.mark_order_completed("o1")
        return CaptureResult(CaptureOutcome.CAPTURED, capture_id="CAP1")

    monkeypatch.setattr("marketplace.payments.capture.capture_payment", _capture_while_other_request_completes)
    outcome = service.capture_order("buyer-1", "o1", "EXT1")
    assert outcome.success and outcome.already_completed and not outcome.fulfilled
    assert cart["granted"] == []


@pytest.mark.parametrize("outcome_kind", [CaptureOutcome.DECLINED, CaptureOutcome.INDETERMINATE])
def test_failed_capture_leaves_order_created_and_cart_intact(monkeypatch, orders, cart, outcome_kind):
    _seed(orders)
    monkeypatch.setattr(
        "marketplace.payments.capture.capture_payment",
        lambda ext, mode: CaptureResult(outcome_kind, reason="generic", message="x"),
    )
    outcome = service.capture_order("buyer-1", "o1", "EXT1")
    assert not outcome.success
    assert orders.rows["o1"].status == OrderStatus.CREATED
    assert cart["granted"] == [] and cart["cleared"] == []


def test_already_captured_flag_uses_verification(monkeypatch, orders, cart):
    _seed(orders, mode=PaymentMode.MULTI_SELLER_SPLIT)
    def _no_capture(ext, mode):
        raise AssertionError("capture must not be called")

    monkeypatch.setattr("marketplace.payments.capture.capture_payment", _no_capture)
    monkeypatch.setattr(
        "marketplace.payments.capture.verify_payment",
        lambda ext: CaptureResult(CaptureOutcome.CAPTURED, capture_id="CAP2"),
    )
    outcome = service.capture_order("buyer-1", "o1", "EXT1", split_mode=True, already_captured=True)
    assert outcome.fulfilled
    assert orders.rows["o1"].status == OrderStatus.COMPLETED


def test_stored_mode_wins_over_client_flag(monkeypatch, orders, cart, caplog):
    _seed(orders, mode=PaymentMode.SINGLE_SELLER_SPLIT)
    modes = []
    monkeypatch.setattr(
        "marketplace.payments.capture.capture_payment",
        lambda ext, mode: modes.append(mode) or CaptureResult(CaptureOutcome.CAPTURED),
    )
    service.capture_order("buyer-1", "o1", "EXT1", split_mode=False)
    assert modes == [PaymentMode.SINGLE_SELLER_SPLIT]
    assert "split flag mismatch" in caplog.text


def _captured(monkeypatch):
    monkeypatch.setattr(
        "marketplace.payments.capture.capture_payment",
        lambda ext, mode: CaptureResult(CaptureOutcome.CAPTURED, capture_id="CAP1"),
    )


def test_ownership_failure_after_capture_is_not_reported_as_success(monkeypatch, orders, cart):
    _seed(orders)
    _captured(monkeypatch)
    cart["grant_ok"] = False
    outcome = service.capture_order("buyer-1", "o1", "EXT1")
    assert not outcome.success and not outcome.fulfilled
    assert outcome.result.outcome == CaptureOutcome.INDETERMINATE
    assert outcome.result.reason == "fulfillment_failed"
    # Paiement acquis: la commande reste Completed, le panier n'est pas vidé
    assert orders.rows["o1"].status == OrderStatus.COMPLETED
    assert cart["cleared"] == []


def test_retry_after_ownership_failure_grants_missing_items(monkeypatch, orders, cart):
    _seed(orders)
    calls = []
    monkeypatch.setattr(
        "marketplace.payments.capture.capture_payment",
        lambda ext, mode: calls.append(ext) or CaptureResult(CaptureOutcome.CAPTURED, capture_id="CAP1"),
    )
    cart["grant_ok"] = False
    service.capture_order("buyer-1", "o1", "EXT1")

    cart["grant_ok"] = True
    retry = service.capture_order("buyer-1", "o1", "EXT1")
    assert retry.success and retry.already_completed
    assert calls == ["EXT1"]
    assert cart["granted"] == [("buyer-1", ["track-A"], "o1")]
    assert cart["removed"] == ["track-A"]


def test_retry_while_store_still_down_stays_indeterminate(monkeypatch, orders, cart):
    _seed(orders, status=OrderStatus.COMPLETED)
    cart["grant_ok"] = False
    outcome = service.capture_order("buyer-1", "o1", "EXT1")
    assert not outcome.success
    assert outcome.result.reason == "fulfillment_failed"


def test_cart_clear_failure_does_not_undo_fulfillment(monkeypatch, orders, cart):
    _seed(orders)
    _captured(monkeypatch)
    cart["clear_ok"] = False
    outcome = service.capture_order("buyer-1", "o1", "EXT1")
    assert outcome.success and outcome.fulfilled
    assert cart["granted"] == [("buyer-1", ["track-A"], "o1")]


def test_ownership_is_granted_before_cart_is_cleared(monkeypatch, orders, cart):
    _seed(orders)
    _captured(monkeypatch)
    steps = []
    monkeypatch.setattr(
        "marketplace.cart.repository.grant_ownership",
        lambda user_id, refs, order_id: steps.append("grant") or True,
    )
    monkeypatch.setattr("marketplace.cart.repository.clear_cart", lambda user_id: steps.append("clear") or True)
    service.capture_order("buyer-1", "o1", "EXT1")
    assert steps == ["grant", "clear"]
