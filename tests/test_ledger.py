import uuid

import pytest

from cardapio.models.loyalty import DEFAULT_TIER, LoyaltyAccount, LoyaltyTransaction
from cardapio.models.order_event import ImmutableRecordError
from cardapio.services import ledger
from cardapio.services.order_errors import (
    CouponExpired,
    CouponInvalid,
    InsufficientPoints,
    InvalidQuantity,
)
from cardapio.services.order_events import POINTS_REDEEMED, order_history
from cardapio.services.orders import build_order, commit_order, transition_order
from tests.db_helpers import build_session, order_request, seed_catalog


def _committed_order_id(db, seed):
    return commit_order(db, build_order(db, order_request(seed))).id


def test_debit_above_balance_keeps_balance():
    db = build_session()
    seed = seed_catalog(db)
    order_id = _committed_order_id(db, seed)

    with pytest.raises(InsufficientPoints) as exc:
        ledger.debit_points(db, customer_id=seed.customer_id, order_id=order_id, points=150)
    db.rollback()

    assert exc.value.context == {"requested": 150, "balance": 100}
    assert ledger.get_balance(db, seed.customer_id) == 100
    assert db.query(LoyaltyTransaction).count() == 0


def test_debits_never_take_balance_below_zero():
    db = build_session()
    seed = seed_catalog(db)
    order_id = _committed_order_id(db, seed)

    ledger.debit_points(db, customer_id=seed.customer_id, order_id=order_id, points=60)
    db.commit()
    with pytest.raises(InsufficientPoints):
        ledger.debit_points(db, customer_id=seed.customer_id, order_id=order_id, points=60)
    db.rollback()

    assert ledger.get_balance(db, seed.customer_id) == 40
    assert [tx.points_delta for tx in db.query(LoyaltyTransaction).all()] == [-60]


def test_debit_without_account_is_insufficient():
    db = build_session()
    seed = seed_catalog(db)
    order_id = _committed_order_id(db, seed)

    with pytest.raises(InsufficientPoints):
        ledger.debit_points(db, customer_id=seed.other_customer_id, order_id=order_id, points=1)


@pytest.mark.parametrize("points", [0, -10])
def test_non_positive_point_movements_are_rejected(points):
    db = build_session()
    seed = seed_catalog(db)
    order_id = _committed_order_id(db, seed)

    with pytest.raises(InvalidQuantity):
        ledger.debit_points(db, customer_id=seed.customer_id, order_id=order_id, points=points)
    with pytest.raises(InvalidQuantity):
        ledger.credit_points(db, customer_id=seed.customer_id, order_id=order_id, points=points, reason="ajuste")


def test_first_completed_order_opens_loyalty_account():
    db = build_session()
    seed = seed_catalog(db)
    order = commit_order(db, build_order(db, order_request(seed, customer_id=seed.other_customer_id)))

    transition_order(db, order.id, "PROCESSING")
    transition_order(db, order.id, "COMPLETED")

    account = db.query(LoyaltyAccount).filter(LoyaltyAccount.customer_id == seed.other_customer_id).one()
    assert account.points_balance == 25
    assert account.tier == DEFAULT_TIER
    transaction = db.query(LoyaltyTransaction).filter(LoyaltyTransaction.order_id == order.id).one()
    assert (transaction.points_delta, transaction.reason) == (25, ledger.REASON_ACCRUAL)


def test_loyalty_transactions_are_append_only():
    db = build_session()
    seed = seed_catalog(db)
    order_id = _committed_order_id(db, seed)
    transaction = ledger.debit_points(db, customer_id=seed.customer_id, order_id=order_id, points=10)
    db.commit()

    transaction.points_delta = -1
    with pytest.raises(ImmutableRecordError):
        db.flush()
    db.rollback()

    assert db.query(LoyaltyTransaction.points_delta).scalar() == -10


def test_redeem_unknown_coupon():
    db = build_session()
    seed = seed_catalog(db)

    with pytest.raises(CouponInvalid):
        ledger.redeem_coupon(db, coupon_code="NOPE", customer_id=seed.customer_id, order_id=uuid.uuid4())


def test_redeem_expired_coupon():
    db = build_session()
    seed = seed_catalog(db)

    with pytest.raises(CouponExpired):
        ledger.redeem_coupon(db, coupon_code="OLD", customer_id=seed.customer_id, order_id=uuid.uuid4())


def test_debit_is_recorded_in_order_history():
    db = build_session()
    seed = seed_catalog(db)
    order_id = _committed_order_id(db, seed)

    transaction = ledger.debit_points(db, customer_id=seed.customer_id, order_id=order_id, points=30)
    db.commit()

    event = order_history(db, order_id)[-1]
    assert event.event_type == POINTS_REDEEMED
    assert event.payload["transaction_id"] == str(transaction.id)
    assert event.payload["points_delta"] == -30
    assert event.payload["balance_after"] == 70


def test_point_movements_require_an_order():
    db = build_session()
    seed = seed_catalog(db)

    with pytest.raises(TypeError):
        ledger.debit_points(db, customer_id=seed.customer_id, points=10)
    with pytest.raises(TypeError):
        ledger.credit_points(db, customer_id=seed.customer_id, points=10, reason="ajuste")
