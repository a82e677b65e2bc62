import threading
import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from cardapio.models.coupon import Coupon, CouponRedemption
from cardapio.models.loyalty import LoyaltyTransaction
from cardapio.models.order import Order
from cardapio.models.order_event import ImmutableRecordError, OrderEvent
from cardapio.services import ledger
from cardapio.services.order_errors import (
    Conflict,
    CouponAlreadyUsed,
    CouponExhausted,
    CouponExpired,
    InsufficientPoints,
    InvalidTransition,
    NotFound,
    OrderError,
    ProductUnavailable,
    Unavailable,
)
from cardapio.services.order_events import (
    COUPON_REDEEMED,
    POINTS_EARNED,
    POINTS_REDEEMED,
    POINTS_REFUNDED,
    STATUS_EVENT_TYPES,
    event_bus,
    order_history,
    replay_status,
)
from cardapio.services.orders import build_order, commit_order, get_order, transition_order
from tests.db_helpers import (
    build_file_sessionmaker,
    build_session,
    build_sessionmaker,
    order_request,
    seed_catalog,
)


def _status_events(db, order_id):
    return [event for event in order_history(db, order_id) if event.event_type in STATUS_EVENT_TYPES]


def _uses_count(db, code):
    return db.query(Coupon.uses_count).filter(Coupon.code == code).scalar()


def test_build_order_prices_without_persisting():
    db = build_session()
    seed = seed_catalog(db)

    draft = build_order(db, order_request(seed, coupon_code="save10", loyalty_points=100))

    assert draft.total_cents == 2150
    assert db.query(Order).count() == 0
    assert db.query(CouponRedemption).count() == 0
    assert ledger.get_balance(db, seed.customer_id) == 100


def test_build_order_for_unknown_customer():
    db = build_session()
    seed = seed_catalog(db)

    with pytest.raises(NotFound):
        build_order(db, order_request(seed, customer_id=uuid.uuid4()))


def test_build_order_rejects_product_from_other_establishment():
    db = build_session()
    seed = seed_catalog(db)

    with pytest.raises(ProductUnavailable):
        build_order(db, order_request(seed, [(seed.burger_id, 1), (seed.pizza_id, 1)]))


def test_build_order_rejects_expired_coupon():
    db = build_session()
    seed = seed_catalog(db)

    with pytest.raises(CouponExpired):
        build_order(db, order_request(seed, coupon_code="OLD"))


def test_commit_order_writes_order_ledger_and_events():
    db = build_session()
    seed = seed_catalog(db)
    draft = build_order(db, order_request(seed, coupon_code="SAVE10", loyalty_points=100))

    order = commit_order(db, draft, actor="caixa")

    assert order.id == draft.order_id
    assert order.status == "PENDING"
    assert order.total_cents == 2150
    assert [(item.product_id, item.quantity, item.unit_price_cents) for item in order.items] == [
        (seed.burger_id, 2, 1000),
        (seed.fries_id, 1, 500),
    ]
    assert _uses_count(db, "SAVE10") == 1
    assert db.query(CouponRedemption).filter(CouponRedemption.order_id == order.id).count() == 1
    assert ledger.get_balance(db, seed.customer_id) == 0

    transactions = db.query(LoyaltyTransaction).all()
    assert [(tx.points_delta, tx.reason) for tx in transactions] == [(-100, ledger.REASON_REDEMPTION)]

    history = order_history(db, order.id)
    assert [event.event_type for event in history] == ["PENDING", COUPON_REDEEMED, POINTS_REDEEMED]
    assert history[0].payload == {"previous_status": None, "status": "PENDING", "actor": "caixa"}
    assert history[2].payload["balance_after"] == 0


def test_committing_same_draft_twice_conflicts():
    db = build_session()
    seed = seed_catalog(db)
    draft = build_order(db, order_request(seed))

    commit_order(db, draft)
    with pytest.raises(Conflict):
        commit_order(db, draft)

    assert db.query(Order).count() == 1
    assert len(order_history(db, draft.order_id)) == 1


def test_same_customer_reusing_coupon_gets_already_used():
    db = build_session()
    seed = seed_catalog(db)
    first = build_order(db, order_request(seed, coupon_code="SAVE10"))
    second = build_order(db, order_request(seed, coupon_code="SAVE10"))

    commit_order(db, first)
    with pytest.raises(CouponAlreadyUsed):
        commit_order(db, second)

    assert db.query(Order).count() == 1
    assert _uses_count(db, "SAVE10") == 1
    assert db.query(OrderEvent).filter(OrderEvent.order_id == second.order_id).count() == 0


def test_single_use_coupon_exhausted_for_second_customer():
    db = build_session()
    seed = seed_catalog(db)
    first = build_order(db, order_request(seed, coupon_code="ONCE"))
    second = build_order(db, order_request(seed, customer_id=seed.other_customer_id, coupon_code="ONCE"))

    commit_order(db, first)
    with pytest.raises(CouponExhausted):
        commit_order(db, second)

    assert _uses_count(db, "ONCE") == 1
    assert db.query(CouponRedemption).count() == 1

    with pytest.raises(CouponExhausted):
        build_order(db, order_request(seed, customer_id=seed.other_customer_id, coupon_code="ONCE"))


def test_failed_points_debit_rolls_back_coupon_and_order():
    db = build_session()
    seed = seed_catalog(db)
    first = build_order(db, order_request(seed, loyalty_points=80))
    second = build_order(db, order_request(seed, coupon_code="SAVE10", loyalty_points=80))

    commit_order(db, first)
    with pytest.raises(InsufficientPoints):
        commit_order(db, second)

    assert ledger.get_balance(db, seed.customer_id) == 20
    assert db.query(Order).count() == 1
    assert db.query(CouponRedemption).count() == 0
    assert _uses_count(db, "SAVE10") == 0
    assert db.query(LoyaltyTransaction).count() == 1
    assert db.get(Order, second.order_id) is None


def test_transition_path_records_one_status_event_per_call():
    db = build_session()
    seed = seed_catalog(db)
    order = commit_order(db, build_order(db, order_request(seed, coupon_code="SAVE10", loyalty_points=100)))

    transition_order(db, order.id, "PROCESSING", actor="cozinha")
    completed = transition_order(db, order.id, "COMPLETED")

    assert completed.status == "COMPLETED"
    assert completed.processed_at is not None
    assert completed.completed_at is not None

    status_events = _status_events(db, order.id)
    assert [(event.payload["previous_status"], event.event_type) for event in status_events] == [
        (None, "PENDING"),
        ("PENDING", "PROCESSING"),
        ("PROCESSING", "COMPLETED"),
    ]
    assert status_events[1].payload["actor"] == "cozinha"
    assert replay_status(order_history(db, order.id)) == "COMPLETED"


def test_completion_accrues_points_on_final_total():
    db = build_session()
    seed = seed_catalog(db)
    order = commit_order(db, build_order(db, order_request(seed, coupon_code="SAVE10", loyalty_points=100)))

    transition_order(db, order.id, "PROCESSING")
    transition_order(db, order.id, "COMPLETED")

    assert ledger.get_balance(db, seed.customer_id) == 21
    earned = [event for event in order_history(db, order.id) if event.event_type == POINTS_EARNED]
    assert len(earned) == 1
    assert earned[0].payload["points_delta"] == 21


def test_pending_to_completed_is_rejected_without_side_effects():
    db = build_session()
    seed = seed_catalog(db)
    order = commit_order(db, build_order(db, order_request(seed)))

    with pytest.raises(InvalidTransition):
        transition_order(db, order.id, "COMPLETED")

    assert get_order(db, order.id).status == "PENDING"
    assert len(order_history(db, order.id)) == 1


def test_terminal_order_rejects_further_transitions():
    db = build_session()
    seed = seed_catalog(db)
    order = commit_order(db, build_order(db, order_request(seed)))
    transition_order(db, order.id, "FAILED", reason="pagamento recusado")

    for target in ("PENDING", "PROCESSING", "COMPLETED", "CANCELLED"):
        with pytest.raises(InvalidTransition):
            transition_order(db, order.id, target)

    events = _status_events(db, order.id)
    assert [event.event_type for event in events] == ["PENDING", "FAILED"]
    assert events[-1].payload["reason"] == "pagamento recusado"


def test_cancel_refunds_redeemed_points():
    db = build_session()
    seed = seed_catalog(db)
    order = commit_order(db, build_order(db, order_request(seed, loyalty_points=100)))
    assert ledger.get_balance(db, seed.customer_id) == 0

    transition_order(db, order.id, "CANCELLED")

    assert ledger.get_balance(db, seed.customer_id) == 100
    assert [event.event_type for event in order_history(db, order.id)][-1] == POINTS_REFUNDED


def test_cancel_keeps_points_when_refund_disabled(monkeypatch):
    from cardapio.core import config

    monkeypatch.setattr(config, "LOYALTY_REFUND_ON_CANCEL", False)
    db = build_session()
    seed = seed_catalog(db)
    order = commit_order(db, build_order(db, order_request(seed, loyalty_points=100)))

    transition_order(db, order.id, "CANCELLED")

    assert ledger.get_balance(db, seed.customer_id) == 0


def test_losing_cancel_race_sees_terminal_status():
    SessionLocal = build_sessionmaker()
    setup = SessionLocal()
    seed = seed_catalog(setup)
    order = commit_order(setup, build_order(setup, order_request(seed)))
    order_id = order.id
    setup.close()

    first = SessionLocal()
    second = SessionLocal()
    assert get_order(second, order_id).status == "PENDING"

    transition_order(first, order_id, "CANCELLED")
    with pytest.raises(InvalidTransition):
        transition_order(second, order_id, "CANCELLED")

    assert [event.event_type for event in _status_events(first, order_id)] == ["PENDING", "CANCELLED"]


def test_concurrent_cancels_have_a_single_winner(tmp_path):
    SessionLocal = build_file_sessionmaker(tmp_path / "pedidos.db")
    setup = SessionLocal()
    seed = seed_catalog(setup)
    order_id = commit_order(setup, build_order(setup, order_request(seed, loyalty_points=100))).id
    setup.close()

    contenders = 6
    barrier = threading.Barrier(contenders)
    outcomes = []

    def _cancel():
        db = SessionLocal()
        try:
            barrier.wait()
            transition_order(db, order_id, "CANCELLED")
            outcomes.append("ok")
        except OrderError as exc:
            outcomes.append(exc.code)
        finally:
            db.close()

    threads = [threading.Thread(target=_cancel) for _ in range(contenders)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["invalid_transition"] * (contenders - 1) + ["ok"]

    db = SessionLocal()
    assert get_order(db, order_id).status == "CANCELLED"
    assert ledger.get_balance(db, seed.customer_id) == 100
    assert [event.event_type for event in order_history(db, order_id)] == [
        "PENDING",
        POINTS_REDEEMED,
        "CANCELLED",
        POINTS_REFUNDED,
    ]
    db.close()


def test_transition_unknown_order():
    db = build_session()
    seed_catalog(db)

    with pytest.raises(NotFound):
        transition_order(db, uuid.uuid4(), "PROCESSING")


def test_order_events_are_append_only():
    db = build_session()
    seed = seed_catalog(db)
    order = commit_order(db, build_order(db, order_request(seed)))
    event = order_history(db, order.id)[0]

    event.event_type = "COMPLETED"
    with pytest.raises(ImmutableRecordError):
        db.flush()
    db.rollback()

    event = order_history(db, order.id)[0]
    db.delete(event)
    with pytest.raises(ImmutableRecordError):
        db.flush()
    db.rollback()

    assert [item.event_type for item in order_history(db, order.id)] == ["PENDING"]


def test_events_are_published_after_commit():
    db = build_session()
    seed = seed_catalog(db)
    received = []

    def _broken(_payload):
        raise RuntimeError("handler fora do ar")

    event_bus.subscribe("order.created", received.append)
    event_bus.subscribe("order.status.changed", received.append)
    event_bus.subscribe("order.created", _broken)
    try:
        order = commit_order(db, build_order(db, order_request(seed)))
        transition_order(db, order.id, "PROCESSING")
    finally:
        event_bus.unsubscribe("order.created", received.append)
        event_bus.unsubscribe("order.status.changed", received.append)
        event_bus.unsubscribe("order.created", _broken)

    assert [(payload["status"], payload["previous_status"]) for payload in received] == [
        ("PENDING", None),
        ("PROCESSING", "PENDING"),
    ]
    assert received[0]["total_cents"] == 2500


class _UnreachableDb:
    def __init__(self):
        self.rolled_back = False

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name="sqlite"))

    def get(self, *_args, **_kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    def commit(self):
        raise AssertionError("commit não deveria ser chamado")

    def rollback(self):
        self.rolled_back = True


def test_storage_failures_map_to_retryable_unavailable():
    db = _UnreachableDb()
    seed = SimpleNamespace(
        customer_id=uuid.uuid4(),
        establishment_id=uuid.uuid4(),
        burger_id=uuid.uuid4(),
        fries_id=uuid.uuid4(),
    )

    with pytest.raises(Unavailable) as build_exc:
        build_order(db, order_request(seed))
    assert build_exc.value.retryable is True

    draft = SimpleNamespace(order_id=uuid.uuid4())
    with pytest.raises(Unavailable):
        commit_order(db, draft)
    assert db.rolled_back is True


def test_reload_failure_after_commit_is_unavailable(monkeypatch):
    db = build_session()
    seed = seed_catalog(db)
    order = commit_order(db, build_order(db, order_request(seed)))

    def _connection_lost(*_args, **_kwargs):
        raise OperationalError("SELECT orders", {}, Exception("server closed the connection unexpectedly"))

    monkeypatch.setattr(db, "refresh", _connection_lost)

    with pytest.raises(Unavailable):
        commit_order(db, build_order(db, order_request(seed)))
    with pytest.raises(Unavailable):
        transition_order(db, order.id, "PROCESSING")
