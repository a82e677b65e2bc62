from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cardapio.models.coupon import Coupon, CouponRedemption
from cardapio.models.loyalty import LoyaltyAccount, LoyaltyTransaction
from cardapio.models.order import Order
from cardapio.services.order_errors import (
    CouponAlreadyUsed,
    CouponExhausted,
    CouponExpired,
    CouponInvalid,
    InsufficientPoints,
    InvalidQuantity,
)
from cardapio.services.order_events import (
    COUPON_REDEEMED,
    POINTS_EARNED,
    POINTS_REDEEMED,
    POINTS_REFUNDED,
    append_order_event,
)
from cardapio.services.order_pricing import PricingSettings, points_earned
from cardapio.services.order_state import local_today, utcnow

logger = logging.getLogger(__name__)

REASON_REDEMPTION = "order_redemption"
REASON_ACCRUAL = "order_accrual"
REASON_REFUND = "order_refund"

# Todas as funções abaixo escrevem na transação do chamador e nunca fazem
# commit/rollback: quem abre a unidade de trabalho é `services.orders`.


def customer_has_redemption(db: Session, coupon_code: str, customer_id: uuid.UUID) -> bool:
    row = (
        db.query(CouponRedemption.id)
        .filter(CouponRedemption.coupon_code == coupon_code, CouponRedemption.customer_id == customer_id)
        .first()
    )
    return row is not None


def count_redemptions(db: Session, coupon_code: str) -> int:
    return db.query(CouponRedemption).filter(CouponRedemption.coupon_code == coupon_code).count()


def redeem_coupon(
    db: Session,
    *,
    coupon_code: str,
    customer_id: uuid.UUID,
    order_id: uuid.UUID,
    today: Optional[date] = None,
) -> CouponRedemption:
    """Registra o uso do cupom; serializa por código via lock da linha do cupom."""
    coupon = (
        db.query(Coupon)
        .filter(Coupon.code == coupon_code)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if coupon is None:
        raise CouponInvalid(coupon_code=coupon_code)

    today = today or local_today()
    if not (coupon.valid_from <= today <= coupon.valid_until):
        raise CouponExpired(coupon_code=coupon_code)

    if customer_has_redemption(db, coupon_code, customer_id):
        raise CouponAlreadyUsed(coupon_code=coupon_code)

    result = db.execute(
        update(Coupon)
        .where(
            Coupon.code == coupon_code,
            or_(Coupon.max_uses.is_(None), Coupon.uses_count < Coupon.max_uses),
        )
        .values(uses_count=Coupon.uses_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # perdeu a corrida: decide qual regra foi violada com o estado já confirmado
        if customer_has_redemption(db, coupon_code, customer_id):
            raise CouponAlreadyUsed(coupon_code=coupon_code)
        raise CouponExhausted(coupon_code=coupon_code)
    db.expire(coupon, ["uses_count"])

    redemption = CouponRedemption(
        coupon_code=coupon_code,
        customer_id=customer_id,
        order_id=order_id,
        redeemed_at=utcnow(),
    )
    db.add(redemption)
    try:
        db.flush()
    except IntegrityError as exc:
        raise CouponAlreadyUsed(coupon_code=coupon_code) from exc

    append_order_event(
        db,
        order_id=order_id,
        event_type=COUPON_REDEEMED,
        payload={
            "coupon_code": coupon_code,
            "customer_id": str(customer_id),
            "redemption_id": str(redemption.id),
        },
    )
    logger.info("coupon redeemed code=%s customer_id=%s order_id=%s", coupon_code, customer_id, order_id)
    return redemption


def get_balance(db: Session, customer_id: uuid.UUID) -> int:
    balance = (
        db.query(LoyaltyAccount.points_balance)
        .filter(LoyaltyAccount.customer_id == customer_id)
        .scalar()
    )
    return int(balance or 0)


def _ensure_account(db: Session, customer_id: uuid.UUID) -> None:
    exists = (
        db.query(LoyaltyAccount.customer_id)
        .filter(LoyaltyAccount.customer_id == customer_id)
        .first()
    )
    if exists is not None:
        return
    try:
        with db.begin_nested():
            db.add(LoyaltyAccount(customer_id=customer_id, points_balance=0))
    except IntegrityError:
        # outra transação criou a conta primeiro
        logger.info("loyalty account created concurrently customer_id=%s", customer_id)


def _record_transaction(
    db: Session,
    *,
    customer_id: uuid.UUID,
    order_id: uuid.UUID,
    points_delta: int,
    reason: str,
    event_type: str,
    now: datetime,
) -> LoyaltyTransaction:
    transaction = LoyaltyTransaction(
        customer_id=customer_id,
        order_id=order_id,
        points_delta=points_delta,
        reason=reason,
        created_at=now,
    )
    db.add(transaction)
    db.flush()
    # todo movimento de pontos pertence a um pedido e entra na trilha dele
    append_order_event(
        db,
        order_id=order_id,
        event_type=event_type,
        payload={
            "customer_id": str(customer_id),
            "points_delta": points_delta,
            "reason": reason,
            "transaction_id": str(transaction.id),
            "balance_after": get_balance(db, customer_id),
        },
        occurred_at=now,
    )
    return transaction


def debit_points(
    db: Session,
    *,
    customer_id: uuid.UUID,
    order_id: uuid.UUID,
    points: int,
    reason: str = REASON_REDEMPTION,
) -> LoyaltyTransaction:
    if points <= 0:
        raise InvalidQuantity("Quantidade de pontos inválida", loyalty_points=points)

    now = utcnow()
    # o saldo é revalidado aqui, no próprio UPDATE; nunca fica negativo
    result = db.execute(
        update(LoyaltyAccount)
        .where(LoyaltyAccount.customer_id == customer_id, LoyaltyAccount.points_balance >= points)
        .values(points_balance=LoyaltyAccount.points_balance - points, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InsufficientPoints(requested=points, balance=get_balance(db, customer_id))

    logger.info("loyalty debit customer_id=%s points=%s order_id=%s", customer_id, points, order_id)
    return _record_transaction(
        db,
        customer_id=customer_id,
        order_id=order_id,
        points_delta=-points,
        reason=reason,
        event_type=POINTS_REDEEMED,
        now=now,
    )


def credit_points(
    db: Session,
    *,
    customer_id: uuid.UUID,
    order_id: uuid.UUID,
    points: int,
    reason: str,
    event_type: str = POINTS_EARNED,
) -> LoyaltyTransaction:
    if points <= 0:
        raise InvalidQuantity("Quantidade de pontos inválida", loyalty_points=points)

    now = utcnow()
    _ensure_account(db, customer_id)
    db.execute(
        update(LoyaltyAccount)
        .where(LoyaltyAccount.customer_id == customer_id)
        .values(points_balance=LoyaltyAccount.points_balance + points, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    logger.info("loyalty credit customer_id=%s points=%s reason=%s", customer_id, points, reason)
    return _record_transaction(
        db,
        customer_id=customer_id,
        order_id=order_id,
        points_delta=points,
        reason=reason,
        event_type=event_type,
        now=now,
    )


def accrue_points_for_order(
    db: Session,
    order: Order,
    settings: Optional[PricingSettings] = None,
) -> Optional[LoyaltyTransaction]:
    settings = settings or PricingSettings.from_config()
    points = points_earned(order.total_cents, settings)
    if points <= 0:
        return None
    return credit_points(
        db,
        customer_id=order.customer_id,
        order_id=order.id,
        points=points,
        reason=REASON_ACCRUAL,
        event_type=POINTS_EARNED,
    )


def refund_points_for_order(db: Session, order: Order) -> Optional[LoyaltyTransaction]:
    points = int(order.loyalty_points or 0)
    if points <= 0:
        return None
    return credit_points(
        db,
        customer_id=order.customer_id,
        order_id=order.id,
        points=points,
        reason=REASON_REFUND,
        event_type=POINTS_REFUNDED,
    )
