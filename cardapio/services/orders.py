"""Ciclo de vida do pedido: montar, confirmar e mudar de status.

`build_order` só lê. `commit_order` e `transition_order` rodam cada um como
uma única transação: pedido, itens, cupom, pontos e eventos de auditoria
entram juntos ou nenhum entra.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from cardapio.core import config
from cardapio.models.coupon import Coupon
from cardapio.models.customer import Customer
from cardapio.models.order import Order
from cardapio.models.order_item import OrderItem
from cardapio.models.product import Product
from cardapio.services import ledger
from cardapio.services.order_errors import Conflict, NotFound, OrderError, Unavailable
from cardapio.services.order_events import (
    publish_order_created,
    publish_order_status_changed,
    record_status_event,
)
from cardapio.services.order_pricing import (
    CouponSnapshot,
    OrderDraft,
    OrderRequest,
    PricingSettings,
    ProductSnapshot,
    normalize_coupon_code,
    price_order,
)
from cardapio.services.order_state import OrderStatus, apply_transition, local_today, utcnow

logger = logging.getLogger(__name__)

# tentativas de uma transição que perdeu a corrida pela versão do pedido
STALE_TRANSITION_ATTEMPTS = 3


def _apply_storage_timeout(db: Session, timeout_ms: Optional[int]) -> None:
    timeout_ms = config.STORAGE_TIMEOUT_MS if timeout_ms is None else int(timeout_ms)
    if timeout_ms <= 0:
        return
    if db.get_bind().dialect.name != "postgresql":
        return
    # SET LOCAL vale só até o fim da transação corrente
    db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
    db.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))


@contextmanager
def storage_errors():
    try:
        yield
    except (OperationalError, PoolTimeoutError) as exc:
        logger.warning("storage unavailable: %s", exc.__class__.__name__)
        raise Unavailable() from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            logger.warning("storage connection invalidated")
            raise Unavailable() from exc
        raise


@contextmanager
def unit_of_work(db: Session, *, timeout_ms: Optional[int] = None):
    """Abre uma transação; commit no fim, rollback em qualquer falha."""
    try:
        with storage_errors():
            _apply_storage_timeout(db, timeout_ms)
            yield db
            db.commit()
    except OrderError as exc:
        db.rollback()
        logger.info("order operation rejected code=%s detail=%s", exc.code, exc.message)
        raise
    except StaleDataError as exc:
        db.rollback()
        logger.warning("order changed concurrently, rejecting stale write")
        raise Conflict() from exc
    except Exception:
        db.rollback()
        logger.exception("order unit of work failed")
        raise


def _load_products(db: Session, product_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, ProductSnapshot]:
    ids = set(product_ids)
    if not ids:
        return {}
    rows = (
        db.query(Product.id, Product.establishment_id, Product.is_active, Product.price_cents)
        .filter(Product.id.in_(ids))
        .all()
    )
    return {
        row.id: ProductSnapshot(
            id=row.id,
            establishment_id=row.establishment_id,
            is_active=bool(row.is_active),
            price_cents=int(row.price_cents),
        )
        for row in rows
    }


def _load_coupon(db: Session, code: Optional[str], customer_id: uuid.UUID) -> Optional[CouponSnapshot]:
    if not code:
        return None
    coupon = db.query(Coupon).filter(Coupon.code == code).first()
    if coupon is None:
        return None
    return CouponSnapshot(
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=int(coupon.discount_value),
        valid_from=coupon.valid_from,
        valid_until=coupon.valid_until,
        max_uses=coupon.max_uses,
        redemption_count=ledger.count_redemptions(db, coupon.code),
        used_by_customer=ledger.customer_has_redemption(db, coupon.code, customer_id),
    )


def build_order(
    db: Session,
    request: OrderRequest,
    *,
    today: Optional[date] = None,
    settings: Optional[PricingSettings] = None,
) -> OrderDraft:
    with storage_errors():
        if db.get(Customer, request.customer_id) is None:
            raise NotFound("Cliente não encontrado", customer_id=str(request.customer_id))
        products = _load_products(db, (line.product_id for line in request.items))
        coupon = _load_coupon(db, normalize_coupon_code(request.coupon_code), request.customer_id)
        balance = ledger.get_balance(db, request.customer_id) if request.loyalty_points else 0

    return price_order(
        request,
        products=products,
        coupon=coupon,
        loyalty_balance=balance,
        today=today or local_today(),
        settings=settings or PricingSettings.from_config(),
    )


def commit_order(
    db: Session,
    draft: OrderDraft,
    *,
    actor: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    today: Optional[date] = None,
) -> Order:
    with unit_of_work(db, timeout_ms=timeout_ms):
        if db.get(Order, draft.order_id) is not None:
            raise Conflict("Rascunho já confirmado", order_id=str(draft.order_id))

        now = utcnow()
        order = Order(
            id=draft.order_id,
            customer_id=draft.customer_id,
            establishment_id=draft.establishment_id,
            coupon_code=draft.coupon_code,
            loyalty_points=draft.loyalty_points,
            subtotal_cents=draft.subtotal_cents,
            discount_cents=draft.discount_cents,
            loyalty_discount_cents=draft.loyalty_discount_cents,
            total_cents=draft.total_cents,
            status=OrderStatus.PENDING.value,
            ordered_at=now,
            updated_at=now,
        )
        order.items = [
            OrderItem(
                product_id=line.product_id,
                position=position,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                total_price_cents=line.total_price_cents,
            )
            for position, line in enumerate(draft.lines)
        ]
        db.add(order)
        try:
            db.flush()
        except IntegrityError as exc:
            raise Conflict("Pedido não pôde ser gravado", order_id=str(draft.order_id)) from exc

        record_status_event(db, order, previous_status=None, actor=actor, occurred_at=now)

        if draft.coupon_code:
            ledger.redeem_coupon(
                db,
                coupon_code=draft.coupon_code,
                customer_id=draft.customer_id,
                order_id=order.id,
                today=today,
            )
        if draft.loyalty_points:
            ledger.debit_points(
                db,
                customer_id=draft.customer_id,
                order_id=order.id,
                points=draft.loyalty_points,
            )

    with storage_errors():
        db.refresh(order)
    logger.info(
        "order committed order_id=%s total_cents=%s coupon=%s points=%s",
        order.id,
        order.total_cents,
        order.coupon_code,
        order.loyalty_points,
        extra={"order_id": str(order.id)},
    )
    publish_order_created(order)
    return order


def get_order(db: Session, order_id: uuid.UUID) -> Order:
    with storage_errors():
        order = db.get(Order, order_id)
    if order is None:
        raise NotFound("Pedido não encontrado", order_id=str(order_id))
    return order


def _transition_once(
    db: Session,
    order_id: uuid.UUID,
    new_status,
    *,
    reason: Optional[str],
    actor: Optional[str],
    timeout_ms: Optional[int],
    settings: Optional[PricingSettings],
) -> tuple[Order, OrderStatus]:
    with unit_of_work(db, timeout_ms=timeout_ms):
        # lock da linha do pedido: transições concorrentes do mesmo pedido serializam aqui
        order = (
            db.query(Order)
            .filter(Order.id == order_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if order is None:
            raise NotFound("Pedido não encontrado", order_id=str(order_id))

        now = utcnow()
        previous = apply_transition(order, new_status, now=now)
        record_status_event(
            db,
            order,
            previous_status=previous.value,
            actor=actor,
            reason=reason,
            occurred_at=now,
        )
        db.flush()

        if order.status == OrderStatus.COMPLETED.value:
            ledger.accrue_points_for_order(db, order, settings)
        elif order.status in {OrderStatus.CANCELLED.value, OrderStatus.FAILED.value}:
            if config.LOYALTY_REFUND_ON_CANCEL:
                ledger.refund_points_for_order(db, order)

    return order, previous


def transition_order(
    db: Session,
    order_id: uuid.UUID,
    new_status,
    *,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    settings: Optional[PricingSettings] = None,
) -> Order:
    """Muda o status do pedido numa transação própria.

    Sem lock de linha (SQLite) o perdedor de uma corrida só descobre na
    escrita, pela versão do pedido. Nesse caso a transição é refeita sobre o
    status já gravado: se o pedido ficou terminal o perdedor recebe
    `InvalidTransition`, como aconteceria com o lock. `Conflict` só sobra
    quando as tentativas se esgotam.
    """
    attempt = 1
    while True:
        try:
            order, previous = _transition_once(
                db,
                order_id,
                new_status,
                reason=reason,
                actor=actor,
                timeout_ms=timeout_ms,
                settings=settings,
            )
            break
        except Conflict as exc:
            if not isinstance(exc.__cause__, StaleDataError) or attempt >= STALE_TRANSITION_ATTEMPTS:
                raise
            logger.info("order transition retried order_id=%s attempt=%s", order_id, attempt)
            attempt += 1

    with storage_errors():
        db.refresh(order)
    logger.info(
        "order transitioned order_id=%s %s -> %s",
        order.id,
        previous.value,
        order.status,
        extra={"order_id": str(order.id)},
    )
    publish_order_status_changed(order, previous.value)
    return order
