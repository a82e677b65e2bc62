from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, DefaultDict, Iterable, List, Optional

from sqlalchemy.orm import Session

from cardapio.models.order import Order
from cardapio.models.order_event import OrderEvent
from cardapio.services.order_state import OrderStatus, utcnow

logger = logging.getLogger(__name__)

COUPON_REDEEMED = "COUPON_REDEEMED"
POINTS_REDEEMED = "POINTS_REDEEMED"
POINTS_EARNED = "POINTS_EARNED"
POINTS_REFUNDED = "POINTS_REFUNDED"

STATUS_EVENT_TYPES = frozenset(status.value for status in OrderStatus)


def append_order_event(
    db: Session,
    *,
    order_id,
    event_type: str,
    payload: Optional[dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> OrderEvent:
    """Insere um evento de auditoria na transação corrente (nunca faz commit)."""
    event = OrderEvent(
        order_id=order_id,
        event_type=event_type,
        payload=payload or {},
        occurred_at=occurred_at or utcnow(),
    )
    db.add(event)
    return event


def record_status_event(
    db: Session,
    order: Order,
    *,
    previous_status: Optional[str],
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
) -> OrderEvent:
    payload: dict[str, Any] = {"previous_status": previous_status, "status": order.status}
    if actor:
        payload["actor"] = actor
    if reason:
        payload["reason"] = reason
    return append_order_event(
        db,
        order_id=order.id,
        event_type=order.status,
        payload=payload,
        occurred_at=occurred_at,
    )


def order_history(db: Session, order_id) -> list[OrderEvent]:
    return (
        db.query(OrderEvent)
        .filter(OrderEvent.order_id == order_id)
        .order_by(OrderEvent.occurred_at.asc(), OrderEvent.id.asc())
        .all()
    )


def replay_status(events: Iterable[OrderEvent]) -> Optional[str]:
    status = None
    for event in events:
        if event.event_type in STATUS_EVENT_TYPES:
            status = event.event_type
    return status


def event_to_dict(event: OrderEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "order_id": str(event.order_id),
        "event_type": event.event_type,
        "payload": event.payload or {},
        "occurred_at": event.occurred_at.isoformat() if event.occurred_at else None,
    }


# Notificação pós-commit para colaboradores externos (pagamento, notificações...).
Handler = Callable[[dict[str, Any]], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        handlers = list(self._handlers.get(event_name, []))
        if not handlers:
            logger.debug("EventBus: no handlers for %s", event_name)
            return
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("EventBus handler failed for %s", event_name)

    def subscribe(self, event_name: str, handler: Handler) -> None:
        self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)


event_bus = EventBus()


def build_order_payload(order: Order, previous_status: Optional[str] = None) -> dict[str, Any]:
    return {
        "order_id": str(order.id),
        "establishment_id": str(order.establishment_id),
        "customer_id": str(order.customer_id),
        "status": order.status,
        "previous_status": previous_status,
        "total_cents": int(order.total_cents or 0),
    }


def publish_order_created(order: Order) -> None:
    event_bus.emit("order.created", build_order_payload(order))


def publish_order_status_changed(order: Order, previous_status: Optional[str]) -> None:
    event_bus.emit("order.status.changed", build_order_payload(order, previous_status=previous_status))
