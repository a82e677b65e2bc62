from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from cardapio.core import config
from cardapio.services.order_errors import InvalidTransition


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.FAILED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.FAILED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_today(now: Optional[datetime] = None) -> date:
    """Data corrente no fuso configurado (TIMEZONE), não em UTC."""
    now = now or utcnow()
    return now.astimezone(ZoneInfo(config.TIMEZONE)).date()


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus((value or "").strip().upper())
    except ValueError as exc:
        raise InvalidTransition(f"Status desconhecido: {value}", status=value) from exc


def is_terminal(status) -> bool:
    return parse_status(status) in TERMINAL_STATUSES


def ensure_transition(current, new) -> tuple[OrderStatus, OrderStatus]:
    current_status = parse_status(current)
    new_status = parse_status(new)
    if new_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransition(
            f"Transição inválida: {current_status.value} -> {new_status.value}",
            current_status=current_status.value,
            new_status=new_status.value,
        )
    return current_status, new_status


def apply_transition(order, new, *, now: Optional[datetime] = None) -> OrderStatus:
    """Aplica a transição no pedido e devolve o status anterior.

    Só mexe no objeto depois de validar; uma transição recusada não deixa
    rastro no pedido.
    """
    previous, target = ensure_transition(order.status, new)
    now = now or utcnow()

    order.status = target.value
    if target is OrderStatus.PROCESSING:
        order.processed_at = now
    elif target is OrderStatus.COMPLETED:
        order.completed_at = now
    order.updated_at = now
    return previous
