import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from cardapio.core.database import get_db
from cardapio.models.order import Order
from cardapio.models.order_item import OrderItem
from cardapio.services.order_events import event_to_dict, order_history
from cardapio.services.order_pricing import OrderDraft, OrderLineRequest, OrderRequest
from cardapio.services.orders import build_order, commit_order, get_order, transition_order

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderLineIn(BaseModel):
    product_id: uuid.UUID
    quantity: int


class OrderCreate(BaseModel):
    customer_id: uuid.UUID
    establishment_id: uuid.UUID
    items: List[OrderLineIn]
    coupon_code: Optional[str] = None
    loyalty_points: int = Field(0, ge=0)
    actor: Optional[str] = None

    def to_request(self) -> OrderRequest:
        return OrderRequest(
            customer_id=self.customer_id,
            establishment_id=self.establishment_id,
            items=tuple(OrderLineRequest(product_id=item.product_id, quantity=item.quantity) for item in self.items),
            coupon_code=self.coupon_code,
            loyalty_points=self.loyalty_points,
        )


class StatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None
    actor: Optional[str] = None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "product_id": str(item.product_id),
        "quantity": item.quantity,
        "unit_price_cents": item.unit_price_cents,
        "total_price_cents": item.total_price_cents,
    }


def _order_to_dict(order: Order) -> Dict[str, Any]:
    return {
        "id": str(order.id),
        "customer_id": str(order.customer_id),
        "establishment_id": str(order.establishment_id),
        "coupon_code": order.coupon_code,
        "loyalty_points": order.loyalty_points,
        "subtotal_cents": order.subtotal_cents,
        "discount_cents": order.discount_cents,
        "loyalty_discount_cents": order.loyalty_discount_cents,
        "total_cents": order.total_cents,
        "status": order.status,
        "ordered_at": _iso(order.ordered_at),
        "processed_at": _iso(order.processed_at),
        "completed_at": _iso(order.completed_at),
        "updated_at": _iso(order.updated_at),
        "items": [_order_item_to_dict(item) for item in order.items],
    }


def _draft_to_dict(draft: OrderDraft) -> Dict[str, Any]:
    return {
        "order_id": str(draft.order_id),
        "customer_id": str(draft.customer_id),
        "establishment_id": str(draft.establishment_id),
        "status": draft.status,
        "items": [
            {
                "product_id": str(line.product_id),
                "quantity": line.quantity,
                "unit_price_cents": line.unit_price_cents,
                "total_price_cents": line.total_price_cents,
            }
            for line in draft.lines
        ],
        "subtotal_cents": draft.subtotal_cents,
        "coupon_code": draft.coupon_code,
        "discount_cents": draft.discount_cents,
        "loyalty_points": draft.loyalty_points,
        "loyalty_discount_cents": draft.loyalty_discount_cents,
        "total_cents": draft.total_cents,
    }


@router.post("/quote")
def quote_order(payload: OrderCreate, db: Session = Depends(get_db)):
    draft = build_order(db, payload.to_request())
    return _draft_to_dict(draft)


@router.post("", status_code=201)
def create_order(payload: OrderCreate, db: Session = Depends(get_db)):
    draft = build_order(db, payload.to_request())
    order = commit_order(db, draft, actor=payload.actor)
    return _order_to_dict(order)


@router.get("/{order_id}")
def read_order(order_id: uuid.UUID, db: Session = Depends(get_db)):
    return _order_to_dict(get_order(db, order_id))


@router.get("/{order_id}/events")
def list_order_events(order_id: uuid.UUID, db: Session = Depends(get_db)):
    get_order(db, order_id)
    return [event_to_dict(event) for event in order_history(db, order_id)]


@router.patch("/{order_id}/status")
def update_status(order_id: uuid.UUID, body: StatusUpdate, db: Session = Depends(get_db)):
    order = transition_order(db, order_id, body.status, reason=body.reason, actor=body.actor)
    return _order_to_dict(order)
