"""Precificação de pedidos (Order Builder).

Tudo aqui é puro: recebe fotografias do catálogo, do cupom e do saldo de
pontos e devolve um rascunho precificado. Nada é lido nem gravado no banco;
os efeitos colaterais ficam para o commit (ver `ledger` e `orders`).
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Mapping, Optional

from cardapio.core import config
from cardapio.models.coupon import DISCOUNT_FIXED, DISCOUNT_PERCENT
from cardapio.services.order_errors import (
    CouponAlreadyUsed,
    CouponExhausted,
    CouponExpired,
    CouponInvalid,
    InsufficientPoints,
    InvalidQuantity,
    ProductUnavailable,
)

PENDING = "PENDING"


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: uuid.UUID
    quantity: int


@dataclass(frozen=True)
class OrderRequest:
    customer_id: uuid.UUID
    establishment_id: uuid.UUID
    items: tuple[OrderLineRequest, ...]
    coupon_code: Optional[str] = None
    loyalty_points: int = 0


@dataclass(frozen=True)
class ProductSnapshot:
    id: uuid.UUID
    establishment_id: uuid.UUID
    is_active: bool
    price_cents: int


@dataclass(frozen=True)
class CouponSnapshot:
    code: str
    discount_type: str
    discount_value: int
    valid_from: date
    valid_until: date
    max_uses: Optional[int]
    redemption_count: int
    used_by_customer: bool


@dataclass(frozen=True)
class PricingSettings:
    point_value_cents: int = 1
    accrual_points_per_unit: int = 1

    @classmethod
    def from_config(cls) -> "PricingSettings":
        return cls(
            point_value_cents=config.LOYALTY_POINT_VALUE_CENTS,
            accrual_points_per_unit=config.LOYALTY_ACCRUAL_POINTS_PER_UNIT,
        )


@dataclass(frozen=True)
class PricedLine:
    product_id: uuid.UUID
    quantity: int
    unit_price_cents: int
    total_price_cents: int


@dataclass(frozen=True)
class OrderDraft:
    order_id: uuid.UUID
    customer_id: uuid.UUID
    establishment_id: uuid.UUID
    lines: tuple[PricedLine, ...]
    subtotal_cents: int
    coupon_code: Optional[str]
    discount_cents: int
    loyalty_points: int
    loyalty_discount_cents: int
    total_cents: int
    status: str = field(default=PENDING)


def normalize_coupon_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    normalized = code.strip().upper()
    return normalized or None


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _check_products(request: OrderRequest, products: Mapping[uuid.UUID, ProductSnapshot]) -> None:
    for line in request.items:
        product = products.get(line.product_id)
        if product is None or product.establishment_id != request.establishment_id or not product.is_active:
            raise ProductUnavailable(product_id=str(line.product_id))


def _check_quantities(items: Iterable[OrderLineRequest]) -> None:
    for line in items:
        if not _is_positive_int(line.quantity):
            raise InvalidQuantity(
                f"Quantidade inválida para o produto {line.product_id}",
                product_id=str(line.product_id),
                quantity=line.quantity,
            )


def _price_lines(
    items: Iterable[OrderLineRequest],
    products: Mapping[uuid.UUID, ProductSnapshot],
) -> tuple[PricedLine, ...]:
    # (pedido, produto) é chave: linhas repetidas do mesmo produto são somadas
    quantities: dict[uuid.UUID, int] = {}
    for line in items:
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

    priced = []
    for product_id, quantity in quantities.items():
        unit_price_cents = int(products[product_id].price_cents)
        priced.append(
            PricedLine(
                product_id=product_id,
                quantity=quantity,
                unit_price_cents=unit_price_cents,
                total_price_cents=quantity * unit_price_cents,
            )
        )
    return tuple(priced)


def validate_coupon(coupon: Optional[CouponSnapshot], *, code: str, today: date) -> CouponSnapshot:
    if coupon is None:
        raise CouponInvalid(coupon_code=code)
    if not (coupon.valid_from <= today <= coupon.valid_until):
        raise CouponExpired(coupon_code=code)
    if coupon.used_by_customer:
        raise CouponAlreadyUsed(coupon_code=code)
    if coupon.max_uses is not None and coupon.redemption_count >= coupon.max_uses:
        raise CouponExhausted(coupon_code=code)
    return coupon


def coupon_discount(coupon: CouponSnapshot, subtotal_cents: int) -> int:
    if coupon.discount_type == DISCOUNT_PERCENT:
        discount = subtotal_cents * int(coupon.discount_value) // 100
    elif coupon.discount_type == DISCOUNT_FIXED:
        discount = int(coupon.discount_value)
    else:
        raise CouponInvalid(f"Tipo de desconto desconhecido: {coupon.discount_type}", coupon_code=coupon.code)
    return max(0, min(discount, subtotal_cents))


def points_earned(total_cents: int, settings: PricingSettings) -> int:
    return max(0, int(total_cents) * settings.accrual_points_per_unit // 100)


def price_order(
    request: OrderRequest,
    *,
    products: Mapping[uuid.UUID, ProductSnapshot],
    coupon: Optional[CouponSnapshot],
    loyalty_balance: int,
    today: date,
    settings: PricingSettings,
    order_id: Optional[uuid.UUID] = None,
) -> OrderDraft:
    if not request.items:
        raise InvalidQuantity("Pedido sem itens")

    _check_products(request, products)
    _check_quantities(request.items)

    lines = _price_lines(request.items, products)
    subtotal_cents = sum(line.total_price_cents for line in lines)

    coupon_code = normalize_coupon_code(request.coupon_code)
    discount_cents = 0
    if coupon_code:
        validated = validate_coupon(coupon, code=coupon_code, today=today)
        discount_cents = coupon_discount(validated, subtotal_cents)

    points = request.loyalty_points or 0
    if isinstance(points, bool) or not isinstance(points, int) or points < 0:
        raise InvalidQuantity("Quantidade de pontos inválida", loyalty_points=points)
    loyalty_discount_cents = 0
    if points:
        if loyalty_balance < points:
            raise InsufficientPoints(requested=points, balance=loyalty_balance)
        remaining = subtotal_cents - discount_cents
        loyalty_discount_cents = min(points * settings.point_value_cents, remaining)

    total_cents = max(0, subtotal_cents - discount_cents - loyalty_discount_cents)

    return OrderDraft(
        order_id=order_id or uuid.uuid4(),
        customer_id=request.customer_id,
        establishment_id=request.establishment_id,
        lines=lines,
        subtotal_cents=subtotal_cents,
        coupon_code=coupon_code,
        discount_cents=discount_cents,
        loyalty_points=points,
        loyalty_discount_cents=loyalty_discount_cents,
        total_cents=total_cents,
    )
