from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cardapio.core.database import get_db
from cardapio.models.coupon import Coupon
from cardapio.services.order_pricing import normalize_coupon_code

router = APIRouter(prefix="/api/coupons", tags=["coupons"])


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    discount_type: Literal["percent", "fixed"]
    discount_value: int = Field(..., ge=0)
    valid_from: date
    valid_until: date
    max_uses: Optional[int] = Field(None, ge=1)

    @model_validator(mode="after")
    def _check_window(self):
        if self.valid_from > self.valid_until:
            raise ValueError("valid_from deve ser anterior a valid_until")
        if self.discount_type == "percent" and self.discount_value > 100:
            raise ValueError("Desconto percentual deve estar entre 0 e 100")
        return self


class CouponUpdate(BaseModel):
    description: Optional[str] = None
    valid_until: Optional[date] = None
    max_uses: Optional[int] = Field(None, ge=1)


def _coupon_to_dict(coupon: Coupon) -> dict:
    return {
        "code": coupon.code,
        "description": coupon.description,
        "discount_type": coupon.discount_type,
        "discount_value": coupon.discount_value,
        "valid_from": coupon.valid_from.isoformat(),
        "valid_until": coupon.valid_until.isoformat(),
        "max_uses": coupon.max_uses,
        "uses_count": coupon.uses_count,
        "created_at": coupon.created_at.isoformat() if coupon.created_at else None,
    }


def _get_or_404(db: Session, code: str) -> Coupon:
    coupon = db.query(Coupon).filter(Coupon.code == normalize_coupon_code(code)).first()
    if not coupon:
        raise HTTPException(status_code=404, detail="Cupom não encontrado")
    return coupon


@router.get("")
def list_coupons(db: Session = Depends(get_db)):
    return [_coupon_to_dict(coupon) for coupon in db.query(Coupon).order_by(Coupon.code.asc()).all()]


@router.post("", status_code=201)
def create_coupon(payload: CouponCreate, db: Session = Depends(get_db)):
    data = payload.model_dump()
    data["code"] = normalize_coupon_code(payload.code)
    if not data["code"]:
        raise HTTPException(status_code=422, detail="Código do cupom inválido")
    coupon = Coupon(**data)
    db.add(coupon)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Cupom já cadastrado")
    db.refresh(coupon)
    return _coupon_to_dict(coupon)


@router.get("/{code}")
def read_coupon(code: str, db: Session = Depends(get_db)):
    return _coupon_to_dict(_get_or_404(db, code))


@router.put("/{code}")
def update_coupon(code: str, payload: CouponUpdate, db: Session = Depends(get_db)):
    coupon = _get_or_404(db, code)
    if payload.description is not None:
        coupon.description = payload.description
    if payload.valid_until is not None:
        coupon.valid_until = payload.valid_until
    if payload.max_uses is not None:
        coupon.max_uses = payload.max_uses
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Alteração conflita com os usos do cupom")
    db.refresh(coupon)
    return _coupon_to_dict(coupon)


@router.delete("/{code}", status_code=204)
def delete_coupon(code: str, db: Session = Depends(get_db)):
    coupon = _get_or_404(db, code)
    db.delete(coupon)
    db.commit()
