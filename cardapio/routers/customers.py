import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cardapio.core.database import get_db
from cardapio.models.customer import Customer
from cardapio.models.loyalty import DEFAULT_TIER, LoyaltyAccount, LoyaltyTransaction

router = APIRouter(prefix="/api/customers", tags=["customers"])


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: Optional[str] = Field(None, max_length=20)
    password_hash: str = Field(..., min_length=1)


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, min_length=3)
    phone: Optional[str] = Field(None, max_length=20)


def _customer_to_dict(customer: Customer) -> dict:
    # password_hash nunca sai na resposta
    return {
        "id": str(customer.id),
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "created_at": customer.created_at.isoformat() if customer.created_at else None,
        "updated_at": customer.updated_at.isoformat() if customer.updated_at else None,
    }


def _get_or_404(db: Session, customer_id: uuid.UUID) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=404, detail="Cliente não encontrado")
    return customer


def _commit_or_409(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="E-mail já cadastrado")


@router.get("")
def list_customers(db: Session = Depends(get_db)):
    return [_customer_to_dict(customer) for customer in db.query(Customer).order_by(Customer.name.asc()).all()]


@router.post("", status_code=201)
def create_customer(payload: CustomerCreate, db: Session = Depends(get_db)):
    customer = Customer(
        name=payload.name,
        email=payload.email.strip().lower(),
        phone=payload.phone,
        password_hash=payload.password_hash,
    )
    db.add(customer)
    _commit_or_409(db)
    db.refresh(customer)
    return _customer_to_dict(customer)


@router.get("/{customer_id}")
def read_customer(customer_id: uuid.UUID, db: Session = Depends(get_db)):
    return _customer_to_dict(_get_or_404(db, customer_id))


@router.put("/{customer_id}")
def update_customer(customer_id: uuid.UUID, payload: CustomerUpdate, db: Session = Depends(get_db)):
    customer = _get_or_404(db, customer_id)
    if payload.name is not None:
        customer.name = payload.name
    if payload.email is not None:
        customer.email = payload.email.strip().lower()
    if payload.phone is not None:
        customer.phone = payload.phone
    _commit_or_409(db)
    db.refresh(customer)
    return _customer_to_dict(customer)


@router.delete("/{customer_id}", status_code=204)
def delete_customer(customer_id: uuid.UUID, db: Session = Depends(get_db)):
    customer = _get_or_404(db, customer_id)
    db.delete(customer)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Cliente possui pedidos e não pode ser removido")


@router.get("/{customer_id}/loyalty")
def read_loyalty(customer_id: uuid.UUID, db: Session = Depends(get_db)):
    _get_or_404(db, customer_id)
    account = db.query(LoyaltyAccount).filter(LoyaltyAccount.customer_id == customer_id).first()
    transactions = (
        db.query(LoyaltyTransaction)
        .filter(LoyaltyTransaction.customer_id == customer_id)
        .order_by(LoyaltyTransaction.created_at.asc())
        .all()
    )
    return {
        "customer_id": str(customer_id),
        "points_balance": account.points_balance if account else 0,
        "tier": account.tier if account else DEFAULT_TIER,
        "transactions": [
            {
                "id": str(item.id),
                "order_id": str(item.order_id) if item.order_id else None,
                "points_delta": item.points_delta,
                "reason": item.reason,
                "created_at": item.created_at.isoformat() if item.created_at else None,
            }
            for item in transactions
        ],
    }
