import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cardapio.core.database import get_db
from cardapio.models.establishment import Establishment

router = APIRouter(prefix="/establishments", tags=["establishments"])


class EstablishmentOut(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    address: Optional[str] = None
    image_key: Optional[str] = None
    banner_key: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class EstablishmentIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    address: Optional[str] = None
    image_key: Optional[str] = None
    banner_key: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)


def _establishment_to_dict(establishment: Establishment) -> dict:
    return {
        "id": establishment.id,
        "name": establishment.name,
        "description": establishment.description,
        "address": establishment.address,
        "image_key": establishment.image_key,
        "banner_key": establishment.banner_key,
        "phone": establishment.phone,
        "created_at": establishment.created_at.isoformat() if establishment.created_at else None,
        "updated_at": establishment.updated_at.isoformat() if establishment.updated_at else None,
    }


def _get_or_404(db: Session, establishment_id: uuid.UUID) -> Establishment:
    establishment = db.query(Establishment).filter(Establishment.id == establishment_id).first()
    if not establishment:
        raise HTTPException(status_code=404, detail="Estabelecimento não encontrado")
    return establishment


@router.get("", response_model=List[EstablishmentOut])
def list_establishments(db: Session = Depends(get_db)):
    establishments = db.query(Establishment).order_by(Establishment.name.asc()).all()
    return [_establishment_to_dict(establishment) for establishment in establishments]


@router.post("", response_model=EstablishmentOut, status_code=201)
def create_establishment(payload: EstablishmentIn, db: Session = Depends(get_db)):
    establishment = Establishment(**payload.model_dump())
    db.add(establishment)
    db.commit()
    db.refresh(establishment)
    return _establishment_to_dict(establishment)


@router.get("/{establishment_id}", response_model=EstablishmentOut)
def read_establishment(establishment_id: uuid.UUID, db: Session = Depends(get_db)):
    return _establishment_to_dict(_get_or_404(db, establishment_id))


@router.put("/{establishment_id}", status_code=204)
def update_establishment(
    establishment_id: uuid.UUID,
    payload: EstablishmentIn,
    db: Session = Depends(get_db),
):
    establishment = _get_or_404(db, establishment_id)
    for field, value in payload.model_dump().items():
        setattr(establishment, field, value)
    db.commit()
    return Response(status_code=204)


@router.delete("/{establishment_id}", status_code=204)
def delete_establishment(establishment_id: uuid.UUID, db: Session = Depends(get_db)):
    establishment = _get_or_404(db, establishment_id)
    db.delete(establishment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Estabelecimento possui pedidos e não pode ser removido")
    return Response(status_code=204)
