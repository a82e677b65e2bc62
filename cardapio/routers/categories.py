import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from cardapio.core.database import get_db
from cardapio.models.establishment import Establishment
from cardapio.models.product_category import ProductCategory

router = APIRouter(prefix="/api/categories", tags=["categories"])


class CategoryOut(BaseModel):
    id: uuid.UUID
    establishment_id: uuid.UUID
    name: str
    description: Optional[str] = None
    created_at: Optional[str] = None


class CategoryCreate(BaseModel):
    establishment_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


def _category_to_dict(category: ProductCategory) -> dict:
    return {
        "id": category.id,
        "establishment_id": category.establishment_id,
        "name": category.name,
        "description": category.description,
        "created_at": category.created_at.isoformat() if category.created_at else None,
    }


def _get_or_404(db: Session, category_id: uuid.UUID) -> ProductCategory:
    category = db.query(ProductCategory).filter(ProductCategory.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Categoria não encontrada")
    return category


@router.get("", response_model=List[CategoryOut])
def list_categories(establishment_id: Optional[uuid.UUID] = Query(None), db: Session = Depends(get_db)):
    query = db.query(ProductCategory)
    if establishment_id is not None:
        query = query.filter(ProductCategory.establishment_id == establishment_id)
    return [_category_to_dict(category) for category in query.order_by(ProductCategory.name.asc()).all()]


@router.post("", response_model=CategoryOut, status_code=201)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    if not db.query(Establishment).filter(Establishment.id == payload.establishment_id).first():
        raise HTTPException(status_code=404, detail="Estabelecimento não encontrado")
    category = ProductCategory(**payload.model_dump())
    db.add(category)
    db.commit()
    db.refresh(category)
    return _category_to_dict(category)


@router.get("/{category_id}", response_model=CategoryOut)
def read_category(category_id: uuid.UUID, db: Session = Depends(get_db)):
    return _category_to_dict(_get_or_404(db, category_id))


@router.put("/{category_id}", response_model=CategoryOut)
def update_category(category_id: uuid.UUID, payload: CategoryUpdate, db: Session = Depends(get_db)):
    category = _get_or_404(db, category_id)
    if payload.name is not None:
        category.name = payload.name
    if payload.description is not None:
        category.description = payload.description
    db.commit()
    db.refresh(category)
    return _category_to_dict(category)


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: uuid.UUID, db: Session = Depends(get_db)):
    category = _get_or_404(db, category_id)
    db.delete(category)
    db.commit()
