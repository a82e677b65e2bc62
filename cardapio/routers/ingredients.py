import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cardapio.core.database import get_db
from cardapio.models.ingredient import Ingredient

router = APIRouter(prefix="/api/ingredients", tags=["ingredients"])


class IngredientOut(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None


class IngredientIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


def _ingredient_to_dict(ingredient: Ingredient) -> dict:
    return {"id": ingredient.id, "name": ingredient.name, "description": ingredient.description}


def _get_or_404(db: Session, ingredient_id: uuid.UUID) -> Ingredient:
    ingredient = db.query(Ingredient).filter(Ingredient.id == ingredient_id).first()
    if not ingredient:
        raise HTTPException(status_code=404, detail="Ingrediente não encontrado")
    return ingredient


def _commit_or_409(db: Session, detail: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=detail)


@router.get("", response_model=List[IngredientOut])
def list_ingredients(db: Session = Depends(get_db)):
    return [_ingredient_to_dict(item) for item in db.query(Ingredient).order_by(Ingredient.name.asc()).all()]


@router.post("", response_model=IngredientOut, status_code=201)
def create_ingredient(payload: IngredientIn, db: Session = Depends(get_db)):
    ingredient = Ingredient(name=payload.name.strip(), description=payload.description)
    db.add(ingredient)
    _commit_or_409(db, "Ingrediente já cadastrado")
    db.refresh(ingredient)
    return _ingredient_to_dict(ingredient)


@router.get("/{ingredient_id}", response_model=IngredientOut)
def read_ingredient(ingredient_id: uuid.UUID, db: Session = Depends(get_db)):
    return _ingredient_to_dict(_get_or_404(db, ingredient_id))


@router.put("/{ingredient_id}", response_model=IngredientOut)
def update_ingredient(ingredient_id: uuid.UUID, payload: IngredientIn, db: Session = Depends(get_db)):
    ingredient = _get_or_404(db, ingredient_id)
    ingredient.name = payload.name.strip()
    ingredient.description = payload.description
    _commit_or_409(db, "Ingrediente já cadastrado")
    db.refresh(ingredient)
    return _ingredient_to_dict(ingredient)


@router.delete("/{ingredient_id}", status_code=204)
def delete_ingredient(ingredient_id: uuid.UUID, db: Session = Depends(get_db)):
    ingredient = _get_or_404(db, ingredient_id)
    db.delete(ingredient)
    _commit_or_409(db, "Ingrediente em uso por produtos")
