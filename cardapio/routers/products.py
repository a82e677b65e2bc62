import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cardapio.core.database import get_db
from cardapio.models.establishment import Establishment
from cardapio.models.ingredient import Ingredient, ProductIngredient
from cardapio.models.product import Product
from cardapio.models.product_category import ProductCategory

router = APIRouter(prefix="/api/products", tags=["products"])


class ProductCreate(BaseModel):
    establishment_id: uuid.UUID
    category_id: Optional[uuid.UUID] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price_cents: int = Field(..., ge=0)
    image_key: Optional[str] = None
    banner_key: Optional[str] = None
    is_active: bool = True


class ProductUpdate(BaseModel):
    category_id: Optional[uuid.UUID] = None
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price_cents: Optional[int] = Field(None, ge=0)
    image_key: Optional[str] = None
    banner_key: Optional[str] = None
    is_active: Optional[bool] = None


class ProductIngredientIn(BaseModel):
    quantity: Optional[str] = Field(None, max_length=50)


def _product_to_dict(product: Product) -> dict:
    return {
        "id": str(product.id),
        "establishment_id": str(product.establishment_id),
        "category_id": str(product.category_id) if product.category_id else None,
        "name": product.name,
        "description": product.description,
        "price_cents": product.price_cents,
        "image_key": product.image_key,
        "banner_key": product.banner_key,
        "is_active": product.is_active,
        "ingredients": [
            {"ingredient_id": str(link.ingredient_id), "quantity": link.quantity}
            for link in product.ingredients
        ],
        "created_at": product.created_at.isoformat() if product.created_at else None,
        "updated_at": product.updated_at.isoformat() if product.updated_at else None,
    }


def _get_or_404(db: Session, product_id: uuid.UUID) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=404, detail="Produto não encontrado")
    return product


def _check_category(db: Session, category_id: Optional[uuid.UUID], establishment_id: uuid.UUID) -> None:
    if category_id is None:
        return
    category = db.query(ProductCategory).filter(ProductCategory.id == category_id).first()
    if not category or category.establishment_id != establishment_id:
        raise HTTPException(status_code=400, detail="Categoria inválida para o estabelecimento")


@router.get("")
def list_products(
    establishment_id: Optional[uuid.UUID] = Query(None),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    query = db.query(Product)
    if establishment_id is not None:
        query = query.filter(Product.establishment_id == establishment_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    products = query.order_by(Product.name.asc()).all()
    return [_product_to_dict(product) for product in products]


@router.post("", status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    establishment = db.query(Establishment).filter(Establishment.id == payload.establishment_id).first()
    if not establishment:
        raise HTTPException(status_code=404, detail="Estabelecimento não encontrado")
    _check_category(db, payload.category_id, payload.establishment_id)

    product = Product(**payload.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)
    return _product_to_dict(product)


@router.get("/{product_id}")
def read_product(product_id: uuid.UUID, db: Session = Depends(get_db)):
    return _product_to_dict(_get_or_404(db, product_id))


@router.put("/{product_id}")
def update_product(product_id: uuid.UUID, payload: ProductUpdate, db: Session = Depends(get_db)):
    product = _get_or_404(db, product_id)
    changes = payload.model_dump(exclude_unset=True)
    if "category_id" in changes:
        _check_category(db, changes["category_id"], product.establishment_id)
    for field, value in changes.items():
        if value is None and field in {"name", "price_cents", "is_active"}:
            continue
        setattr(product, field, value)

    db.commit()
    db.refresh(product)
    return _product_to_dict(product)


@router.delete("/{product_id}")
def delete_product(product_id: uuid.UUID, db: Session = Depends(get_db)):
    # pedidos antigos referenciam o produto: remover = desativar
    product = _get_or_404(db, product_id)
    product.is_active = False
    db.commit()
    db.refresh(product)
    return _product_to_dict(product)


@router.put("/{product_id}/ingredients/{ingredient_id}")
def link_ingredient(
    product_id: uuid.UUID,
    ingredient_id: uuid.UUID,
    payload: ProductIngredientIn,
    db: Session = Depends(get_db),
):
    product = _get_or_404(db, product_id)
    if not db.query(Ingredient).filter(Ingredient.id == ingredient_id).first():
        raise HTTPException(status_code=404, detail="Ingrediente não encontrado")

    link = (
        db.query(ProductIngredient)
        .filter(ProductIngredient.product_id == product_id, ProductIngredient.ingredient_id == ingredient_id)
        .first()
    )
    if link:
        link.quantity = payload.quantity
    else:
        db.add(ProductIngredient(product_id=product_id, ingredient_id=ingredient_id, quantity=payload.quantity))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Ingrediente já vinculado ao produto")
    db.refresh(product)
    return _product_to_dict(product)


@router.delete("/{product_id}/ingredients/{ingredient_id}", status_code=204)
def unlink_ingredient(product_id: uuid.UUID, ingredient_id: uuid.UUID, db: Session = Depends(get_db)):
    deleted = (
        db.query(ProductIngredient)
        .filter(ProductIngredient.product_id == product_id, ProductIngredient.ingredient_id == ingredient_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise HTTPException(status_code=404, detail="Ingrediente não vinculado ao produto")
    db.commit()
