import uuid

from sqlalchemy import Column, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from cardapio.core.database import Base


class Ingredient(Base):
    __tablename__ = "ingredients"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)


class ProductIngredient(Base):
    __tablename__ = "product_ingredients"

    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    # RESTRICT: ingrediente em uso não pode ser removido
    ingredient_id = Column(Uuid, ForeignKey("ingredients.id", ondelete="RESTRICT"), primary_key=True)
    quantity = Column(String(50), nullable=True)

    product = relationship("Product", back_populates="ingredients")
    ingredient = relationship("Ingredient")
