import uuid

from sqlalchemy import Column, DateTime, String, Uuid, func
from sqlalchemy.orm import relationship

from cardapio.core.database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(20), nullable=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    loyalty_account = relationship(
        "LoyaltyAccount",
        uselist=False,
        back_populates="customer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    # RESTRICT no banco: cliente com pedidos não é removido
    orders = relationship("Order", back_populates="customer", passive_deletes="all")
