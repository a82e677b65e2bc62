import uuid

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import relationship

from cardapio.core.database import Base

ORDER_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "CANCELLED", "FAILED")


def _in_list(column: str, values) -> str:
    return "{} IN ({})".format(column, ",".join("'{}'".format(value) for value in values))


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(_in_list("status", ORDER_STATUSES), name="ck_orders_status"),
        CheckConstraint("total_cents >= 0", name="ck_orders_total_non_negative"),
        CheckConstraint("loyalty_points >= 0", name="ck_orders_loyalty_points"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    establishment_id = Column(
        Uuid,
        ForeignKey("establishments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    coupon_code = Column(String(50), ForeignKey("coupons.code", ondelete="SET NULL"), nullable=True)
    loyalty_points = Column(Integer, nullable=False, default=0, server_default="0")

    # Valores em centavos; total_cents = subtotal - desconto do cupom - desconto de pontos (mínimo 0)
    subtotal_cents = Column(BigInteger, nullable=False, default=0)
    discount_cents = Column(BigInteger, nullable=False, default=0)
    loyalty_discount_cents = Column(BigInteger, nullable=False, default=0)
    total_cents = Column(BigInteger, nullable=False)

    status = Column(String(20), nullable=False, default="PENDING", server_default="PENDING", index=True)
    ordered_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    customer = relationship("Customer", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderItem.position",
    )