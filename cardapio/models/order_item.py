from sqlalchemy import BigInteger, CheckConstraint, Column, ForeignKey, Integer, Uuid
from sqlalchemy.orm import relationship

from cardapio.core.database import Base


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("total_price_cents = quantity * unit_price_cents", name="ck_order_items_line_total"),
    )

    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="RESTRICT"), primary_key=True)
    # ordem das linhas como vieram no pedido
    position = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False)
    # preços congelados no momento do pedido
    unit_price_cents = Column(BigInteger, nullable=False)
    total_price_cents = Column(BigInteger, nullable=False)

    order = relationship("Order", back_populates="items")
