import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import relationship

from cardapio.core.database import Base
from cardapio.models.order_event import append_only

DEFAULT_TIER = "standard"


class LoyaltyAccount(Base):
    __tablename__ = "loyalty_accounts"
    __table_args__ = (CheckConstraint("points_balance >= 0", name="ck_loyalty_accounts_balance_non_negative"),)

    customer_id = Column(Uuid, ForeignKey("customers.id", ondelete="CASCADE"), primary_key=True)
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    tier = Column(String(50), nullable=False, default=DEFAULT_TIER, server_default=DEFAULT_TIER)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    customer = relationship("Customer", back_populates="loyalty_account")


@append_only
class LoyaltyTransaction(Base):
    __tablename__ = "loyalty_transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(
        Uuid,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_id = Column(Uuid, nullable=True, index=True)
    points_delta = Column(Integer, nullable=False)
    reason = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
