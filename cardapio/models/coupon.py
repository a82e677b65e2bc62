import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import relationship

from cardapio.core.database import Base

DISCOUNT_PERCENT = "percent"
DISCOUNT_FIXED = "fixed"
DISCOUNT_TYPES = (DISCOUNT_PERCENT, DISCOUNT_FIXED)


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint(
            "discount_type IN ({})".format(",".join("'{}'".format(kind) for kind in DISCOUNT_TYPES)),
            name="ck_coupons_discount_type",
        ),
        CheckConstraint("valid_from <= valid_until", name="ck_coupons_validity_window"),
        CheckConstraint("discount_value >= 0", name="ck_coupons_discount_value"),
        CheckConstraint("max_uses IS NULL OR uses_count <= max_uses", name="ck_coupons_uses_within_max"),
    )

    code = Column(String(50), primary_key=True)
    description = Column(Text, nullable=True)
    discount_type = Column(String(10), nullable=False)
    discount_value = Column(Integer, nullable=False)
    valid_from = Column(Date, nullable=False)
    valid_until = Column(Date, nullable=False)
    max_uses = Column(Integer, nullable=True)
    # contador mantido pelo ledger junto com cada CouponRedemption
    uses_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    redemptions = relationship("CouponRedemption", back_populates="coupon", passive_deletes=True)


class CouponRedemption(Base):
    __tablename__ = "coupon_redemptions"
    __table_args__ = (
        UniqueConstraint("coupon_code", "customer_id", "order_id", name="uq_coupon_redemptions_use"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coupon_code = Column(
        String(50),
        ForeignKey("coupons.code", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = Column(
        Uuid,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_id = Column(Uuid, nullable=True, index=True)
    redeemed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    coupon = relationship("Coupon", back_populates="redemptions")
