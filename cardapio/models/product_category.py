import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid, func

from cardapio.core.database import Base


class ProductCategory(Base):
    __tablename__ = "product_categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    establishment_id = Column(
        Uuid,
        ForeignKey("establishments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
