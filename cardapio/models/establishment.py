import uuid

from sqlalchemy import Column, DateTime, String, Text, Uuid, func

from cardapio.core.database import Base


class Establishment(Base):
    __tablename__ = "establishments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    image_key = Column(String(512), nullable=True)
    banner_key = Column(String(512), nullable=True)
    phone = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
