from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Uuid, event, func
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

from cardapio.core.database import Base


class ImmutableRecordError(RuntimeError):
    pass


def append_only(model):
    """Bloqueia UPDATE/DELETE via ORM para tabelas de auditoria."""

    def _reject_update(_mapper, _connection, target):
        raise ImmutableRecordError(f"{type(target).__name__} é somente inserção (update bloqueado)")

    def _reject_delete(_mapper, _connection, target):
        raise ImmutableRecordError(f"{type(target).__name__} é somente inserção (delete bloqueado)")

    event.listen(model, "before_update", _reject_update)
    event.listen(model, "before_delete", _reject_delete)
    return model


@append_only
class OrderEvent(Base):
    __tablename__ = "order_events"

    # sequência de inserção: desempata eventos com o mesmo occurred_at
    id = Column(BigInteger().with_variant(Integer(), "sqlite"), primary_key=True, autoincrement=True)
    order_id = Column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type = Column(String(20), nullable=False)
    payload = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=True)
    occurred_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
