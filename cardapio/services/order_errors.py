from __future__ import annotations


class OrderError(Exception):
    """Base dos erros do ciclo de vida do pedido.

    `code` é o identificador estável exposto na API; `retryable` indica se o
    chamador pode repetir a mesma requisição sem buscar o estado de novo.
    """

    code = "order_error"
    retryable = False
    default_message = "Erro ao processar pedido"

    def __init__(self, message: str | None = None, **context) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class ProductUnavailable(OrderError):
    code = "product_unavailable"
    default_message = "Produto indisponível para este estabelecimento"


class InvalidQuantity(OrderError):
    code = "invalid_quantity"
    default_message = "Quantidade inválida"


class CouponInvalid(OrderError):
    code = "coupon_invalid"
    default_message = "Cupom inválido"


class CouponExpired(OrderError):
    code = "coupon_expired"
    default_message = "Cupom fora do período de validade"


class CouponAlreadyUsed(OrderError):
    code = "coupon_already_used"
    default_message = "Cupom já utilizado por este cliente"


class CouponExhausted(OrderError):
    code = "coupon_exhausted"
    default_message = "Cupom atingiu o limite de usos"


class InsufficientPoints(OrderError):
    code = "insufficient_points"
    default_message = "Saldo de pontos insuficiente"


class InvalidTransition(OrderError):
    code = "invalid_transition"
    default_message = "Transição de status inválida"


class NotFound(OrderError):
    code = "not_found"
    default_message = "Registro não encontrado"


class Unavailable(OrderError):
    code = "unavailable"
    retryable = True
    default_message = "Armazenamento indisponível, tente novamente"


class Conflict(OrderError):
    # só pode ser repetido depois de buscar o estado atual
    code = "conflict"
    default_message = "Conflito de concorrência, recarregue o pedido"


VALIDATION_ERRORS = (
    ProductUnavailable,
    InvalidQuantity,
    CouponInvalid,
    CouponExpired,
    CouponAlreadyUsed,
    CouponExhausted,
    InsufficientPoints,
)
