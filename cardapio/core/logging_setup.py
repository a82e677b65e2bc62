from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

from cardapio.core.config import LOG_LEVEL
from cardapio.core.request_context import get_establishment_id, get_request_id

# (padrão, substituição) aplicados em toda mensagem antes de sair no log
_MASKS = (
    (re.compile(r"(authorization\s*[:=]\s*bearer\s+)\S+", re.IGNORECASE), r"\1***"),
    (re.compile(r"((?:password|password_hash|secret)\s*[:=]\s*)[^\s\",}]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"(postgres(?:ql)?(?:\+\w+)?://[^:/\s]+:)[^@\s]+@", re.IGNORECASE), r"\1***@"),
)

_OPTIONAL_FIELDS = ("endpoint", "method", "status_code", "order_id")


def mask_secrets(text: str) -> str:
    for pattern, replacement in _MASKS:
        text = pattern.sub(replacement, text)
    return text


class JsonFormatter(logging.Formatter):
    """Uma linha JSON por registro, com request_id/establishment_id do contexto."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "establishment_id": getattr(record, "establishment_id", None) or get_establishment_id(),
            "message": mask_secrets(record.getMessage()),
            "duration_ms": getattr(record, "duration_ms", None),
        }
        entry.update(
            {name: getattr(record, name) for name in _OPTIONAL_FIELDS if getattr(record, name, None) is not None}
        )
        if record.exc_info:
            entry["exc_info"] = mask_secrets(self.formatException(record.exc_info))
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(level: str = LOG_LEVEL) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    # uvicorn tem handlers próprios; só alinhamos o nível
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
