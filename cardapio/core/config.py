import os
from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cardapio.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Storage: tempo máximo de cada unidade de trabalho (statement/lock timeout no Postgres)
STORAGE_TIMEOUT_MS = int(os.getenv("STORAGE_TIMEOUT_MS", "5000"))
DB_POOL_TIMEOUT_SECONDS = int(os.getenv("DB_POOL_TIMEOUT_SECONDS", "10"))

# Fidelidade
# Valor em centavos de cada ponto resgatado.
LOYALTY_POINT_VALUE_CENTS = int(os.getenv("LOYALTY_POINT_VALUE_CENTS", "1"))
# Pontos ganhos a cada 100 centavos do total final de um pedido concluído.
LOYALTY_ACCRUAL_POINTS_PER_UNIT = int(os.getenv("LOYALTY_ACCRUAL_POINTS_PER_UNIT", "1"))
LOYALTY_REFUND_ON_CANCEL = _env_flag("LOYALTY_REFUND_ON_CANCEL", "1")

# Fuso do estabelecimento: define o "hoje" da validade dos cupons
TIMEZONE = os.getenv("TIMEZONE", "America/Sao_Paulo")
