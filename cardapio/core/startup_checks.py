from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine

from cardapio.core.config import DATABASE_URL, IS_PROD, IS_TEST

logger = logging.getLogger(__name__)
SCHEMA_PREFIX = "[SCHEMA]"


def validate_database_environment() -> None:
    if IS_PROD and DATABASE_URL.startswith("sqlite"):
        logger.critical("%s sqlite database refused in production", SCHEMA_PREFIX)
        raise RuntimeError("SQLite não é suportado em produção")


def expected_heads(alembic_config_path: Path) -> set[str]:
    if not alembic_config_path.exists():
        logger.critical("%s alembic.ini missing path=%s", SCHEMA_PREFIX, alembic_config_path)
        raise RuntimeError("alembic.ini não encontrado")
    script = ScriptDirectory.from_config(Config(str(alembic_config_path)))
    return set(script.get_heads())


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    """Recusa subir a API com o schema atrás (ou à frente) das migrations."""
    if IS_TEST:
        logger.info("%s migration check disabled for ENV=test", SCHEMA_PREFIX)
        return

    wanted = expected_heads(alembic_config_path)
    with engine.connect() as connection:
        current = set(MigrationContext.configure(connection).get_current_heads())

    if not current:
        logger.critical("%s database was never migrated", SCHEMA_PREFIX)
        raise RuntimeError("Banco sem migrations aplicadas; rode `alembic upgrade head`")
    if current != wanted:
        logger.critical("%s schema out of date current=%s head=%s", SCHEMA_PREFIX, sorted(current), sorted(wanted))
        raise RuntimeError("Migrations pendentes; rode `alembic upgrade head`")

    logger.info("%s schema at head=%s", SCHEMA_PREFIX, sorted(current))
