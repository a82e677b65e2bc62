import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cardapio.core.config import CORS_ORIGINS, DATABASE_URL, ENV
from cardapio.core.database import Base, engine
from cardapio.core.error_handlers import install_error_handlers
from cardapio.core.logging_setup import configure_logging
from cardapio.core.startup_checks import ensure_migrations_applied, validate_database_environment
from cardapio.middleware.observability import ObservabilityMiddleware
import cardapio.models  # garante que os models são importados antes do create_all

from cardapio.routers.categories import router as categories_router
from cardapio.routers.coupons import router as coupons_router
from cardapio.routers.customers import router as customers_router
from cardapio.routers.establishments import router as establishments_router
from cardapio.routers.ingredients import router as ingredients_router
from cardapio.routers.internal_metrics import router as internal_metrics_router
from cardapio.routers.orders import router as orders_router
from cardapio.routers.products import router as products_router

configure_logging()

logger = logging.getLogger(__name__)
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


def _startup_tasks() -> None:
    logger.info("starting cardapio api env=%s", ENV)
    validate_database_environment()
    if DATABASE_URL.startswith("sqlite"):
        # dev/test locais: schema direto dos models
        Base.metadata.create_all(bind=engine)
        return
    ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Cardápio API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)
install_error_handlers(app)

app.include_router(establishments_router)
app.include_router(categories_router)
app.include_router(products_router)
app.include_router(ingredients_router)
app.include_router(customers_router)
app.include_router(coupons_router)
app.include_router(orders_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
