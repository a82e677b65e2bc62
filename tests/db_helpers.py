from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cardapio.core.database import Base
import cardapio.models  # noqa: F401
from cardapio.models.coupon import Coupon
from cardapio.models.customer import Customer
from cardapio.models.establishment import Establishment
from cardapio.models.loyalty import LoyaltyAccount
from cardapio.models.product import Product
from cardapio.services.order_pricing import OrderLineRequest, OrderRequest
from tests import fixtures_data


def build_sessionmaker():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def build_session():
    return build_sessionmaker()()


def seed_catalog(db) -> SimpleNamespace:
    establishment = Establishment(**fixtures_data.ESTABLISHMENT)
    other_establishment = Establishment(**fixtures_data.OTHER_ESTABLISHMENT)
    db.add_all([establishment, other_establishment])
    db.flush()

    burger = Product(establishment_id=establishment.id, **fixtures_data.BURGER)
    fries = Product(establishment_id=establishment.id, **fixtures_data.FRIES)
    retired = Product(establishment_id=establishment.id, **fixtures_data.RETIRED_SODA)
    pizza = Product(establishment_id=other_establishment.id, **fixtures_data.PIZZA)
    customer = Customer(**fixtures_data.CUSTOMER)
    other_customer = Customer(**fixtures_data.OTHER_CUSTOMER)
    db.add_all([burger, fries, retired, pizza, customer, other_customer])
    db.flush()

    db.add(LoyaltyAccount(customer_id=customer.id, points_balance=fixtures_data.STARTING_POINTS))
    db.add_all(
        [
            Coupon(**fixtures_data.SAVE10),
            Coupon(**fixtures_data.SINGLE_USE),
            Coupon(**fixtures_data.EXPIRED),
        ]
    )
    db.commit()

    return SimpleNamespace(
        establishment_id=establishment.id,
        other_establishment_id=other_establishment.id,
        burger_id=burger.id,
        fries_id=fries.id,
        retired_id=retired.id,
        pizza_id=pizza.id,
        customer_id=customer.id,
        other_customer_id=other_customer.id,
    )


def order_request(seed, items=None, *, customer_id=None, coupon_code=None, loyalty_points=0) -> OrderRequest:
    if items is None:
        items = [(seed.burger_id, 2), (seed.fries_id, 1)]
    return OrderRequest(
        customer_id=customer_id or seed.customer_id,
        establishment_id=seed.establishment_id,
        items=tuple(OrderLineRequest(product_id=product_id, quantity=quantity) for product_id, quantity in items),
        coupon_code=coupon_code,
        loyalty_points=loyalty_points,
    )


def build_file_sessionmaker(path):
    # banco em arquivo: cada sessão tem a própria conexão, como em produção
    engine = create_engine(
        f"sqlite+pysqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
