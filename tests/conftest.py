from decimal import Decimal

import pytest
from sqlalchemy import func, insert, select

from marketplace.app import create_app
from marketplace.core.cache import MemoryCache
from marketplace.core.config import Config
from marketplace.db import Database
from marketplace.repositories.order_repository import OrderRepository
from marketplace.repositories.shipping_repository import ShippingRepository
from marketplace.seed import seed_shipping_methods
from marketplace.services.order_service import OrderService
from marketplace.services.shipping_service import ShippingService
from marketplace.tables import Listing, Order, OrderItem, SellerProfile, ShippingMethod


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def config():
    cfg = Config()
    cfg.environment = "test"
    cfg.database.url = "sqlite:///:memory:"
    cfg.cache.backend = "memory"
    cfg.cache.key_prefix = ""
    cfg.orders.strict_totals = False
    return cfg


@pytest.fixture
def database(config):
    db = Database(config.database)
    db.create_all()
    with db.engine.begin() as conn:
        seed_shipping_methods(conn)
    yield db
    db.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCache(default_ttl_seconds=3600, clock=clock)


@pytest.fixture
def order_repository(database):
    return OrderRepository(database)


@pytest.fixture
def shipping_repository(database):
    return ShippingRepository(database)


@pytest.fixture
def order_service(database, order_repository, cache, config):
    return OrderService(database, order_repository, cache, config.orders, config.cache.default_ttl_seconds)


@pytest.fixture
def shipping_service(shipping_repository, config):
    return ShippingService(shipping_repository, config.shipping)


@pytest.fixture
def app(config, database, cache):
    application = create_app(config, database, cache)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def method_ids(database):
    """Seeded shipping method ids keyed by name"""
    table = ShippingMethod.__table__
    with database.engine.connect() as conn:
        rows = conn.execute(select(table.c.name, table.c.id)).all()
    return {name: method_id for name, method_id in rows}


@pytest.fixture
def add_listing(database):
    def _add(seller_id=10, title="Listing", price="10.00", weight_oz=None, image_url=None):
        table = Listing.__table__
        with database.engine.begin() as conn:
            return conn.execute(
                insert(table).returning(table.c.id),
                {
                    "seller_id": seller_id,
                    "title": title,
                    "price": Decimal(price),
                    "weight_oz": weight_oz,
                    "image_url": image_url,
                },
            ).scalar_one()
    return _add


@pytest.fixture
def add_seller(database):
    def _add(user_id, offers_free_shipping=False, standard_shipping_fee="0",
             uses_calculated_shipping=False, shipping_policy=""):
        with database.engine.begin() as conn:
            conn.execute(
                insert(SellerProfile.__table__),
                {
                    "user_id": user_id,
                    "store_name": f"Store {user_id}",
                    "offers_free_shipping": offers_free_shipping,
                    "standard_shipping_fee": Decimal(standard_shipping_fee),
                    "uses_calculated_shipping": uses_calculated_shipping,
                    "shipping_policy": shipping_policy,
                },
            )
    return _add


@pytest.fixture
def row_counts(database):
    """Current (orders, order_items) row counts"""
    def _counts():
        with database.engine.connect() as conn:
            orders = conn.execute(select(func.count()).select_from(Order.__table__)).scalar_one()
            items = conn.execute(select(func.count()).select_from(OrderItem.__table__)).scalar_one()
        return orders, items
    return _counts
